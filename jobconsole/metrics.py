from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

# Keep metrics module-level singletons
gateway_requests_total = Counter(
    "gateway_requests_total", "Backend calls made by the job gateway", ["operation", "outcome"]
)
gateway_latency_seconds = Histogram(
    "gateway_latency_seconds", "Backend call latency seconds", ["operation"]
)
cache_hits_total = Counter("cache_hits_total", "Reads served from the query cache", ["kind"])
cache_misses_total = Counter("cache_misses_total", "Reads that had to go to the backend", ["kind"])
cache_invalidations_total = Counter("cache_invalidations_total", "Cache keys marked stale")
cache_evictions_total = Counter("cache_evictions_total", "Cache entries evicted after going unused")
stale_writes_rejected_total = Counter(
    "stale_writes_rejected_total", "Fetched values dropped because a fresher copy was cached"
)
mutations_rejected_total = Counter(
    "mutations_rejected_total", "Job mutations refused for a missing or wrong operator key", ["reason"]
)
polls_total = Counter("polls_total", "Automatic poll reads", ["kind"])
active_subscriptions = Gauge("active_subscriptions", "Number of live poll subscriptions")
request_latency_seconds = Histogram("request_latency_seconds", "HTTP request latency seconds")


def metrics_response():
    # Return prometheus metrics as a Response
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
