import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from .api import jobs as jobs_api
from .client import close_queries
from .log import configure_logging
from .metrics import metrics_response, request_latency_seconds


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield
    await close_queries()


app = FastAPI(title="Job Admin Console", lifespan=lifespan)

app.include_router(jobs_api.router)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    try:
        response = await call_next(request)
        return response
    finally:
        request_latency_seconds.observe(time.time() - start)


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.get("/readyz")
async def readyz():
    # Backend reachability is reported per view, not here
    return {"ready": True}


@app.get("/metrics")
async def metrics():
    return metrics_response()
