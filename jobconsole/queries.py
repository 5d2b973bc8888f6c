"""Cached reads and mutation-driven invalidation over the job gateway.

Mutation -> invalidated keys:

    create          lists, stats, running
    cancel(id)      lists, stats, running, detail(id), logs(id)
    retry(id)       lists, stats, running, detail(id), logs(id)
    delete(id)      lists, stats, running (detail/logs of id dropped)
    bulk cancel     lists, stats, running, detail/logs of each succeeded id
    bulk delete     lists, stats, running (detail/logs of each succeeded id dropped)
"""
from typing import Awaitable, Callable, Dict, Optional, Sequence

import structlog

from . import config
from .cache import QueryCache, QueryKey, key_kind
from .gateway import JobGateway
from .pagination import PaginationParams
from .results import ActionResult
from .schemas import CreateJobRequest

logger = structlog.get_logger(__name__)

Fetch = Callable[[], Awaitable[ActionResult]]


class JobQueryKeys:
    all = ("jobs",)

    @staticmethod
    def lists() -> QueryKey:
        return ("jobs", "list")

    @staticmethod
    def list(params: PaginationParams) -> QueryKey:
        return ("jobs", "list", params.cache_key())

    @staticmethod
    def list_by_type(job_type: str, params: PaginationParams) -> QueryKey:
        return ("jobs", "list", "type", job_type, params.cache_key())

    @staticmethod
    def detail(job_id: int) -> QueryKey:
        return ("jobs", "detail", job_id)

    @staticmethod
    def logs(job_id: int, limit: Optional[int] = None) -> QueryKey:
        # without a limit this is the prefix covering every window of the job's logs
        if limit is None:
            return ("jobs", "logs", job_id)
        return ("jobs", "logs", job_id, limit)

    @staticmethod
    def stats() -> QueryKey:
        return ("jobs", "stats")

    @staticmethod
    def running() -> QueryKey:
        return ("jobs", "running")

    @staticmethod
    def types() -> QueryKey:
        return ("jobs", "types")


STALE_SECONDS = {
    "list": config.LIST_STALE_SECONDS,
    "detail": config.DETAIL_STALE_SECONDS,
    "logs": config.LOGS_STALE_SECONDS,
    "stats": config.STATS_STALE_SECONDS,
    "running": config.RUNNING_STALE_SECONDS,
    "types": config.TYPES_STALE_SECONDS,
}


def job_id_of(key: QueryKey) -> Optional[int]:
    if key_kind(key) in ("detail", "logs") and len(key) > 2:
        return key[2]
    return None


class JobQueries:
    def __init__(self, gateway: JobGateway, cache: Optional[QueryCache] = None,
                 stale_seconds: Optional[Dict[str, float]] = None):
        self.gateway = gateway
        self.cache = cache if cache is not None else QueryCache()
        self.stale_seconds = dict(STALE_SECONDS)
        if stale_seconds:
            self.stale_seconds.update(stale_seconds)
        self._fetchers: Dict[QueryKey, Fetch] = {}
        self.cache.add_eviction_listener(self._forget_fetchers)

    def stale_after(self, key: QueryKey) -> float:
        return self.stale_seconds.get(key_kind(key), config.LIST_STALE_SECONDS)

    def _forget_fetchers(self, keys) -> None:
        for key in keys:
            self._fetchers.pop(key, None)

    async def _read(self, key: QueryKey, fetch: Fetch, force: bool = False) -> ActionResult:
        if not force:
            entry = self.cache.get(key, self.stale_after(key))
            if entry is not None:
                return entry.value
        generation = self.cache.begin_fetch(key)
        try:
            result = await fetch()
            if not result.success:
                # failures are returned to the caller, never cached
                return result
            self._fetchers[key] = fetch
            updated_at = getattr(result.data, "updated_at", None)
            if not self.cache.set(key, result, updated_at=updated_at, generation=generation):
                return self.cache.peek(key).value
            return result
        finally:
            self.cache.end_fetch(key)

    def fetcher_for(self, key: QueryKey) -> Fetch:
        if key in self._fetchers:
            return self._fetchers[key]
        kind = key_kind(key)
        if kind == "detail":
            return lambda: self.gateway.get_by_id(key[2])
        if kind == "logs" and len(key) > 3:
            return lambda: self.gateway.get_logs(key[2], key[3])
        if kind == "stats":
            return self.gateway.get_stats
        if kind == "running":
            return self.gateway.get_running
        if kind == "types":
            return self.gateway.get_types
        raise KeyError(f"no fetcher registered for {key!r}")

    async def refetch(self, key: QueryKey) -> ActionResult:
        """Read ``key`` from the backend regardless of its staleness window."""
        return await self._read(key, self.fetcher_for(key), force=True)

    def status_for(self, key: QueryKey) -> Optional[str]:
        """Last observed status of the job a detail/logs key belongs to."""
        job_id = job_id_of(key)
        if job_id is None:
            return None
        entry = self.cache.peek(JobQueryKeys.detail(job_id))
        if entry is None or entry.value.data is None:
            return None
        return entry.value.data.status

    # Reads

    async def list_jobs(self, params: PaginationParams, force: bool = False) -> ActionResult:
        return await self._read(JobQueryKeys.list(params), lambda: self.gateway.list(params), force)

    async def list_jobs_by_type(self, job_type: str, params: PaginationParams, force: bool = False) -> ActionResult:
        return await self._read(
            JobQueryKeys.list_by_type(job_type, params),
            lambda: self.gateway.list_by_type(job_type, params),
            force,
        )

    async def get_job(self, job_id: int, force: bool = False) -> ActionResult:
        return await self._read(JobQueryKeys.detail(job_id), lambda: self.gateway.get_by_id(job_id), force)

    async def get_logs(self, job_id: int, limit: int = None, force: bool = False) -> ActionResult:
        limit = config.LOG_LIMIT if limit is None else limit
        return await self._read(
            JobQueryKeys.logs(job_id, limit), lambda: self.gateway.get_logs(job_id, limit), force
        )

    async def get_stats(self, force: bool = False) -> ActionResult:
        return await self._read(JobQueryKeys.stats(), self.gateway.get_stats, force)

    async def get_running(self, force: bool = False) -> ActionResult:
        return await self._read(JobQueryKeys.running(), self.gateway.get_running, force)

    async def get_types(self, force: bool = False) -> ActionResult:
        return await self._read(JobQueryKeys.types(), self.gateway.get_types, force)

    async def prefetch_job(self, job_id: int) -> None:
        await self.get_job(job_id)

    async def prefetch_logs(self, job_id: int, limit: int = None) -> None:
        await self.get_logs(job_id, limit)

    # Invalidation

    def invalidate_collections(self) -> None:
        self.cache.invalidate(JobQueryKeys.lists())
        self.cache.invalidate(JobQueryKeys.stats())
        self.cache.invalidate(JobQueryKeys.running())

    def invalidate_job(self, job_id: int) -> None:
        self.cache.invalidate(JobQueryKeys.detail(job_id))
        self.cache.invalidate(JobQueryKeys.logs(job_id))

    def forget_job(self, job_id: int) -> None:
        for prefix in (JobQueryKeys.detail(job_id), JobQueryKeys.logs(job_id)):
            self.cache.remove(prefix)
            self._forget_fetchers([key for key in self._fetchers if key[:len(prefix)] == prefix])

    def refresh_all(self) -> int:
        return self.cache.invalidate(JobQueryKeys.all)

    # Mutations

    async def create(self, request: CreateJobRequest) -> ActionResult:
        result = await self.gateway.create(request)
        if result.success:
            self.invalidate_collections()
            logger.info("job_created", job_id=result.data.id if result.data else None, type=request.type)
        return result

    async def cancel(self, job_id: int) -> ActionResult:
        result = await self.gateway.cancel(job_id)
        if result.success:
            self.invalidate_collections()
            self.invalidate_job(job_id)
            logger.info("job_cancelled", job_id=job_id)
        return result

    async def retry(self, job_id: int) -> ActionResult:
        result = await self.gateway.retry(job_id)
        if result.success:
            self.invalidate_collections()
            self.invalidate_job(job_id)
            logger.info("job_retried", job_id=job_id, new_job_id=result.data.id if result.data else None)
        return result

    async def delete(self, job_id: int) -> ActionResult:
        result = await self.gateway.delete(job_id)
        if result.success:
            self.invalidate_collections()
            self.forget_job(job_id)
            logger.info("job_deleted", job_id=job_id)
        return result

    async def bulk_cancel(self, ids: Sequence[int]) -> ActionResult:
        result = await self.gateway.bulk_cancel(ids)
        # partial success still changed backend state
        self.invalidate_collections()
        for job_id in result.data.succeeded:
            self.invalidate_job(job_id)
        logger.info("jobs_bulk_cancelled", succeeded=result.data.succeeded, failed=result.data.failed)
        return result

    async def bulk_delete(self, ids: Sequence[int]) -> ActionResult:
        result = await self.gateway.bulk_delete(ids)
        self.invalidate_collections()
        for job_id in result.data.succeeded:
            self.forget_job(job_id)
        logger.info("jobs_bulk_deleted", succeeded=result.data.succeeded, failed=result.data.failed)
        return result
