"""Status-driven polling of cached job queries.

A subscription re-reads one query key on an interval chosen by its policy, a
pure function of the last observed job status. Views own subscriptions: they
start them on mount, pause them while hidden and stop them on unmount, so
nothing polls in the background.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional

import structlog

from . import config
from . import metrics
from .cache import QueryKey, key_kind
from .queries import JobQueries, JobQueryKeys
from .schemas import RUNNING

logger = structlog.get_logger(__name__)

Policy = Callable[[Optional[str]], Optional[float]]


def detail_policy(status: Optional[str]) -> Optional[float]:
    # pending jobs do not poll; many open detail pages would otherwise hammer the backend
    return config.DETAIL_POLL_SECONDS if status == RUNNING else None


def logs_policy(status: Optional[str]) -> Optional[float]:
    return config.LOGS_POLL_SECONDS if status == RUNNING else None


def every(seconds: float) -> Policy:
    def policy(status: Optional[str]) -> Optional[float]:
        return seconds
    return policy


def never(status: Optional[str]) -> Optional[float]:
    return None


class SubscriptionHandle:
    def __init__(self, key: QueryKey, policy: Policy):
        self.key = key
        self.policy = policy
        self.paused = False
        self.reads = 0
        self.task: Optional[asyncio.Task] = None
        self.wake = asyncio.Event()

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done()

    def __repr__(self):
        return f"<SubscriptionHandle key={self.key!r} paused={self.paused} reads={self.reads}>"


class Poller:
    def __init__(self, queries: JobQueries, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.queries = queries
        self._sleep = sleep
        self._handles: List[SubscriptionHandle] = []
        queries.cache.add_listener(self._on_cache_event)

    @property
    def handles(self) -> List[SubscriptionHandle]:
        return list(self._handles)

    def start(self, key: QueryKey, policy: Policy) -> SubscriptionHandle:
        handle = SubscriptionHandle(key, policy)
        handle.task = asyncio.get_running_loop().create_task(self._run(handle))
        self._handles.append(handle)
        self.queries.cache.retain(key)
        metrics.active_subscriptions.inc()
        logger.info("poll_started", key=key)
        return handle

    def stop(self, handle: SubscriptionHandle) -> None:
        if handle not in self._handles:
            return
        self._handles.remove(handle)
        if handle.task is not None:
            handle.task.cancel()
        self.queries.cache.release(handle.key)
        metrics.active_subscriptions.dec()
        logger.info("poll_stopped", key=handle.key, reads=handle.reads)

    def stop_all(self) -> None:
        for handle in list(self._handles):
            self.stop(handle)

    def pause(self, handle: SubscriptionHandle) -> None:
        handle.paused = True

    def resume(self, handle: SubscriptionHandle) -> None:
        handle.paused = False
        handle.wake.set()

    def close(self) -> None:
        self.stop_all()
        self.queries.cache.remove_listener(self._on_cache_event)

    def interval_for(self, handle: SubscriptionHandle) -> Optional[float]:
        if handle.paused:
            return None
        return handle.policy(self.queries.status_for(handle.key))

    def _on_cache_event(self, key: QueryKey) -> None:
        # an idle subscription re-checks its policy whenever the cache changes
        for handle in self._handles:
            handle.wake.set()

    async def _run(self, handle: SubscriptionHandle) -> None:
        kind = key_kind(handle.key)
        while True:
            interval = self.interval_for(handle)
            if interval is None:
                handle.wake.clear()
                await handle.wake.wait()
                continue
            await self._sleep(interval)
            # the status may have gone terminal while we slept
            if self.interval_for(handle) is None:
                continue
            try:
                result = await self.queries.refetch(handle.key)
            except Exception:
                logger.exception("poll_crashed", key=handle.key)
                continue
            finally:
                handle.reads += 1
                metrics.polls_total.labels(kind).inc()
            if not result.success:
                logger.warning("poll_failed", key=handle.key, error=result.error.message)


class View(ABC):
    """Owns the subscriptions of one mounted screen."""

    def __init__(self, poller: Poller):
        self.poller = poller
        self.handles: List[SubscriptionHandle] = []
        self.mounted = False
        self.visible = True

    def _subscribe(self, key: QueryKey, policy: Policy) -> SubscriptionHandle:
        handle = self.poller.start(key, policy)
        if not self.visible:
            self.poller.pause(handle)
        self.handles.append(handle)
        return handle

    @abstractmethod
    async def mount(self) -> None:
        """Read the initial data and start this view's subscriptions."""

    def unmount(self) -> None:
        for handle in self.handles:
            self.poller.stop(handle)
        self.handles = []
        self.mounted = False

    def hide(self) -> None:
        self.visible = False
        for handle in self.handles:
            self.poller.pause(handle)

    def show(self) -> None:
        self.visible = True
        for handle in self.handles:
            self.poller.resume(handle)


class JobDetailView(View):
    def __init__(self, poller: Poller, job_id: int, log_limit: int = None):
        super().__init__(poller)
        self.job_id = job_id
        self.log_limit = config.LOG_LIMIT if log_limit is None else log_limit

    @property
    def queries(self) -> JobQueries:
        return self.poller.queries

    async def mount(self) -> None:
        if self.mounted:
            return
        await self.queries.get_job(self.job_id)
        await self.queries.get_logs(self.job_id, self.log_limit)
        self._subscribe(JobQueryKeys.detail(self.job_id), detail_policy)
        self._subscribe(JobQueryKeys.logs(self.job_id, self.log_limit), logs_policy)
        self.mounted = True

    def job(self):
        entry = self.queries.cache.peek(JobQueryKeys.detail(self.job_id))
        return entry.value.data if entry is not None else None

    def logs(self):
        entry = self.queries.cache.peek(JobQueryKeys.logs(self.job_id, self.log_limit))
        return entry.value.data if entry is not None else []


class DashboardView(View):
    async def mount(self) -> None:
        if self.mounted:
            return
        queries = self.poller.queries
        await queries.get_stats()
        await queries.get_running()
        # job types are static for the session: read once and held, never polled
        await queries.get_types()
        self._subscribe(JobQueryKeys.stats(), every(config.STATS_POLL_SECONDS))
        self._subscribe(JobQueryKeys.running(), every(config.RUNNING_POLL_SECONDS))
        self._subscribe(JobQueryKeys.types(), never)
        self.mounted = True

    def _cached(self, key: QueryKey):
        entry = self.poller.queries.cache.peek(key)
        return entry.value.data if entry is not None else None

    def stats(self):
        return self._cached(JobQueryKeys.stats())

    def running(self):
        return self._cached(JobQueryKeys.running()) or []

    def types(self):
        return self._cached(JobQueryKeys.types()) or []
