import pytest
from structlog.testing import capture_logs

from fake_backend import SteppedSleep, settle

from jobconsole.pagination import PaginationParams
from jobconsole.polling import (
    DashboardView,
    JobDetailView,
    Poller,
    View,
    detail_policy,
    every,
    logs_policy,
    never,
)
from jobconsole.queries import JobQueryKeys


@pytest.mark.parametrize("status,expected", [
    ("running", 2.0),
    ("pending", None),
    ("completed", None),
    ("failed", None),
    ("cancelled", None),
    (None, None),
])
def test_detail_policy_polls_only_running(status, expected):
    assert detail_policy(status) == expected


def test_logs_and_constant_policies():
    assert logs_policy("running") == 3.0
    assert logs_policy("pending") is None
    assert every(30)("completed") == 30
    assert never("running") is None


@pytest.mark.asyncio
async def test_running_job_polls_every_two_seconds_until_completed(backend, queries):
    backend.add_job(id=1, status="running")
    await queries.get_job(1)
    sleep = SteppedSleep()
    poller = Poller(queries, sleep=sleep)
    handle = poller.start(JobQueryKeys.detail(1), detail_policy)

    await sleep.tick()
    await settle(lambda: handle.reads == 1)
    await sleep.tick()
    await settle(lambda: handle.reads == 2)

    backend.touch(1, status="completed", progress=100)
    await sleep.tick()
    await settle(lambda: handle.reads == 3)
    await settle()

    assert sleep.requested == [2.0, 2.0, 2.0]
    assert sleep.pending == 0
    assert handle.reads == 3
    assert queries.status_for(JobQueryKeys.detail(1)) == "completed"
    poller.close()


@pytest.mark.asyncio
async def test_pending_job_does_not_poll_until_seen_running(backend, queries):
    backend.add_job(id=2, status="pending")
    await queries.get_job(2)
    sleep = SteppedSleep()
    poller = Poller(queries, sleep=sleep)
    handle = poller.start(JobQueryKeys.detail(2), detail_policy)

    await settle()
    assert sleep.requested == []

    # a manual refresh reveals the job started; the idle subscription wakes up
    backend.touch(2, status="running")
    await queries.get_job(2, force=True)
    await settle(lambda: sleep.pending == 1)
    assert sleep.requested == [2.0]
    assert handle.reads == 0
    poller.close()


@pytest.mark.asyncio
async def test_status_turning_terminal_mid_sleep_skips_the_read(backend, queries):
    backend.add_job(id=3, status="running")
    await queries.get_job(3)
    sleep = SteppedSleep()
    poller = Poller(queries, sleep=sleep)
    handle = poller.start(JobQueryKeys.detail(3), detail_policy)
    await settle(lambda: sleep.pending == 1)

    backend.touch(3, status="cancelled")
    await queries.get_job(3, force=True)
    calls_before = backend.count("GET", "/admin/jobs/3")
    await sleep.tick()
    await settle()

    assert handle.reads == 0
    assert backend.count("GET", "/admin/jobs/3") == calls_before
    poller.close()


@pytest.mark.asyncio
async def test_logs_poll_every_three_seconds_while_detail_is_running(backend, queries):
    backend.add_job(id=4, status="running")
    await queries.get_job(4)
    await queries.get_logs(4)
    sleep = SteppedSleep()
    poller = Poller(queries, sleep=sleep)
    handle = poller.start(JobQueryKeys.logs(4, 100), logs_policy)

    backend.add_log(4, "halfway")
    await sleep.tick()
    await settle(lambda: handle.reads == 1)

    assert sleep.requested[0] == 3.0
    logs = queries.cache.peek(JobQueryKeys.logs(4, 100)).value.data
    assert [log.message for log in logs] == ["halfway"]
    poller.close()


@pytest.mark.asyncio
async def test_poll_failure_keeps_cadence(backend, queries):
    backend.add_job(id=5, status="running")
    await queries.get_job(5)
    sleep = SteppedSleep()
    poller = Poller(queries, sleep=sleep)
    handle = poller.start(JobQueryKeys.detail(5), detail_policy)

    backend.down = True
    await sleep.tick()
    await settle(lambda: handle.reads == 1)
    await settle(lambda: sleep.pending == 1)

    assert sleep.requested == [2.0, 2.0]
    assert queries.status_for(JobQueryKeys.detail(5)) == "running"
    poller.close()


@pytest.mark.asyncio
async def test_stop_cancels_the_subscription_task(backend, queries):
    backend.add_job(id=6, status="running")
    await queries.get_job(6)
    poller = Poller(queries, sleep=SteppedSleep())
    handle = poller.start(JobQueryKeys.detail(6), detail_policy)
    await settle()

    poller.stop(handle)
    await settle(lambda: not handle.active)

    assert poller.handles == []
    poller.stop(handle)  # stopping twice is harmless


@pytest.mark.asyncio
async def test_detail_view_mount_and_unmount(backend, queries):
    backend.add_job(id=7, status="running")
    sleep = SteppedSleep()
    poller = Poller(queries, sleep=sleep)
    view = JobDetailView(poller, 7)

    await view.mount()
    await settle(lambda: sleep.pending == 2)
    assert sorted(sleep.requested) == [2.0, 3.0]
    assert view.job().status == "running"
    assert view.logs() == []

    view.unmount()
    await settle(lambda: all(not h.active for h in poller.handles))
    assert poller.handles == []
    assert not view.mounted


@pytest.mark.asyncio
async def test_hidden_view_stops_reading_until_shown(backend, queries):
    backend.add_job(id=8, status="running")
    sleep = SteppedSleep()
    poller = Poller(queries, sleep=sleep)
    view = JobDetailView(poller, 8)
    await view.mount()
    await settle(lambda: sleep.pending == 2)

    view.hide()
    await sleep.tick()
    await settle()
    assert all(h.reads == 0 for h in view.handles)
    assert sleep.pending == 0

    view.show()
    await settle(lambda: sleep.pending == 2)
    assert len(sleep.requested) == 4
    view.unmount()


@pytest.mark.asyncio
async def test_dashboard_polls_aggregates_and_reads_types_once(backend, queries):
    backend.add_job(id=9, status="completed")
    sleep = SteppedSleep()
    poller = Poller(queries, sleep=sleep)
    view = DashboardView(poller)

    await view.mount()
    await settle(lambda: sleep.pending == 2)
    assert sorted(sleep.requested) == [5.0, 30.0]

    await sleep.tick()
    stats_handle, running_handle, types_handle = view.handles
    await settle(lambda: stats_handle.reads == 1 and running_handle.reads == 1)

    assert backend.count("GET", "/admin/jobs/stats") == 2
    assert backend.count("GET", "/admin/jobs/running") == 2
    assert backend.count("GET", "/admin/jobs/types") == 1
    assert view.stats().total.completed == 1
    assert view.running() == []
    assert [t.type for t in view.types()] == ["email", "report"]
    assert types_handle.reads == 0
    assert JobQueryKeys.types() in queries.cache._retained
    view.unmount()
    poller.close()


@pytest.mark.asyncio
async def test_refetch_error_is_logged_and_polling_continues(backend, queries):
    # a list key nobody has read yet has no fetcher to poll with
    key = JobQueryKeys.list(PaginationParams())
    sleep = SteppedSleep()
    poller = Poller(queries, sleep=sleep)

    with capture_logs() as logs:
        handle = poller.start(key, every(1))
        await sleep.tick()
        await settle(lambda: handle.reads == 1)
        await settle(lambda: sleep.pending == 1)

    assert handle.active
    assert sleep.requested == [1, 1]
    assert "poll_crashed" in [entry["event"] for entry in logs]
    poller.close()


@pytest.mark.asyncio
async def test_subscription_keeps_its_key_cached_until_stopped(backend, queries, clock):
    poller = Poller(queries, sleep=SteppedSleep())
    await queries.get_types()
    handle = poller.start(JobQueryKeys.types(), never)

    clock.advance(queries.cache.gc_after + 1)
    await queries.get_stats()
    assert JobQueryKeys.types() in queries.cache

    poller.stop(handle)
    clock.advance(queries.cache.gc_after + 1)
    await queries.get_stats(force=True)
    assert JobQueryKeys.types() not in queries.cache
    poller.close()


@pytest.mark.asyncio
async def test_view_must_implement_mount(queries):
    with pytest.raises(TypeError):
        View(Poller(queries))
