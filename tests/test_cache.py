from datetime import datetime, timedelta, timezone

from fake_backend import FakeClock

from jobconsole.cache import QueryCache

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_read_inside_window_hits_and_outside_misses():
    clock = FakeClock()
    cache = QueryCache(clock=clock)
    cache.set(("jobs", "stats"), "snapshot")

    clock.advance(29)
    assert cache.get(("jobs", "stats"), 30).value == "snapshot"
    clock.advance(2)
    assert cache.get(("jobs", "stats"), 30) is None
    # the value is still there for views that render the last known state
    assert cache.peek(("jobs", "stats")).value == "snapshot"


def test_prefix_invalidation_only_touches_matching_keys():
    cache = QueryCache(clock=FakeClock())
    for key in [("jobs", "detail", 7), ("jobs", "detail", 70), ("jobs", "logs", 7, 100), ("jobs", "list", ())]:
        cache.set(key, "v")

    assert cache.invalidate(("jobs", "detail", 7)) == 1
    assert cache.invalidate(("jobs", "logs", 7)) == 1

    assert cache.peek(("jobs", "detail", 7)).stale
    assert cache.peek(("jobs", "logs", 7, 100)).stale
    assert not cache.peek(("jobs", "detail", 70)).stale
    assert not cache.peek(("jobs", "list", ())).stale
    assert cache.get(("jobs", "detail", 7), 60) is None


def test_older_write_never_replaces_fresher_value():
    cache = QueryCache(clock=FakeClock())
    key = ("jobs", "detail", 1)
    assert cache.set(key, "new", updated_at=T0 + timedelta(seconds=10))

    assert cache.set(key, "old", updated_at=T0) is False
    assert cache.peek(key).value == "new"

    assert cache.set(key, "same-time", updated_at=T0 + timedelta(seconds=10))
    assert cache.set(key, "newer", updated_at=T0 + timedelta(seconds=11))
    assert cache.peek(key).value == "newer"


def test_rejected_write_leaves_invalidated_entry_stale():
    cache = QueryCache(clock=FakeClock())
    key = ("jobs", "detail", 1)
    cache.set(key, "v2", updated_at=T0 + timedelta(seconds=2))
    cache.invalidate(key)
    assert cache.set(key, "v1", updated_at=T0) is False
    assert cache.peek(key).stale


def test_fetch_started_before_invalidation_is_stored_stale():
    cache = QueryCache(clock=FakeClock())
    key = ("jobs", "detail", 3)
    generation = cache.generation(key)
    cache.invalidate(("jobs", "detail", 3))

    assert cache.set(key, "pre-mutation", generation=generation)
    assert cache.peek(key).stale
    assert cache.get(key, 60) is None

    generation = cache.generation(key)
    cache.set(key, "post-mutation", generation=generation)
    assert cache.get(key, 60).value == "post-mutation"


def test_listeners_see_writes_and_invalidations():
    cache = QueryCache(clock=FakeClock())
    seen = []
    cache.add_listener(seen.append)
    cache.set(("jobs", "running"), [])
    cache.invalidate(("jobs",))
    cache.remove_listener(seen.append)
    cache.set(("jobs", "running"), [])
    assert seen == [("jobs", "running"), ("jobs", "running")]


def test_remove_drops_entries_under_prefix():
    cache = QueryCache(clock=FakeClock())
    cache.set(("jobs", "logs", 5, 100), [])
    cache.set(("jobs", "logs", 5, 20), [])
    cache.set(("jobs", "logs", 6, 100), [])
    assert cache.remove(("jobs", "logs", 5)) == 2
    assert ("jobs", "logs", 6, 100) in cache
    assert len(cache) == 1


def test_unused_entries_are_evicted_on_a_later_write():
    clock = FakeClock()
    cache = QueryCache(clock=clock, gc_after=60)
    evicted = []
    cache.add_eviction_listener(evicted.extend)
    cache.set(("jobs", "detail", 1), "old")
    cache.set(("jobs", "detail", 2), "read")

    clock.advance(50)
    cache.get(("jobs", "detail", 2), 5)
    clock.advance(20)
    cache.set(("jobs", "stats"), "snapshot")

    assert cache.keys() == [("jobs", "detail", 2), ("jobs", "stats")]
    assert evicted == [("jobs", "detail", 1)]
    assert ("jobs", "detail", 1) not in cache._generations


def test_retained_key_survives_until_released():
    clock = FakeClock()
    cache = QueryCache(clock=clock, gc_after=60)
    cache.set(("jobs", "running"), [])
    cache.retain(("jobs", "running"))

    clock.advance(120)
    assert cache.collect() == []

    cache.release(("jobs", "running"))
    assert cache.collect() == []
    clock.advance(60)
    assert cache.collect() == [("jobs", "running")]


def test_generation_of_an_inflight_fetch_outlives_collection():
    clock = FakeClock()
    cache = QueryCache(clock=clock, gc_after=60)
    key = ("jobs", "detail", 4)
    generation = cache.begin_fetch(key)
    cache.invalidate(("jobs", "detail"))
    clock.advance(120)
    cache.collect()

    cache.set(key, "pre-mutation", generation=generation)
    cache.end_fetch(key)
    assert cache.peek(key).stale


def test_failed_fetch_leaves_no_generation_behind():
    cache = QueryCache(clock=FakeClock())
    cache.begin_fetch(("jobs", "list", (("search", "x"),)))
    cache.end_fetch(("jobs", "list", (("search", "x"),)))
    assert cache._generations == {}
