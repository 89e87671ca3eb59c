from datetime import datetime, timedelta, timezone

from faceless.lease import LeaseManager
from faceless.store import format_ts


T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_acquire_marks_record_and_returns_token(store, make_job):
    make_job()
    clock = Clock(T0)
    leases = LeaseManager(store, ttl_sec=60, clock=clock)

    lease = leases.acquire(store.get("job-1"))

    assert lease.ok
    assert lease.token == T0
    job = store.get("job-1")
    assert job.is_processing is True
    assert job.status == "processing"


def test_held_lease_blocks_until_ttl(store, make_job):
    make_job()
    clock = Clock(T0)
    leases = LeaseManager(store, ttl_sec=60, clock=clock)
    assert leases.acquire(store.get("job-1")).ok

    clock.now = T0 + timedelta(seconds=59)
    assert leases.acquire(store.get("job-1")).ok is False

    clock.now = T0 + timedelta(seconds=61)
    assert leases.acquire(store.get("job-1")).ok is True


def test_stale_snapshot_cannot_take_lease(store, make_job):
    make_job()
    leases = LeaseManager(store, ttl_sec=60, clock=Clock(T0))
    snapshot = store.get("job-1")
    store.put_raw("job-1", {"updated_at": format_ts(T0 - timedelta(seconds=1))})

    assert leases.acquire(snapshot).ok is False


def test_release_applies_updates_and_clears_flag(store, make_job):
    make_job()
    leases = LeaseManager(store, ttl_sec=60, clock=Clock(T0))
    lease = leases.acquire(store.get("job-1"))

    assert leases.release(lease, {"progress": 42})

    job = store.get("job-1")
    assert job.is_processing is False
    assert job.progress == 42


def test_release_after_takeover_writes_nothing(store, make_job):
    make_job()
    clock = Clock(T0)
    leases = LeaseManager(store, ttl_sec=60, clock=clock)
    first = leases.acquire(store.get("job-1"))

    clock.now = T0 + timedelta(minutes=5)
    second = leases.acquire(store.get("job-1"))
    assert second.ok

    assert leases.release(first, {"progress": 99}) is False
    job = store.get("job-1")
    assert job.progress == 0
    assert job.is_processing is True


def test_token_written_in_another_iso_form_still_matches(store, make_job):
    make_job()
    store.put_raw("job-1", {"updated_at": "2025-01-01T12:00:00.000Z", "is_processing": "0"})
    leases = LeaseManager(store, ttl_sec=60, clock=Clock(T0 + timedelta(seconds=5)))

    lease = leases.acquire(store.get("job-1"))

    assert lease.ok
    assert leases.release(lease, {"progress": 7})
    assert store.get("job-1").progress == 7


def test_naive_timestamp_is_read_as_utc(store, make_job):
    make_job()
    store.put_raw("job-1", {"updated_at": "2025-01-01T12:00:00", "is_processing": "1"})
    leases = LeaseManager(store, ttl_sec=60, clock=Clock(T0 + timedelta(seconds=30)))

    job = store.get("job-1")

    assert job.updated_at == T0
    assert leases.is_held(job)
    assert leases.acquire(job).ok is False
