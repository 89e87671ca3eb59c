"""TTL-bounded soft lock on a job record.

The lock is the ``is_processing`` flag plus the ``updated_at`` timestamp written
when it was taken. That timestamp doubles as the lease token: every write made
under the lease is a compare-and-set against it, so a holder whose lease expired
and was taken over cannot clobber the new holder's progress.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from faceless.config import settings
from faceless.models import Job, utcnow
from faceless.store import JobStore
from faceless.utils.logging import get_logger


logger = get_logger(__name__)


@dataclass
class LeaseResult:
    ok: bool
    job: Optional[Job] = None

    @property
    def token(self) -> Optional[datetime]:
        return self.job.updated_at if self.job is not None else None


class LeaseManager:
    def __init__(
        self,
        store: JobStore,
        ttl_sec: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.ttl_sec = settings.lease_ttl_sec if ttl_sec is None else ttl_sec
        self.clock = clock

    def is_held(self, job: Job) -> bool:
        if not job.is_processing:
            return False
        age = (self.clock() - job.updated_at).total_seconds()
        return age < self.ttl_sec

    def acquire(self, job: Job) -> LeaseResult:
        if self.is_held(job):
            age = (self.clock() - job.updated_at).total_seconds()
            logger.info("lease held (%.0fs ago), skipping", age, extra={"job_id": job.id})
            return LeaseResult(ok=False, job=job)

        now = self.clock()
        taken = self.store.compare_and_set(
            job.id,
            job.updated_at,
            {"status": "processing", "is_processing": True, "updated_at": now},
        )
        if not taken:
            logger.info("lease lost to a concurrent writer", extra={"job_id": job.id})
            return LeaseResult(ok=False, job=job)

        fresh = self.store.get(job.id)
        if fresh is None or fresh.updated_at != now:
            return LeaseResult(ok=False, job=fresh)
        return LeaseResult(ok=True, job=fresh)

    def release(self, lease: LeaseResult, updates: Optional[Mapping[str, Any]] = None) -> bool:
        """Clear the lock and apply the step's updates in one guarded write.

        Returns False when the lease was lost in the meantime; nothing is
        written in that case.
        """
        if lease.job is None:
            return False
        payload: Dict[str, Any] = dict(updates or {})
        payload["is_processing"] = False
        released = self.store.compare_and_set(lease.job.id, lease.token, payload)
        if not released:
            logger.warning("lease lost before release", extra={"job_id": lease.job.id})
        return released
