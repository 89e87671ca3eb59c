from typing import Optional

from faceless.celery_app import celery_app
from faceless.config import settings
from faceless.driver import get_driver
from faceless.errors import JobNotFound
from faceless.schemas import AdvanceResult
from faceless.utils.logging import get_logger


logger = get_logger(__name__)


def next_delay(result: AdvanceResult) -> Optional[int]:
    """Seconds until the next advance call, or None when the job is finished."""
    if result.is_terminal:
        return None
    if result.skipped:
        return settings.skip_retry_delay_sec
    if result.completed is False:
        return settings.render_poll_interval_sec
    if result.rendering:
        return settings.render_poll_interval_sec
    return 0


# No autoretry: failed steps are terminal and the driver has already recorded them.
@celery_app.task(bind=True, name="advance_job")
def advance_job(self, job_id: str) -> dict:
    try:
        result = get_driver().advance(job_id)
    except JobNotFound:
        logger.warning("advance requested for unknown job", extra={"job_id": job_id})
        return {"error": "Job not found"}

    delay = next_delay(result)
    if delay is not None:
        advance_job.apply_async(args=[job_id], countdown=delay)
    return result.to_payload()
