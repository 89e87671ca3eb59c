"""One-step-per-call job driver.

``advance`` loads the job, takes the lease, runs exactly one unit of work for
the current cursor phase and writes the new cursor back in the same guarded
write that releases the lease. A crash at any point leaves a record that the
next call continues from as if nothing happened.
"""
import math
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from faceless.composition import CompositionOptions, build_composition
from faceless.config import settings
from faceless.errors import (
    JobError,
    JobNotFound,
    JobValidationError,
    LeaseContention,
    NormalizationError,
    RenderFailure,
    SanitationBatchError,
)
from faceless.lease import LeaseManager, LeaseResult
from faceless.models import (
    AwaitingRenderCompletion,
    AwaitingRenderSubmission,
    AwaitingSanitation,
    AwaitingScenes,
    Done,
    Job,
    PendingRender,
    Phase,
    cursor_phase,
    utcnow,
)
from faceless.normalizer import AssetNormalizer
from faceless.providers.base import SpeechProvider
from faceless.render import RenderClient
from faceless.schemas import AdvanceResult, JobStatusResponse
from faceless.store import JobStore
from faceless.synthesizer import SceneSynthesizer
from faceless.utils import storage
from faceless.utils.logging import get_logger


logger = get_logger(__name__)

NO_SCENES_MESSAGE = "No scenes provided for faceless video"

StepOutcome = Tuple[AdvanceResult, Dict[str, Any]]


# Log name for the unit of work each cursor phase runs.
STEP_NAMES = {
    AwaitingScenes: "synthesize_scene",
    AwaitingSanitation: "sanitize_assets",
    AwaitingRenderSubmission: "submit_render",
    AwaitingRenderCompletion: "check_render",
    Done: "done",
}


def scene_progress(done: int, total: int) -> int:
    return min(90, math.floor(done / total * 90)) if total else 0


def asset_slot(position: int) -> str:
    return f"asset_{position}"


class JobDriver:
    def __init__(
        self,
        store: JobStore,
        provider: SpeechProvider,
        render_client: RenderClient,
        normalizer: Optional[AssetNormalizer] = None,
        leases: Optional[LeaseManager] = None,
        batch_size: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.render_client = render_client
        self.normalizer = normalizer or AssetNormalizer()
        self.synthesizer = SceneSynthesizer(provider, self.normalizer)
        self.leases = leases or LeaseManager(store, clock=clock)
        self.batch_size = batch_size or settings.sanitize_batch_size
        self.clock = clock

    # -- entry points -------------------------------------------------------

    def advance(self, job_id: str) -> AdvanceResult:
        job = self._load(job_id)
        if isinstance(job, AdvanceResult):
            return job
        if job.is_terminal:
            return self._terminal_result(job)
        if not job.input_data.scenes:
            return self._reject(job, NO_SCENES_MESSAGE)

        try:
            return self._step(job)
        except LeaseContention as exc:
            logger.info("skipped: %s", exc, extra={"job_id": job_id})
            return AdvanceResult(skipped=True)

    def _step(self, job: Job) -> AdvanceResult:
        lease = self.leases.acquire(job)
        if not lease.ok or lease.job is None:
            raise LeaseContention("lease is held by another invocation")

        job = lease.job
        phase = cursor_phase(job, storage.is_durable)
        step = STEP_NAMES[type(phase)]
        logger.info("running step %s", step, extra={"job_id": job.id, "step": step})
        try:
            result, updates = self._run(job, phase)
        except JobError as exc:
            return self._fail(lease, exc)
        except Exception as exc:
            self._fail(lease, exc)
            raise

        if not self.leases.release(lease, updates):
            raise LeaseContention("lease was lost before the step could be saved")
        return result

    def status(self, job_id: str) -> JobStatusResponse:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        cursor = job.input_data
        return JobStatusResponse(
            job_id=job.id,
            status=job.status,
            progress=job.progress,
            progress_message=job.progress_message,
            current_scene_index=cursor.current_scene_index,
            total_scenes=cursor.total_scenes,
            processed_scenes_count=len(cursor.processed_scenes),
            is_rendering=cursor.pending_render is not None and not job.is_terminal,
            result=job.result_data if job.status == "completed" else None,
            error=job.error if job.status == "failed" else None,
        )

    # -- dispatch -----------------------------------------------------------

    def _run(self, job: Job, phase: Phase) -> StepOutcome:
        if isinstance(phase, Done):
            return self._terminal_result(job), {}
        if isinstance(phase, AwaitingRenderCompletion):
            return self._check_render(job, phase)
        if isinstance(phase, AwaitingScenes):
            return self._process_scene(job, phase)
        if isinstance(phase, AwaitingSanitation):
            return self._sanitize(job, phase)
        if isinstance(phase, AwaitingRenderSubmission):
            return self._submit_render(job)
        raise TypeError(f"unknown cursor phase: {phase!r}")

    def _check_render(self, job: Job, phase: AwaitingRenderCompletion) -> StepOutcome:
        render_id = phase.pending_render.render_id
        self._log(job.id, f"Checking render: {render_id}")
        status = self.render_client.poll(render_id)

        if status.failed:
            raise RenderFailure(status.status)

        if not status.completed:
            message = f"Rendering: {status.status}" if status.status else "Rendering final video..."
            return AdvanceResult(completed=False, status=status.status), {"progress_message": message}

        if not status.video_url:
            raise RenderFailure("render completed without a video URL")

        cursor = job.input_data
        scenes = cursor.processed_scenes
        total_duration = sum(scene.duration for scene in scenes)
        assets = [{"url": s.asset_url, "source": "collected", "text": s.text} for s in scenes]
        self._save_video(job, status.video_url, total_duration, assets)
        self._log(job.id, f"Video completed: {status.video_url}")
        updates = {
            "status": "completed",
            "progress": 100,
            "progress_message": "Video ready!",
            "result_data": {"videoUrl": status.video_url, "duration": total_duration, "assets": assets},
            "input_data": cursor.model_copy(update={"pending_render": None}),
        }
        return AdvanceResult(completed=True, video_url=status.video_url), updates

    def _process_scene(self, job: Job, phase: AwaitingScenes) -> StepOutcome:
        cursor = job.input_data
        index = phase.next_index
        scene = self.synthesizer.synthesize_scene(cursor.scenes[index], index, job.id, cursor.voice_id)
        cursor = cursor.with_scene(scene)
        done = cursor.current_scene_index
        message = f"Processed scene {done} of {phase.total}"
        self._log(job.id, message)
        updates = {
            "input_data": cursor,
            "progress": scene_progress(done, phase.total),
            "progress_message": message,
        }
        return AdvanceResult(processed=True, scene_index=index), updates

    def _sanitize(self, job: Job, phase: AwaitingSanitation) -> StepOutcome:
        cursor = job.input_data
        assets = list(cursor.all_assets)
        batch = phase.pending[: self.batch_size]
        for position, ref in batch:
            try:
                assets[position] = self.normalizer.normalize(ref, job.id, asset_slot(position))
            except NormalizationError as exc:
                raise SanitationBatchError(f"Asset {position + 1} could not be stored: {exc}") from exc
        remaining = len(phase.pending) - len(batch)
        message = f"Preparing assets ({remaining} remaining)" if remaining else "Assets ready"
        self._log(job.id, f"Sanitized {len(batch)} asset(s), {remaining} remaining")
        updates = {
            "input_data": cursor.model_copy(update={"all_assets": assets}),
            "progress": 92,
            "progress_message": message,
        }
        return AdvanceResult(sanitized=True, count=len(batch)), updates

    def _submit_render(self, job: Job) -> StepOutcome:
        cursor = job.input_data
        options = CompositionOptions.from_cursor(
            cursor,
            default_music_url=settings.default_music_url or None,
            click_sound_url=settings.click_sound_url or None,
            webhook_url=f"{settings.app_url.rstrip('/')}/webhooks/render" if settings.app_url else None,
            movie_id=job.id,
        )
        payload = build_composition(cursor.processed_scenes, options, cursor.all_assets)
        render_id = self.render_client.submit(payload)
        self._log(job.id, f"Render started: {render_id}")
        pending = PendingRender(render_id=render_id, started_at=int(self.clock().timestamp() * 1000))
        updates = {
            "input_data": cursor.model_copy(update={"pending_render": pending}),
            "progress": 95,
            "progress_message": "Rendering video...",
        }
        return AdvanceResult(rendering=True, render_id=render_id), updates

    # -- helpers ------------------------------------------------------------

    def _load(self, job_id: str):
        try:
            job = self.store.get(job_id)
        except ValidationError as exc:
            return self._reject_corrupt(job_id, exc.errors()[0].get("msg", str(exc)))
        except ValueError as exc:
            # Structured fields that are not valid JSON.
            return self._reject_corrupt(job_id, str(exc))
        if job is None:
            raise JobNotFound(job_id)
        return job

    def _reject_corrupt(self, job_id: str, detail: str) -> AdvanceResult:
        error = JobValidationError(f"Corrupt job cursor: {detail}")
        logger.error("job record failed validation: %s", detail, extra={"job_id": job_id})
        if self.store.compare_and_set(job_id, None, {"status": "failed", "error": str(error), "is_processing": False}):
            self._log(job_id, f"Error: {error}")
        return AdvanceResult(failed=True, error=str(error))

    def _terminal_result(self, job: Job) -> AdvanceResult:
        if job.status == "completed":
            video_url = (job.result_data or {}).get("videoUrl")
            return AdvanceResult(completed=True, video_url=video_url)
        return AdvanceResult(failed=True, error=job.error or "failed")

    def _reject(self, job: Job, message: str) -> AdvanceResult:
        logger.warning(message, extra={"job_id": job.id})
        if self.store.compare_and_set(job.id, None, {"status": "failed", "error": message, "is_processing": False}):
            self._log(job.id, f"Error: {message}")
        return AdvanceResult(failed=True, error=message)

    def _fail(self, lease: LeaseResult, exc: BaseException) -> AdvanceResult:
        job_id = lease.job.id if lease.job is not None else ""
        message = str(exc) or exc.__class__.__name__
        logger.error("step failed: %s", message, exc_info=not isinstance(exc, JobError), extra={"job_id": job_id})
        updates = {"status": "failed", "error": message, "progress_message": "Failed"}
        if not self.leases.release(lease, updates):
            return AdvanceResult(skipped=True)
        self._log(job_id, f"Error: {message}")
        return AdvanceResult(failed=True, error=message)

    def _save_video(self, job: Job, video_url: str, duration: float, assets) -> None:
        scenes = job.input_data.processed_scenes
        record = {
            "job_id": job.id,
            "user_id": job.user_id,
            "video_url": video_url,
            "script": "\n\n".join(scene.text for scene in scenes),
            "mode": job.job_type,
            "duration": round(duration),
            "has_captions": job.input_data.enable_captions,
            "has_music": job.input_data.enable_background_music,
            "assets": assets,
            "thumbnail_url": scenes[0].asset_url if scenes else None,
        }
        try:
            self.store.save_video(job.id, record)
        except Exception:  # noqa: BLE001
            logger.exception("failed to save video to history", extra={"job_id": job.id})

    def _log(self, job_id: str, message: str) -> None:
        logger.info(message, extra={"job_id": job_id})
        self.store.append_log(job_id, message)


def get_driver() -> JobDriver:
    from faceless.providers.factory import get_speech_provider
    from faceless.render import get_render_client
    from faceless.store import get_store

    return JobDriver(get_store(), get_speech_provider(), get_render_client())
