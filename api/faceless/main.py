import asyncio
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles
from redis import asyncio as aioredis

from faceless.config import settings
from faceless.driver import JobDriver, get_driver
from faceless.errors import JobNotFound
from faceless.models import Job, JobInput
from faceless.schemas import (
    CreateJobRequest,
    CreateJobResponse,
    JobLogsResponse,
    JobStatusResponse,
    RenderWebhook,
)
from faceless.store import JobStore, events_channel, get_store
from faceless.utils.logging import configure_json_logging, get_logger
from faceless.utils.storage import media_root


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_json_logging(settings.log_level)
    media_root()
    yield


app = FastAPI(title="Faceless Video API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Durable media (normalized assets, synthesized audio) served from our own origin.
app.mount("/media", StaticFiles(directory=str(Path(settings.base_data_dir) / "media"), check_dir=False), name="media")


def enqueue_advance(job_id: str, countdown: int = 0) -> None:
    from faceless.tasks import advance_job

    advance_job.apply_async(args=[job_id], countdown=countdown)


def build_job(req: CreateJobRequest) -> Job:
    cursor = JobInput(
        scenes=[{"text": s.text, "assetUrl": s.asset_url} for s in req.scenes],
        voice_id=req.voice_id,
        aspect_ratio=req.aspect_ratio,
        caption_style=req.caption_style,
        enable_captions=req.enable_captions,
        enable_background_music=req.enable_background_music,
        background_music_url=req.background_music_url,
        all_assets=req.all_assets,
    )
    return Job(
        id=str(uuid.uuid4()),
        status="pending",
        progress=0,
        progress_message="Job created, starting processing...",
        user_id=req.user_id or "anonymous",
        input_data=cursor,
    )


@app.post("/jobs", response_model=CreateJobResponse, response_model_by_alias=True)
def create_job(req: CreateJobRequest, store: JobStore = Depends(get_store)) -> CreateJobResponse:
    job = build_job(req)
    store.create(job)
    logger.info("job created with %d scenes", len(req.scenes), extra={"job_id": job.id})
    enqueue_advance(job.id)
    return CreateJobResponse(job_id=job.id)


@app.post("/jobs/{job_id}/advance")
def advance(job_id: str, driver: JobDriver = Depends(get_driver)) -> dict:
    try:
        result = driver.advance(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Job not found")
    except Exception as exc:  # noqa: BLE001
        logger.exception("advance failed", extra={"job_id": job_id})
        raise HTTPException(status_code=500, detail=str(exc))
    return result.to_payload()


@app.get("/jobs/{job_id}", response_model=JobStatusResponse, response_model_by_alias=True, response_model_exclude_none=True)
def get_job(job_id: str, driver: JobDriver = Depends(get_driver)) -> JobStatusResponse:
    try:
        return driver.status(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Job not found")


@app.get("/jobs/{job_id}/logs", response_model=JobLogsResponse, response_model_by_alias=True)
def get_job_logs(job_id: str, store: JobStore = Depends(get_store)) -> JobLogsResponse:
    if store.get(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobLogsResponse(job_id=job_id, logs=store.get_logs(job_id))


@app.post("/webhooks/render")
def render_webhook(body: RenderWebhook, store: JobStore = Depends(get_store)) -> dict:
    """Render-finished callback: schedule an advance instead of touching the job directly."""
    job_id = body.id
    if not job_id or store.get(job_id) is None:
        logger.warning("render webhook for unknown job (project=%s)", body.project)
        raise HTTPException(status_code=404, detail="Job not found")
    enqueue_advance(job_id)
    return {"received": True}


STREAM_POLL_TIMEOUT_SEC = 1.0
STREAM_IDLE_SLEEP_SEC = 0.05


def get_event_client() -> aioredis.Redis:
    return aioredis.Redis.from_url(settings.redis_url, decode_responses=True)


async def job_events(client: aioredis.Redis, job_id: str) -> AsyncIterator[str]:
    """Relay a job's progress events as SSE frames until the client disconnects."""
    pubsub = client.pubsub()
    channel = events_channel(job_id)
    await pubsub.subscribe(channel)
    try:
        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=STREAM_POLL_TIMEOUT_SEC)
            if message is None:
                await asyncio.sleep(STREAM_IDLE_SLEEP_SEC)
            elif message.get("type") == "message":
                yield f"data: {message.get('data')}\n\n"
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()


@app.get("/stream/{job_id}")
async def stream_events(job_id: str) -> StreamingResponse:
    client = get_event_client()

    async def event_generator() -> AsyncIterator[str]:
        try:
            async for frame in job_events(client, job_id):
                yield frame
        finally:
            await client.aclose()

    return StreamingResponse(event_generator(), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})
