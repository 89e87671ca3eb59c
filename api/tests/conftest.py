import base64
import threading
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import pytest

from faceless.config import settings
from faceless.driver import JobDriver
from faceless.lease import LeaseManager
from faceless.models import Job, JobInput, utcnow
from faceless.normalizer import AssetNormalizer
from faceless.providers.base import SpeechProvider, SpeechResult
from faceless.render import RenderClient, RenderStatus
from faceless.retry import RetryPolicy
from faceless.store import JobStore, decode_job, encode_fields, is_writable, job_to_fields, token_matches


MEDIA = "http://media.test/media"
PNG_DATA_URI = "data:image/png;base64," + base64.b64encode(b"\x89PNG fake image bytes").decode()


class MemoryJobStore(JobStore):
    """Same hash encoding and CAS rules as the Redis store, kept in a dict."""

    def __init__(self) -> None:
        self._rows: Dict[str, Dict[str, str]] = {}
        self._logs: Dict[str, List[str]] = defaultdict(list)
        self._videos: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.writes = 0

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            row = self._rows.get(job_id)
            row = dict(row) if row else None
        return decode_job(row) if row else None

    def create(self, job: Job) -> None:
        with self._lock:
            if job.id in self._rows:
                raise ValueError(f"Job already exists: {job.id}")
            self._rows[job.id] = encode_fields(job_to_fields(job))

    def compare_and_set(self, job_id: str, expected_updated_at: Optional[datetime], updates: Mapping[str, Any]) -> bool:
        stamped = dict(updates)
        stamped.setdefault("updated_at", utcnow())
        with self._lock:
            row = self._rows.get(job_id)
            if row is None:
                return False
            if expected_updated_at is not None and not token_matches(row.get("updated_at"), expected_updated_at):
                return False
            if not is_writable(row.get("status")):
                return False
            row.update(encode_fields(stamped))
            self.writes += 1
        return True

    def put_raw(self, job_id: str, fields: Mapping[str, str]) -> None:
        with self._lock:
            self._rows.setdefault(job_id, {}).update(fields)

    def save_video(self, job_id: str, record: Dict[str, Any]) -> None:
        self._videos[job_id] = record

    def get_video(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self._videos.get(job_id)

    def append_log(self, job_id: str, message: str) -> None:
        self._logs[job_id].append(message)

    def get_logs(self, job_id: str, limit: int = 200) -> List[str]:
        return self._logs[job_id][-limit:]


class FakeSpeech(SpeechProvider):
    def __init__(self, duration: float = 6.0) -> None:
        self.duration = duration
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    def synthesize(self, text: str, voice_id: str) -> SpeechResult:
        self.calls.append((text, voice_id))
        if self.error is not None:
            raise self.error
        return SpeechResult(f"https://cdn.test/audio/{len(self.calls)}.mp3", self.duration)


class FakeRender(RenderClient):
    def __init__(self) -> None:
        self.submitted: List[Dict[str, Any]] = []
        self.polled: List[str] = []
        self.next_status = RenderStatus(status="rendering")

    def submit(self, payload: Dict[str, Any]) -> str:
        self.submitted.append(payload)
        return f"proj-{len(self.submitted)}"

    def poll(self, render_id: str) -> RenderStatus:
        self.polled.append(render_id)
        return self.next_status


@pytest.fixture(autouse=True)
def media_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "base_data_dir", str(tmp_path))
    monkeypatch.setattr(settings, "public_media_url", MEDIA)
    monkeypatch.setattr(settings, "app_url", None)
    monkeypatch.setattr(settings, "click_sound_url", "")
    monkeypatch.setattr(settings, "default_music_url", "")
    return tmp_path


@pytest.fixture
def store() -> MemoryJobStore:
    return MemoryJobStore()


@pytest.fixture
def speech() -> FakeSpeech:
    return FakeSpeech()


@pytest.fixture
def render() -> FakeRender:
    return FakeRender()


@pytest.fixture
def driver(store, speech, render) -> JobDriver:
    normalizer = AssetNormalizer(retry=RetryPolicy(max_attempts=1))
    return JobDriver(store, speech, render, normalizer=normalizer, leases=LeaseManager(store, ttl_sec=60), batch_size=3)


@pytest.fixture
def make_job(store):
    def _make(scenes=None, job_id: str = "job-1", **cursor: Any) -> Job:
        if scenes is None:
            scenes = [{"text": f"Scene number {i}.", "assetUrl": f"{MEDIA}/assets/seed/{i}.jpg"} for i in range(3)]
        data = {"scenes": scenes, "voiceId": "voice-a", **cursor}
        job = Job(id=job_id, input_data=JobInput.model_validate(data))
        store.create(job)
        return job

    return _make
