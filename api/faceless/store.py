"""Durable job records.

A job is one Redis hash (``job:<id>``) whose fields mirror ``Job``. Structured
fields (``input_data``, ``result_data``) are stored as JSON strings. Writes that
must not race go through ``compare_and_set``, which guards on the
``updated_at`` value the caller last saw.
"""
import json
from abc import ABC, abstractmethod
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional

import redis
from pydantic import TypeAdapter, ValidationError

from faceless.config import settings
from faceless.models import TERMINAL_STATUSES, Job, JobInput, as_utc, utcnow
from faceless.utils.logging import get_logger


logger = get_logger(__name__)

_JSON_FIELDS = ("input_data", "result_data")
_BOOL_FIELDS = ("is_processing",)
_EVENT_FIELDS = ("status", "progress", "progress_message", "error")
_TIMESTAMP = TypeAdapter(datetime)


def _job_key(job_id: str) -> str:
    return f"job:{job_id}"


def _job_logs_key(job_id: str) -> str:
    return f"job:{job_id}:logs"


def events_channel(job_id: str) -> str:
    return f"job:{job_id}:events"


def _video_key(job_id: str) -> str:
    return f"video:{job_id}"


def format_ts(value: datetime) -> str:
    return value.isoformat()


def parse_ts(raw: Optional[str]) -> Optional[datetime]:
    """Read any ISO-8601 form (``Z`` suffix, millisecond precision, no offset)."""
    if not raw:
        return None
    try:
        return as_utc(_TIMESTAMP.validate_python(raw))
    except ValidationError:
        return None


def token_matches(stored: Optional[str], expected: datetime) -> bool:
    """Compare a stored ``updated_at`` with a lease token as instants, not as text."""
    current = parse_ts(stored)
    return current is not None and current == as_utc(expected)


def encode_fields(updates: Mapping[str, Any]) -> Dict[str, str]:
    """Flatten job field updates into Redis hash values.

    ``None`` is written as an empty string, which reads back as ``None``.
    """
    mapping: Dict[str, str] = {}
    for name, value in updates.items():
        if name == "input_data" and isinstance(value, JobInput):
            mapping[name] = json.dumps(value.to_record(), ensure_ascii=False)
        elif name in _JSON_FIELDS:
            mapping[name] = "" if value is None else json.dumps(value, ensure_ascii=False)
        elif name in _BOOL_FIELDS:
            mapping[name] = "1" if value else "0"
        elif isinstance(value, datetime):
            mapping[name] = format_ts(value)
        elif value is None:
            mapping[name] = ""
        else:
            mapping[name] = str(value)
    return mapping


def decode_job(data: Mapping[str, str]) -> Job:
    fields: Dict[str, Any] = {}
    for name, raw in data.items():
        if raw == "":
            continue
        if name in _JSON_FIELDS:
            fields[name] = json.loads(raw)
        elif name in _BOOL_FIELDS:
            fields[name] = raw == "1"
        else:
            fields[name] = raw
    return Job(**fields)


def job_to_fields(job: Job) -> Dict[str, Any]:
    return {
        "id": job.id,
        "status": job.status,
        "progress": job.progress,
        "progress_message": job.progress_message,
        "is_processing": job.is_processing,
        "updated_at": job.updated_at,
        "created_at": job.created_at,
        "user_id": job.user_id,
        "job_type": job.job_type,
        "input_data": job.input_data,
        "result_data": job.result_data,
        "error": job.error,
    }


def is_writable(status: Optional[str]) -> bool:
    """Completed and failed records accept no further writes."""
    return status not in TERMINAL_STATUSES


def _stamp(updates: Mapping[str, Any]) -> Dict[str, Any]:
    stamped = dict(updates)
    stamped.setdefault("updated_at", utcnow())
    return stamped


class JobStore(ABC):
    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    def create(self, job: Job) -> None:
        ...

    @abstractmethod
    def compare_and_set(self, job_id: str, expected_updated_at: Optional[datetime], updates: Mapping[str, Any]) -> bool:
        """Apply ``updates`` only if ``updated_at`` still equals the expected value.

        ``expected_updated_at=None`` skips the timestamp guard but still
        refuses to write to a terminal record.
        """

    @abstractmethod
    def save_video(self, job_id: str, record: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def get_video(self, job_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def append_log(self, job_id: str, message: str) -> None:
        ...

    @abstractmethod
    def get_logs(self, job_id: str, limit: int = 200) -> List[str]:
        ...


class RedisJobStore(JobStore):
    def __init__(self, client: "redis.Redis") -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisJobStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, job_id: str) -> Optional[Job]:
        data = self._redis.hgetall(_job_key(job_id))
        if not data:
            return None
        return decode_job(data)

    def create(self, job: Job) -> None:
        key = _job_key(job.id)
        if not self._redis.hsetnx(key, "id", job.id):
            raise ValueError(f"Job already exists: {job.id}")
        self._redis.hset(key, mapping=encode_fields(job_to_fields(job)))
        self._redis.delete(_job_logs_key(job.id))
        self.publish_event(job.id, {"type": "status", "status": job.status, "progress": job.progress})

    def compare_and_set(self, job_id: str, expected_updated_at: Optional[datetime], updates: Mapping[str, Any]) -> bool:
        key = _job_key(job_id)
        stamped = _stamp(updates)
        with self._redis.pipeline() as pipe:
            try:
                pipe.watch(key)
                current_ts, current_status = pipe.hmget(key, ["updated_at", "status"])
                if current_ts is None:
                    return False
                if expected_updated_at is not None and not token_matches(current_ts, expected_updated_at):
                    return False
                if not is_writable(current_status):
                    return False
                pipe.multi()
                pipe.hset(key, mapping=encode_fields(stamped))
                pipe.execute()
            except redis.WatchError:
                logger.info("concurrent write detected", extra={"job_id": job_id})
                return False
        self._publish_update(job_id, stamped)
        return True

    def save_video(self, job_id: str, record: Dict[str, Any]) -> None:
        self._redis.set(_video_key(job_id), json.dumps(record, ensure_ascii=False))
        user_id = record.get("user_id")
        if user_id:
            self._redis.sadd(f"videos:user:{user_id}", job_id)

    def get_video(self, job_id: str) -> Optional[Dict[str, Any]]:
        raw = self._redis.get(_video_key(job_id))
        return json.loads(raw) if raw else None

    def append_log(self, job_id: str, message: str) -> None:
        self._redis.rpush(_job_logs_key(job_id), message)
        self._redis.ltrim(_job_logs_key(job_id), -500, -1)
        self.publish_event(job_id, {"type": "log", "message": message})

    def get_logs(self, job_id: str, limit: int = 200) -> List[str]:
        return self._redis.lrange(_job_logs_key(job_id), -limit, -1)

    def publish_event(self, job_id: str, event: Dict[str, Any]) -> None:
        self._redis.publish(events_channel(job_id), json.dumps(event, ensure_ascii=False))

    def _publish_update(self, job_id: str, updates: Mapping[str, Any]) -> None:
        event = {name: updates[name] for name in _EVENT_FIELDS if name in updates}
        if event:
            self.publish_event(job_id, {"type": "status", **event})


@lru_cache(maxsize=1)
def get_store() -> JobStore:
    return RedisJobStore.from_url(settings.redis_url)
