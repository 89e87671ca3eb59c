import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from faceless.config import settings
from faceless.errors import RenderSubmissionError
from faceless.utils.logging import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RenderStatus:
    completed: bool = False
    failed: bool = False
    status: Optional[str] = None
    video_url: Optional[str] = None
    duration: Optional[float] = None


class RenderClient(ABC):
    @abstractmethod
    def submit(self, payload: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    def poll(self, render_id: str) -> RenderStatus:
        """Safe to call any number of times, in any order."""
        ...


class Json2VideoClient(RenderClient):
    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.api_key = api_key or settings.json2video_api_key
        self.base_url = (base_url or settings.json2video_base_url).rstrip("/")
        self.timeout = settings.http_timeout_sec if timeout is None else timeout

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise RenderSubmissionError("JSON2VIDEO_API_KEY environment variable is not set")
        return {"x-api-key": self.api_key, "Content-Type": "application/json"}

    def submit(self, payload: Dict[str, Any]) -> str:
        headers = self._headers()
        try:
            resp = requests.post(f"{self.base_url}/movies", json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RenderSubmissionError(f"Render service unavailable: {exc}") from exc
        if resp.status_code >= 400:
            raise RenderSubmissionError(f"Render API error: {resp.status_code} - {resp.text[:500]}")
        try:
            body = resp.json() or {}
        except ValueError as exc:
            raise RenderSubmissionError("Render API returned a non-JSON response") from exc
        project = body.get("project")
        if not project:
            raise RenderSubmissionError(f"Render API returned no project id: {body.get('message') or body}")
        logger.info("render submitted", extra={"render_id": project})
        return str(project)

    def poll(self, render_id: str) -> RenderStatus:
        try:
            resp = requests.get(
                f"{self.base_url}/movies",
                params={"project": render_id, "_t": int(time.time() * 1000)},
                headers={"x-api-key": self.api_key or ""},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("render poll failed: %s", exc, extra={"render_id": render_id})
            return RenderStatus(status="connection error")
        if not resp.ok:
            return RenderStatus(status=f"HTTP {resp.status_code}")
        try:
            body = resp.json() or {}
        except ValueError:
            return RenderStatus(status="invalid response")
        return parse_movie_status(body)


def parse_movie_status(body: Dict[str, Any]) -> RenderStatus:
    movie = body.get("movie")
    if isinstance(movie, dict):
        state = movie.get("status")
        if state == "done":
            return RenderStatus(completed=True, status="done", video_url=movie.get("url"), duration=movie.get("duration"))
        if state == "error":
            return RenderStatus(failed=True, status=movie.get("message") or "error")
        return RenderStatus(status=state or "processing")
    # Older responses put the URL directly under "movie".
    if body.get("status") == "done" and movie:
        return RenderStatus(completed=True, status="done", video_url=str(movie), duration=body.get("duration"))
    if body.get("status") == "error":
        return RenderStatus(failed=True, status=body.get("message") or "error")
    return RenderStatus(status=body.get("status") or "processing")


def get_render_client() -> RenderClient:
    return Json2VideoClient()
