"""Turn transient asset references into durable media URLs.

Two kinds of reference need work: embedded ``data:image/...;base64,`` payloads
and remote URLs on a foreign origin. Both are written to
``assets/<job_id>/<slot>.<ext>``; writing the same slot again overwrites the
same object, so normalizing twice yields the same URL and one stored file.
"""
import base64
import binascii
import re
from typing import Optional, Tuple

import requests

from faceless.config import settings
from faceless.errors import NormalizationError
from faceless.retry import RetryPolicy
from faceless.utils import storage
from faceless.utils.logging import get_logger


logger = get_logger(__name__)

_DATA_URI = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,(.+)$", re.DOTALL)


def extension_for(content_type: str) -> str:
    content_type = (content_type or "").lower()
    if "png" in content_type:
        return "png"
    if "webp" in content_type:
        return "webp"
    if "gif" in content_type:
        return "gif"
    return "jpg"


def decode_data_uri(ref: str) -> Tuple[str, bytes]:
    match = _DATA_URI.match(ref.strip())
    if not match:
        raise NormalizationError("Invalid base64 image format")
    content_type = match.group(1)
    try:
        data = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise NormalizationError(f"Invalid base64 image payload: {exc}") from exc
    return content_type, data


class AssetNormalizer:
    def __init__(self, retry: Optional[RetryPolicy] = None, timeout: Optional[float] = None) -> None:
        self.retry = retry or RetryPolicy.from_settings()
        self.timeout = settings.http_timeout_sec if timeout is None else timeout

    def normalize(self, ref: str, job_id: str, slot: str) -> str:
        if not ref:
            raise NormalizationError(f"Empty asset reference for {slot}")
        if storage.is_durable(ref):
            return ref
        if ref.startswith("data:"):
            content_type, data = decode_data_uri(ref)
        elif ref.startswith(("http://", "https://")):
            content_type, data = self.retry.call(lambda: self._fetch(ref), label=f"fetch {slot}")
        else:
            raise NormalizationError(f"Unsupported asset reference for {slot}: {ref[:40]}")

        key = storage.asset_key(job_id, slot, extension_for(content_type))
        try:
            url = storage.put_object(key, data)
        except OSError as exc:
            raise NormalizationError(f"Failed to store asset {key}: {exc}") from exc
        logger.info("asset normalized to %s", url, extra={"job_id": job_id})
        return url

    def _fetch(self, url: str) -> Tuple[str, bytes]:
        try:
            resp = requests.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise NormalizationError(f"Failed to fetch remote asset: {exc}") from exc
        content_type = resp.headers.get("content-type") or "image/jpeg"
        return content_type, resp.content
