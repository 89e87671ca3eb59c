import hashlib
from pathlib import Path

from faceless.config import settings


def media_root() -> Path:
    root = Path(settings.base_data_dir) / "media"
    root.mkdir(parents=True, exist_ok=True)
    return root


def public_url(relative_path: str) -> str:
    return f"{settings.public_media_url.rstrip('/')}/{relative_path.lstrip('/')}"


def is_durable(url: str) -> bool:
    """True when the URL is served from our own media origin."""
    base = settings.public_media_url.rstrip("/") + "/"
    return bool(url) and url.startswith(base)


def asset_key(job_id: str, slot: str, ext: str) -> str:
    return f"assets/{job_id}/{slot}.{ext}"


def audio_key(voice_id: str, text: str, ext: str = "mp3") -> str:
    digest = hashlib.sha256(f"{voice_id}|{text}".encode("utf-8")).hexdigest()
    return f"audio/{digest[:2]}/{digest}.{ext}"


def put_object(key: str, data: bytes) -> str:
    """Write (or overwrite) the object at ``key`` and return its public URL."""
    path = media_root() / key
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".part")
    tmp.write_bytes(data)
    tmp.replace(path)
    return public_url(key)


def object_exists(key: str) -> bool:
    return (media_root() / key).exists()
