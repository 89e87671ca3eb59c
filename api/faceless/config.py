import os
from typing import Optional

from dotenv import find_dotenv, load_dotenv


# A local .env, when present, fills in anything the environment leaves unset.
load_dotenv(find_dotenv())


def _default_redis_url() -> str:
    """Use container hostname inside Docker, localhost when running locally."""
    in_docker = os.path.exists("/.dockerenv") or os.getenv("IN_DOCKER") == "1"
    return "redis://redis:6379/0" if in_docker else "redis://localhost:6379/0"


class Settings:
    redis_url: str = os.getenv("REDIS_URL", _default_redis_url())
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    base_data_dir: str = os.getenv("DATA_DIR", "/app/data")
    public_media_url: str = os.getenv("PUBLIC_MEDIA_URL", "http://localhost:8000/media")
    cors_origins: str = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    app_url: Optional[str] = os.getenv("APP_URL")

    tts_provider: str = os.getenv("TTS_PROVIDER", "fal").lower()
    elevenlabs_api_key: Optional[str] = os.getenv("ELEVENLABS_API_KEY")
    elevenlabs_voice_id: Optional[str] = os.getenv("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")
    fal_key: Optional[str] = os.getenv("FAL_KEY")
    fal_base_url: str = os.getenv("FAL_BASE_URL", "https://fal.run")
    default_voice_sample_url: str = os.getenv(
        "DEFAULT_VOICE_SAMPLE_URL",
        "https://storage.googleapis.com/chatterbox-demo-samples/prompts/male_old_movie.flac",
    )

    json2video_api_key: Optional[str] = os.getenv("JSON2VIDEO_API_KEY")
    json2video_base_url: str = os.getenv("JSON2VIDEO_BASE_URL", "https://api.json2video.com/v2")
    click_sound_url: str = os.getenv("CLICK_SOUND_URL", "")
    default_music_url: str = os.getenv("DEFAULT_MUSIC_URL", "")

    lease_ttl_sec: float = float(os.getenv("LEASE_TTL_SEC", "60"))
    sanitize_batch_size: int = int(os.getenv("SANITIZE_BATCH_SIZE", "3"))
    http_timeout_sec: float = float(os.getenv("HTTP_TIMEOUT_SEC", "30"))
    step_max_attempts: int = int(os.getenv("STEP_MAX_ATTEMPTS", "1"))
    step_retry_backoff_sec: float = float(os.getenv("STEP_RETRY_BACKOFF_SEC", "1.0"))
    render_poll_interval_sec: int = int(os.getenv("RENDER_POLL_INTERVAL_SEC", "5"))
    skip_retry_delay_sec: int = int(os.getenv("SKIP_RETRY_DELAY_SEC", "10"))


settings = Settings()
