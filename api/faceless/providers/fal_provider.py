import requests

from faceless.config import settings
from faceless.errors import SynthesisError
from faceless.providers.base import SpeechProvider, SpeechResult
from faceless.utils.text import estimate_speech_duration, split_text_for_tts


CHATTERBOX_MODEL = "fal-ai/chatterbox/text-to-speech/multilingual"
MAX_CHARS = 280


class FalChatterboxProvider(SpeechProvider):
    """Zero-shot voice cloning: ``voice_id`` is the URL of a voice sample."""

    def __init__(self, language: str = "english") -> None:
        if not settings.fal_key:
            raise RuntimeError("FAL_KEY is required for fal provider")
        self.api_key = settings.fal_key
        self.language = language

    def _generate(self, text: str, voice_sample_url: str) -> str:
        resp = requests.post(
            f"{settings.fal_base_url.rstrip('/')}/{CHATTERBOX_MODEL}",
            headers={"Authorization": f"Key {self.api_key}", "Content-Type": "application/json"},
            json={
                "text": text,
                "voice": voice_sample_url,
                "custom_audio_language": self.language,
                # Low cfg_scale keeps the cloned voice closer to the sample.
                "exaggeration": 0.65,
                "temperature": 0.7,
                "cfg_scale": 0.15,
            },
            timeout=settings.http_timeout_sec,
        )
        resp.raise_for_status()
        audio_url = ((resp.json() or {}).get("audio") or {}).get("url")
        if not audio_url:
            raise RuntimeError("No audio URL from Chatterbox TTS")
        return audio_url

    def synthesize(self, text: str, voice_id: str) -> SpeechResult:
        chunks = split_text_for_tts(text, max_chars=MAX_CHARS)
        if len(chunks) != 1:
            # One request narrates one chunk; there is no step that joins chunk audio.
            raise SynthesisError(
                f"Scene text is {len(text)} characters; fal narration supports at most {MAX_CHARS} per scene"
            )
        sample = voice_id or settings.default_voice_sample_url
        return SpeechResult(self._generate(chunks[0], sample), estimate_speech_duration(text))
