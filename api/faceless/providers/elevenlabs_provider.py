import os

import requests

from faceless.config import settings
from faceless.providers.base import SpeechProvider, SpeechResult
from faceless.utils.logging import get_logger
from faceless.utils.storage import audio_key, object_exists, public_url, put_object
from faceless.utils.text import estimate_speech_duration, split_text_for_tts


logger = get_logger(__name__)


class ElevenLabsProvider(SpeechProvider):
    def __init__(self) -> None:
        api_key = settings.elevenlabs_api_key or os.getenv("ELEVENLABS_API_KEY")
        if not api_key:
            raise RuntimeError("ELEVENLABS_API_KEY is required for ElevenLabs provider")
        self.api_key = api_key
        self.default_voice_id = settings.elevenlabs_voice_id or "21m00Tcm4TlvDq8ikWAM"

    def synthesize(self, text: str, voice_id: str) -> SpeechResult:
        voice = voice_id or self.default_voice_id
        key = audio_key(f"elevenlabs:{voice}", text)
        if object_exists(key):
            return SpeechResult(public_url(key), estimate_speech_duration(text))

        url = f"https://api.elevenlabs.io/v1/text-to-speech/{voice}"
        headers = {"xi-api-key": self.api_key, "accept": "audio/mpeg", "Content-Type": "application/json"}
        audio = bytearray()
        # MP3 frames concatenate cleanly, so chunks are appended as-is.
        for chunk in split_text_for_tts(text):
            payload = {
                "text": chunk,
                "model_id": "eleven_multilingual_v2",
                "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
            }
            resp = requests.post(url, headers=headers, json=payload, timeout=settings.http_timeout_sec)
            resp.raise_for_status()
            audio.extend(resp.content)
        logger.info("elevenlabs synthesized %d bytes", len(audio))
        return SpeechResult(put_object(key, bytes(audio)), estimate_speech_duration(text))
