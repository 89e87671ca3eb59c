from faceless.config import settings
from faceless.providers.base import SpeechProvider
from faceless.providers.gtts_provider import GTTSProvider
from faceless.providers.elevenlabs_provider import ElevenLabsProvider
from faceless.providers.fal_provider import FalChatterboxProvider


def get_speech_provider() -> SpeechProvider:
    name = (settings.tts_provider or "gtts").lower()
    if name == "fal" and settings.fal_key:
        return FalChatterboxProvider()
    if name == "elevenlabs" and settings.elevenlabs_api_key:
        return ElevenLabsProvider()
    return GTTSProvider()
