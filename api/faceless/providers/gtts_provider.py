import io

from gtts import gTTS

from faceless.providers.base import SpeechProvider, SpeechResult
from faceless.utils.storage import audio_key, put_object, public_url, object_exists
from faceless.utils.text import estimate_speech_duration


class GTTSProvider(SpeechProvider):
    """Keyless fallback. ``voice_id`` is read as a language code when it looks like one."""

    def __init__(self, lang: str = "en") -> None:
        self.lang = lang

    def synthesize(self, text: str, voice_id: str) -> SpeechResult:
        lang = voice_id if voice_id and len(voice_id) <= 5 else self.lang
        key = audio_key(f"gtts:{lang}", text)
        if object_exists(key):
            return SpeechResult(public_url(key), estimate_speech_duration(text))
        buf = io.BytesIO()
        gTTS(text=text, lang=lang).write_to_fp(buf)
        url = put_object(key, buf.getvalue())
        return SpeechResult(url, estimate_speech_duration(text))
