from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class SpeechResult:
    audio_url: str
    duration: float


class SpeechProvider(ABC):
    @abstractmethod
    def synthesize(self, text: str, voice_id: str) -> SpeechResult:
        """Narrate ``text`` and return a durable audio URL with its duration in seconds."""
        ...
