from typing import Optional

from faceless.errors import JobError, SynthesisError
from faceless.models import ProcessedScene, SceneInput
from faceless.normalizer import AssetNormalizer
from faceless.providers.base import SpeechProvider
from faceless.retry import RetryPolicy
from faceless.utils.logging import get_logger


logger = get_logger(__name__)


def scene_slot(index: int) -> str:
    return f"image_{index}"


class SceneSynthesizer:
    def __init__(
        self,
        provider: SpeechProvider,
        normalizer: AssetNormalizer,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        self.provider = provider
        self.normalizer = normalizer
        self.retry = retry or RetryPolicy.from_settings()

    def synthesize_scene(self, scene: SceneInput, index: int, job_id: str, voice_id: str) -> ProcessedScene:
        extra = {"job_id": job_id, "scene_index": index}
        logger.info("processing scene %d: %r", index + 1, scene.text[:20], extra=extra)

        asset_url = self.normalizer.normalize(scene.asset_url, job_id, scene_slot(index))

        try:
            speech = self.retry.call(lambda: self.provider.synthesize(scene.text, voice_id), label="synthesis")
        except JobError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise SynthesisError(f"Speech synthesis failed for scene {index + 1}: {exc}") from exc
        if not speech.audio_url:
            raise SynthesisError(f"Speech synthesis returned no audio for scene {index + 1}")

        return ProcessedScene(
            index=index,
            text=scene.text,
            asset_url=asset_url,
            audio_url=speech.audio_url,
            duration=float(speech.duration),
        )
