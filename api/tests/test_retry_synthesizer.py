import pytest

from faceless.errors import SynthesisError
from faceless.models import SceneInput
from faceless.normalizer import AssetNormalizer
from faceless.providers.base import SpeechResult
from faceless.retry import RetryPolicy
from faceless.synthesizer import SceneSynthesizer

from conftest import MEDIA, PNG_DATA_URI, FakeSpeech


def test_single_attempt_policy_raises_first_error():
    calls = []

    def fail():
        calls.append(1)
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        RetryPolicy(max_attempts=1).call(fail, sleep=lambda s: None)
    assert len(calls) == 1


def test_retries_with_capped_backoff():
    waits = []
    attempts = iter([ValueError("a"), ValueError("b"), "ok"])

    def flaky():
        outcome = next(attempts)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    policy = RetryPolicy(max_attempts=3, initial_delay=4, max_delay=6)
    assert policy.call(flaky, sleep=waits.append) == "ok"
    assert waits == [4, 6]


def test_only_listed_errors_are_retried():
    policy = RetryPolicy(max_attempts=3, retry_on=(ValueError,))
    calls = []

    def fail():
        calls.append(1)
        raise KeyError("x")

    with pytest.raises(KeyError):
        policy.call(fail, sleep=lambda s: None)
    assert len(calls) == 1


def _synth(speech):
    normalizer = AssetNormalizer(retry=RetryPolicy(max_attempts=1))
    return SceneSynthesizer(speech, normalizer, retry=RetryPolicy(max_attempts=1))


def test_synthesize_scene_normalizes_asset_first():
    speech = FakeSpeech(duration=7.5)
    scene = SceneInput(text="Hello world.", asset_url=PNG_DATA_URI)

    result = _synth(speech).synthesize_scene(scene, 4, "job-1", "voice-b")

    assert result.index == 4
    assert result.asset_url == f"{MEDIA}/assets/job-1/image_4.png"
    assert result.audio_url == "https://cdn.test/audio/1.mp3"
    assert result.duration == 7.5
    assert speech.calls == [("Hello world.", "voice-b")]


def test_provider_error_becomes_synthesis_error():
    speech = FakeSpeech()
    speech.error = TimeoutError("upstream timeout")
    scene = SceneInput(text="Hi.", asset_url=f"{MEDIA}/assets/x.jpg")

    with pytest.raises(SynthesisError, match="scene 1: upstream timeout"):
        _synth(speech).synthesize_scene(scene, 0, "job-1", "v")


def test_empty_audio_url_is_an_error():
    class Silent(FakeSpeech):
        def synthesize(self, text, voice_id):
            return SpeechResult("", 1.0)

    scene = SceneInput(text="Hi.", asset_url=f"{MEDIA}/assets/x.jpg")
    with pytest.raises(SynthesisError, match="no audio"):
        _synth(Silent()).synthesize_scene(scene, 0, "job-1", "v")
