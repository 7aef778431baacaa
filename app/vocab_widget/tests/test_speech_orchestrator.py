import io

import numpy as np
import pytest
import soundfile as sf
from flask import Flask

from app.vocab_widget.models import AccentVariant
from app.vocab_widget.services.errors import ServiceFailureError
from app.vocab_widget.services.pcm import PCM_SAMPLE_RATE, WavAudioOutput, decode_pcm16, encode_pcm16
from app.vocab_widget.services.speech_orchestrator import (
    BrowserSpeechSynthesizer,
    SpeechOrchestrator,
    SpeechState,
)


class _OfflineClient:
    is_configured = False

    def generate_speech(self, *args, **kwargs):
        raise AssertionError("remote audio must not be requested without a credential")


class _AudioClient:
    is_configured = True

    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def generate_speech(self, text, voice_name):
        self.calls.append((text, voice_name))
        if isinstance(self.answer, Exception):
            raise self.answer
        if callable(self.answer):
            return self.answer()
        return self.answer


class _RecordingSynthesizer(BrowserSpeechSynthesizer):
    def __init__(self):
        super().__init__()
        self.calls = []

    def cancel(self, channel):
        self.calls.append(("cancel", channel))
        return super().cancel(channel)

    def speak(self, channel, utterance):
        self.calls.append(("speak", channel))
        super().speak(channel, utterance)


class _RecordingOutput(WavAudioOutput):
    instances = []

    def __init__(self, fail_on_play=False):
        super().__init__()
        self.events = []
        self.fail_on_play = fail_on_play
        _RecordingOutput.instances.append(self)

    def open(self):
        self.events.append("open")
        super().open()

    def play(self, samples):
        self.events.append("play")
        if self.fail_on_play:
            raise RuntimeError("device lost")
        super().play(samples)

    def close(self):
        self.events.append("close")
        super().close()


@pytest.fixture(autouse=True)
def app_context():
    _RecordingOutput.instances = []
    app = Flask(__name__)
    with app.app_context():
        yield app


def _pcm(values):
    return np.asarray(values, dtype="<i2").tobytes()


def test_offline_speech_cancels_then_speaks_once_per_call():
    synthesizer = _RecordingSynthesizer()
    orchestrator = SpeechOrchestrator(client=_OfflineClient(), synthesizer=synthesizer)

    first = orchestrator.speak("apple", AccentVariant.US, channel="s1")
    second = orchestrator.speak("apple", AccentVariant.UK, channel="s1")

    assert synthesizer.calls == [("cancel", "s1"), ("speak", "s1")] * 2
    assert first.provider == second.provider == "local"
    assert first.utterance.lang == "en-US"
    assert second.utterance.lang == "en-GB"
    assert second.utterance.rate == pytest.approx(0.8)
    assert synthesizer.active("s1") == second.utterance
    assert orchestrator.state("s1") is SpeechState.IDLE


def test_local_rate_follows_config(app_context):
    app_context.config["LOCAL_SPEECH_RATE"] = 0.6
    orchestrator = SpeechOrchestrator(client=_OfflineClient())
    assert orchestrator.speak("dog", "uk").utterance.rate == pytest.approx(0.6)


def test_pcm_round_trip_within_one_step():
    original = np.array([0, 1, -1, 12345, -12345, 32767, -32768], dtype=np.int16)

    decoded = decode_pcm16(_pcm(original))

    assert decoded.dtype == np.float32
    assert np.max(np.abs(decoded - original / 32768.0)) <= 1 / 32768.0
    assert decoded.min() >= -1.0 and decoded.max() <= 1.0
    assert encode_pcm16(decoded) == _pcm(original)


def test_decode_drops_trailing_odd_byte():
    assert decode_pcm16(_pcm([100, -100]) + b"\x07").size == 2
    assert decode_pcm16(b"\x01").size == 0


def test_remote_audio_is_played_and_output_released():
    pcm = _pcm(np.linspace(-16000, 16000, 2400).astype(np.int16))
    client = _AudioClient(pcm)
    orchestrator = SpeechOrchestrator(
        client=client,
        synthesizer=_RecordingSynthesizer(),
        output_factory=_RecordingOutput,
    )

    outcome = orchestrator.speak("apple", AccentVariant.UK)

    assert outcome.provider == "gemini"
    assert outcome.duration_seconds == pytest.approx(0.1)
    assert client.calls[0][1] == "Puck"
    assert "British accent" in client.calls[0][0]
    assert orchestrator.synthesizer.calls == []
    (output,) = _RecordingOutput.instances
    assert output.events == ["open", "play", "close"]
    assert output.closed

    samples, rate = sf.read(io.BytesIO(outcome.audio), dtype="int16")
    assert rate == PCM_SAMPLE_RATE
    assert samples.size == 2400


def test_remote_failure_falls_back_to_local_synthesis():
    synthesizer = _RecordingSynthesizer()
    client = _AudioClient(ServiceFailureError("HTTP 500"))
    orchestrator = SpeechOrchestrator(client=client, synthesizer=synthesizer)

    outcome = orchestrator.speak("banana", AccentVariant.US)

    assert client.calls[0][1] == "Kore"
    assert outcome.provider == "local"
    assert synthesizer.calls == [("cancel", "default"), ("speak", "default")]


def test_empty_decoded_audio_falls_back_to_local_synthesis():
    orchestrator = SpeechOrchestrator(client=_AudioClient(b"\x01"), output_factory=_RecordingOutput)

    outcome = orchestrator.speak("egg")

    assert outcome.provider == "local"
    assert _RecordingOutput.instances == []


def test_playback_error_still_releases_output():
    orchestrator = SpeechOrchestrator(
        client=_AudioClient(_pcm([1, 2, 3])),
        output_factory=lambda: _RecordingOutput(fail_on_play=True),
    )

    outcome = orchestrator.speak("milk")

    (output,) = _RecordingOutput.instances
    assert output.events == ["open", "play", "close"]
    assert output.closed
    assert outcome.provider == "local"


def test_newer_request_supersedes_in_flight_remote_audio():
    synthesizer = _RecordingSynthesizer()
    orchestrator = SpeechOrchestrator(synthesizer=synthesizer, output_factory=_RecordingOutput)

    def answer_after_cancel():
        orchestrator.cancel("s1")
        return _pcm([5, 6, 7])

    orchestrator._client = _AudioClient(answer_after_cancel)

    outcome = orchestrator.speak("rice", channel="s1")

    assert outcome.provider == "superseded"
    assert _RecordingOutput.instances == []
    assert ("speak", "s1") not in synthesizer.calls


def test_cancel_drops_pending_local_utterance():
    orchestrator = SpeechOrchestrator(client=_OfflineClient())
    orchestrator.speak("tree", channel="s2")
    assert orchestrator.synthesizer.active("s2") is not None

    orchestrator.cancel("s2")

    assert orchestrator.synthesizer.active("s2") is None


def test_cancel_during_remote_request_leaves_channel_idle():
    orchestrator = SpeechOrchestrator(output_factory=_RecordingOutput)

    def answer_after_cancel():
        orchestrator.cancel("s3")
        return _pcm([1, 2, 3])

    orchestrator._client = _AudioClient(answer_after_cancel)

    assert orchestrator.speak("leaf", channel="s3").provider == "superseded"
    assert orchestrator.state("s3") is SpeechState.IDLE


def test_release_forgets_channel_and_supersedes_in_flight_audio():
    orchestrator = SpeechOrchestrator(output_factory=_RecordingOutput)

    def answer_after_release():
        orchestrator.release("s4")
        return _pcm([1, 2, 3])

    orchestrator._client = _AudioClient(answer_after_release)

    assert orchestrator.speak("sun", channel="s4").provider == "superseded"
    assert orchestrator.channel_count() == 0
    assert orchestrator.synthesizer.active("s4") is None


def test_channels_do_not_accumulate_after_release():
    orchestrator = SpeechOrchestrator(client=_OfflineClient())

    for number in range(100):
        channel = f"session-{number}"
        orchestrator.speak("cat", channel=channel)
        orchestrator.cancel(channel)
        orchestrator.release(channel)

    assert orchestrator.channel_count() == 0


def test_wav_carries_the_exact_gemini_samples():
    original = np.array([0, 1, -1, 12345, -12345, 32767, -32768], dtype=np.int16)
    orchestrator = SpeechOrchestrator(client=_AudioClient(_pcm(original)))

    outcome = orchestrator.speak("moon")

    samples, _ = sf.read(io.BytesIO(outcome.audio), dtype="int16")
    assert samples.tolist() == original.tolist()
