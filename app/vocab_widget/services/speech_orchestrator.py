"""
Pronunciation playback for flashcards and speaking drills.

Gemini TTS is tried first; its raw PCM answer is decoded and played through
an AudioOutput that is released as soon as playback ends. When there is no
API key, the request fails, or the audio comes back empty, the word is handed
to the local speech synthesizer instead (the hosting page's speechSynthesis),
at a slower rate for young listeners.

States per channel:
    IDLE -> REQUESTING_REMOTE_AUDIO -> DECODING_PCM -> PLAYING -> IDLE
    any failure -> LOCAL_SYNTHESIS_FALLBACK -> IDLE
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, Optional, Union

from flask import current_app

from ..models import AccentVariant
from .errors import ServiceFailureError, UnparsableResponseError
from .fallback import attempt_with_fallback
from .gemini_client import get_gemini_client
from .pcm import PCM_SAMPLE_RATE, WavAudioOutput, decode_pcm16

DEFAULT_CHANNEL = "default"

VOICES = {
    AccentVariant.US: "Kore",
    AccentVariant.UK: "Puck",
}

LOCAL_RATE = 0.8
LOCAL_PITCH = 1.0
LOCAL_VOLUME = 1.0


class SpeechState(str, Enum):
    IDLE = "idle"
    REQUESTING_REMOTE_AUDIO = "requesting_remote_audio"
    DECODING_PCM = "decoding_pcm"
    PLAYING = "playing"
    LOCAL_SYNTHESIS_FALLBACK = "local_synthesis_fallback"


@dataclass(frozen=True)
class LocalUtterance:
    text: str
    lang: str
    rate: float
    pitch: float
    volume: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SpeechOutcome:
    """What a speak() call produced: WAV audio, a local utterance, or nothing if superseded."""

    provider: str
    audio: Optional[bytes] = None
    utterance: Optional[LocalUtterance] = None
    duration_seconds: float = 0.0


class BrowserSpeechSynthesizer:
    """Local synthesizer backed by the hosting page's speechSynthesis.

    The backend keeps the utterance each channel should currently be speaking;
    the page receives it together with a cancel-previous directive.
    """

    def __init__(self) -> None:
        self._active: Dict[str, LocalUtterance] = {}
        self._lock = Lock()

    def cancel(self, channel: str) -> Optional[LocalUtterance]:
        with self._lock:
            return self._active.pop(channel, None)

    def speak(self, channel: str, utterance: LocalUtterance) -> None:
        with self._lock:
            self._active[channel] = utterance

    def active(self, channel: str) -> Optional[LocalUtterance]:
        with self._lock:
            return self._active.get(channel)


def _accent_prompt(text: str, accent: AccentVariant) -> str:
    style = "a British" if accent is AccentVariant.UK else "an American"
    return f"Say the following word clearly with {style} accent suitable for children: {text}"


class SpeechOrchestrator:
    """Speak words with Gemini TTS, falling back to local synthesis."""

    def __init__(
        self,
        client=None,
        synthesizer: Optional[BrowserSpeechSynthesizer] = None,
        output_factory: Callable[[], WavAudioOutput] = WavAudioOutput,
    ):
        self._client = client
        self.synthesizer = synthesizer or BrowserSpeechSynthesizer()
        self._output_factory = output_factory
        self._lock = Lock()
        self._counter = 0
        self._generations: Dict[str, int] = {}
        self._states: Dict[str, SpeechState] = {}

    @property
    def client(self):
        if self._client is None:
            self._client = get_gemini_client()
        return self._client

    def state(self, channel: str = DEFAULT_CHANNEL) -> SpeechState:
        with self._lock:
            return self._states.get(channel, SpeechState.IDLE)

    def _set_state(self, channel: str, generation: int, state: SpeechState) -> None:
        """Record ``state`` unless a newer request or a cancel owns the channel."""
        with self._lock:
            if self._generations.get(channel) != generation:
                return
            self._states[channel] = state
        current_app.logger.debug("Speech channel %s -> %s", channel, state.value)

    def _begin(self, channel: str) -> int:
        # Generations are unique across channels so a released channel never reuses one.
        with self._lock:
            self._counter += 1
            self._generations[channel] = self._counter
            return self._counter

    def _is_superseded(self, channel: str, generation: int) -> bool:
        with self._lock:
            return self._generations.get(channel) != generation

    def speak(
        self,
        text: str,
        accent: Union[AccentVariant, str, None] = AccentVariant.US,
        channel: str = DEFAULT_CHANNEL,
    ) -> SpeechOutcome:
        """Produce pronunciation audio for ``text``; never raises."""
        if not isinstance(accent, AccentVariant):
            accent = AccentVariant.parse(accent)
        text = (text or "").strip()
        generation = self._begin(channel)

        def fallback() -> SpeechOutcome:
            if self._is_superseded(channel, generation):
                return self._superseded(channel)
            return self._speak_locally(text, accent, channel, generation)

        if not text or not self.client.is_configured:
            return fallback()

        def attempt() -> SpeechOutcome:
            self._set_state(channel, generation, SpeechState.REQUESTING_REMOTE_AUDIO)
            audio = self.client.generate_speech(_accent_prompt(text, accent), VOICES[accent])
            if self._is_superseded(channel, generation):
                return self._superseded(channel)

            self._set_state(channel, generation, SpeechState.DECODING_PCM)
            samples = decode_pcm16(audio)
            if not samples.size:
                raise UnparsableResponseError("Gemini TTS audio decoded to zero samples")
            return self._play(channel, generation, samples)

        return attempt_with_fallback(attempt, fallback, "Speech synthesis")

    def _play(self, channel: str, generation: int, samples) -> SpeechOutcome:
        self._set_state(channel, generation, SpeechState.PLAYING)
        output = self._output_factory()
        try:
            output.open()
            output.play(samples)
        except (RuntimeError, OSError) as exc:
            raise ServiceFailureError(f"PCM playback failed: {exc}") from exc
        finally:
            output.close()
        self._set_state(channel, generation, SpeechState.IDLE)
        return SpeechOutcome(
            provider="gemini",
            audio=output.payload,
            duration_seconds=round(len(samples) / float(PCM_SAMPLE_RATE), 3),
        )

    def _speak_locally(self, text: str, accent: AccentVariant, channel: str, generation: int) -> SpeechOutcome:
        self._set_state(channel, generation, SpeechState.LOCAL_SYNTHESIS_FALLBACK)
        config = current_app.config
        utterance = LocalUtterance(
            text=text,
            lang=accent.language_tag,
            rate=float(config.get("LOCAL_SPEECH_RATE", LOCAL_RATE)),
            pitch=float(config.get("LOCAL_SPEECH_PITCH", LOCAL_PITCH)),
            volume=float(config.get("LOCAL_SPEECH_VOLUME", LOCAL_VOLUME)),
        )
        self.synthesizer.cancel(channel)
        self.synthesizer.speak(channel, utterance)
        self._set_state(channel, generation, SpeechState.IDLE)
        return SpeechOutcome(provider="local", utterance=utterance)

    def _superseded(self, channel: str) -> SpeechOutcome:
        current_app.logger.debug("Speech request on channel %s superseded by a newer one", channel)
        return SpeechOutcome(provider="superseded")

    def cancel(self, channel: str) -> None:
        """Supersede in-flight work on ``channel`` and drop its pending local utterance."""
        generation = self._begin(channel)
        with self._lock:
            self._states[channel] = SpeechState.IDLE
        current_app.logger.debug("Speech channel %s cancelled (generation %s)", channel, generation)
        self.synthesizer.cancel(channel)

    def release(self, channel: str) -> None:
        """Forget ``channel`` entirely; in-flight work on it is treated as superseded."""
        with self._lock:
            self._generations.pop(channel, None)
            self._states.pop(channel, None)
        self.synthesizer.cancel(channel)

    def channel_count(self) -> int:
        with self._lock:
            return len(set(self._generations) | set(self._states))


def get_speech_orchestrator() -> SpeechOrchestrator:
    """Singleton getter for the speech orchestrator."""
    if not hasattr(current_app, "speech_orchestrator"):
        current_app.speech_orchestrator = SpeechOrchestrator()
    return current_app.speech_orchestrator
