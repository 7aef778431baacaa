"""Raw PCM helpers and audio outputs for Gemini TTS payloads.

Gemini TTS returns headerless PCM: 1 channel, 24000 Hz, signed 16-bit little-endian.
"""
from __future__ import annotations

import io
from typing import Optional

import numpy as np
import soundfile as sf

PCM_SAMPLE_RATE = 24000
PCM_CHANNELS = 1
PCM_SAMPLE_WIDTH = 2
PCM_SCALE = 32768.0


def decode_pcm16(raw: bytes) -> np.ndarray:
    """Convert little-endian int16 bytes into float32 samples in [-1.0, 1.0].

    A trailing odd byte cannot form a sample and is dropped.
    """
    usable = len(raw) - (len(raw) % PCM_SAMPLE_WIDTH)
    samples = np.frombuffer(raw[:usable], dtype="<i2")
    return samples.astype(np.float32) / PCM_SCALE


def to_int16(samples: np.ndarray) -> np.ndarray:
    """Scale float samples back to int16 by PCM_SCALE, clipping to the int16 range."""
    scaled = np.clip(np.round(np.asarray(samples, dtype=np.float64) * PCM_SCALE), -32768, 32767)
    return scaled.astype(np.int16)


def encode_pcm16(samples: np.ndarray) -> bytes:
    """Inverse of :func:`decode_pcm16`."""
    return to_int16(samples).astype("<i2").tobytes()


class WavAudioOutput:
    """Audio output that renders one playback into a WAV document for the hosting page.

    The underlying sound file is the playback resource: it is opened per
    playback and must be closed when playback ends so the WAV header is
    finalized and the handle released.
    """

    def __init__(self, sample_rate: int = PCM_SAMPLE_RATE):
        self.sample_rate = sample_rate
        self._buffer = io.BytesIO()
        self._sink: Optional[sf.SoundFile] = None
        self.closed = False

    def open(self) -> None:
        self._sink = sf.SoundFile(
            self._buffer,
            mode="w",
            samplerate=self.sample_rate,
            channels=PCM_CHANNELS,
            format="WAV",
            subtype="PCM_16",
        )

    def play(self, samples: np.ndarray) -> None:
        if self._sink is None:
            raise RuntimeError("Audio output is not open")
        # int16 frames pass through a PCM_16 file unscaled.
        self._sink.write(to_int16(samples))

    def close(self) -> None:
        if self._sink is not None:
            self._sink.close()
            self._sink = None
        self.closed = True

    @property
    def payload(self) -> bytes:
        return self._buffer.getvalue() if self.closed else b""
