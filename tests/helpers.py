"""Shared builders for tests."""

from __future__ import annotations

import io
import os
from pathlib import Path

import numpy as np
import soundfile as sf

from demoreel.trackdata.errors import SourceUnreadableError
from demoreel.trackdata.models import (
    ProgressCallback,
    TrackData,
    TrackDataPhase,
    TrackDataProgress,
    emit,
)


def make_track_data(
    duration: float = 10.0,
    peaks: list[float] | None = None,
    generated_at: str = "2026-01-01T00:00:00.000Z",
    sample_rate: int = 8000,
    scale: int = 256,
) -> TrackData:
    return TrackData(
        duration=duration,
        peaks=peaks if peaks is not None else [0.1, 0.5, 0.9],
        sampleRate=sample_rate,
        scale=scale,
        generatedAt=generated_at,
    )


def wav_bytes(samples: np.ndarray, sample_rate: int = 8000) -> bytes:
    """Encode samples as a float WAV file in memory."""
    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, format="WAV", subtype="FLOAT")
    return buffer.getvalue()


def sine(seconds: float, sample_rate: int = 8000, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return (amplitude * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


def set_mtime(path: Path, timestamp: float) -> None:
    os.utime(path, (timestamp, timestamp))


class FakeGenerator:
    """Generator that records calls and returns a fixed-length artifact."""

    def __init__(self, duration: float = 3.0, sample_rate: int = 8000, fail_for: set[str] | None = None):
        self.duration = duration
        self.sample_rate = sample_rate
        self.fail_for = fail_for or set()
        self.calls: list[tuple[str, int]] = []

    async def generate(
        self, source: str, scale: int = 256, on_progress: ProgressCallback | None = None
    ) -> TrackData:
        self.calls.append((source, scale))
        if any(source.endswith(name) for name in self.fail_for):
            raise SourceUnreadableError(source, "corrupt")

        emit(on_progress, TrackDataPhase.DOWNLOADING, 100)
        emit(on_progress, TrackDataPhase.DECODING)
        emit(on_progress, TrackDataPhase.WAVEFORM)
        sample_count = int(self.duration * self.sample_rate)
        peak_count = -(-sample_count // scale)
        return TrackData.build([0.5] * peak_count, sample_count, self.sample_rate, scale)


class ProgressRecorder:
    def __init__(self):
        self.events: list[TrackDataProgress] = []

    def __call__(self, progress: TrackDataProgress) -> None:
        self.events.append(progress)

    @property
    def phases(self) -> list[str]:
        return [event.phase.value for event in self.events]
