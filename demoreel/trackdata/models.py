"""Pydantic models for track data artifacts and generation progress.

Field names match the stored JSON exactly (camelCase), so artifacts written by
any generator, old or new, validate without aliases.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, field_validator


def utc_now_iso() -> str:
    """ISO-8601 timestamp with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TrackData(BaseModel):
    """Peak summary of one audio file."""

    duration: float
    peaks: list[float]
    sampleRate: int
    scale: int
    generatedAt: str

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v: float) -> float:
        if not math.isfinite(v) or v <= 0:
            raise ValueError(f"Duration must be finite and positive, got {v}")
        return v

    @field_validator("peaks")
    @classmethod
    def validate_peaks(cls, v: list[float]) -> list[float]:
        for peak in v:
            if not 0.0 <= peak <= 1.0:
                raise ValueError(f"Peak values must be within [0, 1], got {peak}")
        return v

    @field_validator("sampleRate", "scale")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    @classmethod
    def build(cls, peaks: list[float], sample_count: int, sample_rate: int, scale: int) -> TrackData:
        """Create a freshly stamped artifact from extractor output."""
        return cls(
            duration=sample_count / sample_rate,
            peaks=peaks,
            sampleRate=sample_rate,
            scale=scale,
            generatedAt=utc_now_iso(),
        )


class StalenessVerdict(BaseModel):
    """Result of comparing an artifact against its source audio."""

    exists: bool
    needsRegeneration: bool


class TrackDataPhase(str, Enum):
    """Steps of on-demand generation, in order."""

    DOWNLOADING = "downloading"
    DECODING = "decoding"
    WAVEFORM = "waveform"
    SAVING = "saving"
    VERIFYING = "verifying"


@dataclass(frozen=True)
class TrackDataProgress:
    """A progress event. Only downloads report a reliable percent."""

    phase: TrackDataPhase
    percent: int | None = None


ProgressCallback = Callable[[TrackDataProgress], None]


def emit(
    on_progress: ProgressCallback | None, phase: TrackDataPhase, percent: int | None = None
) -> None:
    """Report progress if anyone is listening."""
    if on_progress is not None:
        on_progress(TrackDataProgress(phase=phase, percent=percent))
