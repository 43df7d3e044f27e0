"""Peak extraction: fixed-window absolute amplitude summaries of mono audio."""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

DEFAULT_SCALE = 256
BYTES_PER_SAMPLE = 4  # f32le


def validate_scale(scale: int) -> int:
    """Reject window sizes that are not positive integers."""
    if isinstance(scale, bool) or not isinstance(scale, (int, np.integer)) or scale <= 0:
        raise ValueError(f"Scale must be a positive integer, got {scale!r}")
    return int(scale)


class PeakAccumulator:
    """Incremental peak extractor.

    Samples are grouped into non-overlapping windows of ``scale`` finite samples;
    each window yields ``max(|min|, |max|)``. Non-finite samples are dropped
    before windowing and never count toward a window. A trailing partial window
    yields one more peak on ``finish()``.
    """

    def __init__(self, scale: int = DEFAULT_SCALE):
        self.scale = validate_scale(scale)
        self.sample_count = 0
        self.peaks: list[float] = []
        self._pending: NDArray[np.float64] = np.empty(0, dtype=np.float64)
        self._leftover = b""
        self._finished = False

    def feed(self, samples: ArrayLike) -> None:
        """Add decoded mono samples in stream order."""
        if self._finished:
            raise RuntimeError("PeakAccumulator already finished")

        data = np.asarray(samples, dtype=np.float64).ravel()
        data = data[np.isfinite(data)]
        if data.size == 0:
            return
        self.sample_count += int(data.size)

        buffer = np.concatenate((self._pending, data)) if self._pending.size else data
        full = (buffer.size // self.scale) * self.scale
        if full:
            windows = np.abs(buffer[:full]).reshape(-1, self.scale)
            self._append(windows.max(axis=1))
        self._pending = buffer[full:].copy()

    def feed_bytes(self, chunk: bytes) -> None:
        """Add raw little-endian float32 PCM; a split sample carries over."""
        data = self._leftover + chunk if self._leftover else chunk
        usable = (len(data) // BYTES_PER_SAMPLE) * BYTES_PER_SAMPLE
        self._leftover = data[usable:]
        if usable:
            self.feed(np.frombuffer(data[:usable], dtype="<f4"))

    def finish(self) -> list[float]:
        """Flush the trailing partial window and return all peaks."""
        if not self._finished:
            if self._pending.size:
                self._append(np.array([np.abs(self._pending).max()]))
                self._pending = np.empty(0, dtype=np.float64)
            self._finished = True
        return self.peaks

    def _append(self, values: NDArray[np.float64]) -> None:
        # Float PCM can overshoot full scale slightly
        self.peaks.extend(np.minimum(values, 1.0).tolist())


def extract_peaks(samples: ArrayLike, scale: int = DEFAULT_SCALE) -> tuple[list[float], int]:
    """Compute the peak sequence for a whole buffer at once.

    Args:
        samples: Mono samples, nominally within [-1, 1]
        scale: Samples per peak window

    Returns:
        Tuple of (peaks, sample_count) where sample_count excludes non-finite samples
    """
    accumulator = PeakAccumulator(scale)
    accumulator.feed(samples)
    return accumulator.finish(), accumulator.sample_count


def mix_to_mono(audio: NDArray[np.floating]) -> NDArray[np.float64]:
    """Average channels of a (frames, channels) array; mono input passes through."""
    if audio.ndim > 1:
        return np.mean(audio, axis=1, dtype=np.float64)
    return np.asarray(audio, dtype=np.float64)
