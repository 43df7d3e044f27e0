"""On-demand track data generation from an audio URL."""

from __future__ import annotations

import asyncio
import io
import logging

import httpx
import numpy as np
import soundfile as sf  # pyright: ignore[reportMissingTypeStubs]
from numpy.typing import NDArray

from .errors import SourceUnreadableError
from .models import ProgressCallback, TrackData, TrackDataPhase, emit
from .peaks import DEFAULT_SCALE, extract_peaks, mix_to_mono, validate_scale

logger = logging.getLogger(__name__)


def decode_audio(data: bytes) -> tuple[NDArray[np.float64], int]:
    """Decode an encoded audio buffer to mono float samples.

    Returns:
        Tuple of (mono_samples, sample_rate)

    Raises:
        SourceUnreadableError: If the bytes are not a decodable audio file
    """
    try:
        audio, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    except (RuntimeError, sf.SoundFileError, TypeError) as e:
        raise SourceUnreadableError("<buffer>", f"could not decode audio: {e}") from e
    return mix_to_mono(audio), int(sample_rate)


def _content_length(response: httpx.Response) -> int:
    """Declared body size, or 0 when it is missing or malformed."""
    try:
        return max(0, int(response.headers.get("content-length") or 0))
    except ValueError:
        return 0


class HttpAudioGenerator:
    """Downloads encoded audio over HTTP, decodes it in-process and summarizes it.

    Uses the caller's httpx client, so relative URLs resolve against its base URL.
    """

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def download(self, url: str, on_progress: ProgressCallback | None = None) -> bytes:
        """Fetch the whole body, reporting percent of Content-Length when known."""
        emit(on_progress, TrackDataPhase.DOWNLOADING)
        buffer = bytearray()
        try:
            async with self.http.stream("GET", url) as response:
                if response.is_error:
                    raise SourceUnreadableError(url, f"download failed with {response.status_code}")

                total = _content_length(response)
                last_percent: int | None = None
                async for chunk in response.aiter_bytes():
                    buffer.extend(chunk)
                    if total > 0:
                        percent = min(100, round(len(buffer) / total * 100))
                        if percent != last_percent:
                            last_percent = percent
                            emit(on_progress, TrackDataPhase.DOWNLOADING, percent)
        except httpx.HTTPError as e:
            raise SourceUnreadableError(url, f"download failed: {e}") from e

        if not buffer:
            raise SourceUnreadableError(url, "empty audio body")
        return bytes(buffer)

    async def generate(
        self,
        source: str,
        scale: int = DEFAULT_SCALE,
        on_progress: ProgressCallback | None = None,
    ) -> TrackData:
        """Download, decode and summarize the audio at ``source``.

        Emits downloading (with percent when available), decoding and waveform
        phases. Saving and verifying belong to whoever persists the result.

        Raises:
            SourceUnreadableError: If the download fails or the audio cannot be decoded
        """
        scale = validate_scale(scale)
        data = await self.download(source, on_progress)

        emit(on_progress, TrackDataPhase.DECODING)
        try:
            samples, sample_rate = await asyncio.to_thread(decode_audio, data)
        except SourceUnreadableError as e:
            raise SourceUnreadableError(source, e.reason) from e
        if samples.size == 0 or sample_rate <= 0:
            raise SourceUnreadableError(source, "decoded audio is empty")

        emit(on_progress, TrackDataPhase.WAVEFORM)
        peaks, sample_count = extract_peaks(samples, scale)
        if sample_count == 0:
            raise SourceUnreadableError(source, "decoded audio has no finite samples")

        logger.debug("Generated %d peaks for %s", len(peaks), source)
        return TrackData.build(peaks, sample_count, sample_rate, scale)
