"""Offline track data generation with ffprobe/ffmpeg subprocesses."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging

from .errors import SourceUnreadableError
from .models import ProgressCallback, TrackData, TrackDataPhase, emit
from .peaks import DEFAULT_SCALE, PeakAccumulator, validate_scale

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


async def _run(*cmd: str) -> tuple[int, bytes, bytes]:
    """Run a command to completion, capturing both output streams."""
    process = await asyncio.create_subprocess_exec(
        *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
    )
    stdout, stderr = await process.communicate()
    return process.returncode or 0, stdout, stderr


async def probe_sample_rate(audio_path: str) -> int:
    """Get the sample rate of the first audio stream using ffprobe.

    Raises:
        SourceUnreadableError: If ffprobe fails or reports no usable rate
    """
    cmd = [
        "ffprobe",
        "-v",
        "error",
        "-select_streams",
        "a:0",
        "-show_entries",
        "stream=sample_rate",
        "-of",
        "json",
        audio_path,
    ]
    try:
        returncode, stdout, stderr = await _run(*cmd)
    except OSError as e:
        raise SourceUnreadableError(audio_path, f"could not run ffprobe: {e}") from e
    if returncode != 0:
        raise SourceUnreadableError(
            audio_path, stderr.decode(errors="replace").strip() or "ffprobe failed"
        )

    try:
        streams = json.loads(stdout or b"{}").get("streams") or [{}]
        sample_rate = int(float(streams[0].get("sample_rate") or 0))
    except (ValueError, TypeError, AttributeError) as e:
        raise SourceUnreadableError(audio_path, "unable to read sample rate") from e

    if sample_rate <= 0:
        raise SourceUnreadableError(audio_path, "unable to read sample rate")
    return sample_rate


async def stream_peaks(audio_path: str, scale: int) -> PeakAccumulator:
    """Decode to mono f32le on ffmpeg's stdout and fold it into peaks as it arrives.

    Raises:
        SourceUnreadableError: If ffmpeg cannot be started or exits non-zero
    """
    cmd = [
        "ffmpeg",
        "-v",
        "error",
        "-i",
        audio_path,
        "-ac",
        "1",
        "-f",
        "f32le",
        "-acodec",
        "pcm_f32le",
        "-",
    ]
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
        )
    except OSError as e:
        raise SourceUnreadableError(audio_path, f"could not run ffmpeg: {e}") from e

    assert process.stdout is not None and process.stderr is not None
    # Drain stderr concurrently so a chatty decoder cannot block on a full pipe
    stderr_task = asyncio.create_task(process.stderr.read())

    accumulator = PeakAccumulator(scale)
    try:
        while chunk := await process.stdout.read(READ_CHUNK_SIZE):
            accumulator.feed_bytes(chunk)
    except BaseException:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        raise
    finally:
        returncode = await process.wait()
        stderr = await stderr_task

    if returncode != 0:
        detail = stderr.decode(errors="replace").strip()
        raise SourceUnreadableError(audio_path, detail or f"ffmpeg exited with code {returncode}")

    accumulator.finish()
    return accumulator


class FfmpegGenerator:
    """Generates track data from local files via external decoder processes."""

    async def generate(
        self,
        source: str,
        scale: int = DEFAULT_SCALE,
        on_progress: ProgressCallback | None = None,
    ) -> TrackData:
        """Probe, decode and summarize a local audio file.

        Args:
            source: Path to the audio file
            scale: Samples per peak window
            on_progress: Optional progress listener (decoding and waveform phases)

        Returns:
            A freshly stamped TrackData

        Raises:
            SourceUnreadableError: If the file cannot be probed or decoded,
                or decodes to no samples
        """
        scale = validate_scale(scale)
        sample_rate = await probe_sample_rate(source)

        emit(on_progress, TrackDataPhase.DECODING)
        accumulator = await stream_peaks(source, scale)
        if accumulator.sample_count == 0:
            raise SourceUnreadableError(source, "no audio samples decoded")

        emit(on_progress, TrackDataPhase.WAVEFORM)
        logger.debug(
            "Decoded %s: %d samples at %d Hz", source, accumulator.sample_count, sample_rate
        )
        return TrackData.build(accumulator.peaks, accumulator.sample_count, sample_rate, scale)
