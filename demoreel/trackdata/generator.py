"""The contract shared by every track data generator."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import ProgressCallback, TrackData
from .peaks import DEFAULT_SCALE


@runtime_checkable
class TrackDataGenerator(Protocol):
    """Produces a TrackData artifact from an audio source.

    ``source`` is whatever the implementation reads from: a local file path for
    the ffmpeg generator, a URL for the HTTP generator. Zero-length or corrupt
    input must raise SourceUnreadableError, never return an empty artifact.
    """

    async def generate(
        self,
        source: str,
        scale: int = DEFAULT_SCALE,
        on_progress: ProgressCallback | None = None,
    ) -> TrackData: ...
