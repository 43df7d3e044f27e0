"""Load-or-generate flow for one track: check, fetch or generate, save, verify."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import TrackDataConfig
from .client import TrackDataClient
from .generator import TrackDataGenerator
from .keys import artifact_key
from .models import ProgressCallback, TrackData, TrackDataPhase, emit
from .peaks import DEFAULT_SCALE

logger = logging.getLogger(__name__)

SourceResolver = Callable[[str], Awaitable[str]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class LoadResult:
    """Artifact for a track and whether it had to be generated."""

    track_data: TrackData
    generated: bool


class TrackDataPipeline:
    """Ensures a current artifact exists for an audio file and returns it.

    The generator reads from whatever ``resolve_source`` returns for an audio
    path; by default that is the server's downloadable audio URL.
    """

    def __init__(
        self,
        client: TrackDataClient,
        generator: TrackDataGenerator,
        *,
        scale: int = DEFAULT_SCALE,
        resolve_source: SourceResolver | None = None,
        verify_attempts: int = 8,
        verify_backoff: float = 0.75,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.generator = generator
        self.scale = scale
        self.resolve_source = resolve_source or client.audio_url
        self.verify_attempts = verify_attempts
        self.verify_backoff = verify_backoff
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        client: TrackDataClient,
        generator: TrackDataGenerator,
        settings: TrackDataConfig,
        **kwargs: Any,
    ) -> TrackDataPipeline:
        """Build a pipeline using the scale and verification settings from config.yaml."""
        return cls(
            client,
            generator,
            scale=settings.scale,
            verify_attempts=settings.verify_attempts,
            verify_backoff=settings.verify_backoff_seconds,
            **kwargs,
        )

    async def load(
        self,
        audio_path: str,
        *,
        force: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> LoadResult:
        """Return the artifact for ``audio_path``, generating it when missing or stale.

        With ``force`` the staleness check and the client cache are bypassed and
        the artifact is always regenerated.

        Raises:
            SourceUnreadableError: If generation was needed and failed
            httpx.HTTPError: If the staleness check or the save failed
        """
        key = artifact_key(audio_path)

        if not force:
            verdict = await self.client.check(key, audio_path)
            if verdict.exists and not verdict.needsRegeneration:
                track_data = await self.client.fetch_one(key)
                if track_data is not None:
                    return LoadResult(track_data=track_data, generated=False)
            elif verdict.needsRegeneration:
                logger.info("Track data for %s is stale", audio_path)

        track_data = await self.regenerate(audio_path, on_progress=on_progress)
        return LoadResult(track_data=track_data, generated=True)

    async def regenerate(
        self, audio_path: str, on_progress: ProgressCallback | None = None
    ) -> TrackData:
        """Generate, save and verify a new artifact unconditionally."""
        key = artifact_key(audio_path)
        logger.info("Regenerating track data for %s", audio_path)

        source = await self.resolve_source(audio_path)
        track_data = await self.generator.generate(source, self.scale, on_progress)

        emit(on_progress, TrackDataPhase.SAVING)
        await self.client.save(key, track_data)

        emit(on_progress, TrackDataPhase.VERIFYING)
        await self.verify(key, track_data)

        logger.info("Regenerated track data for %s", audio_path)
        return track_data

    async def verify(self, key: str, expected: TrackData) -> bool:
        """Poll until the saved artifact is visible, with linear backoff.

        Returns False after the last attempt; the artifact was already saved,
        so only its visibility is unconfirmed.
        """
        for attempt in range(1, self.verify_attempts + 1):
            try:
                remote = await self.client.fetch_remote(key)
            except httpx.HTTPError as e:
                logger.debug("Verification attempt %d for %s failed: %s", attempt, key, e)
                remote = None

            if remote is not None and remote.generatedAt == expected.generatedAt:
                return True
            if attempt < self.verify_attempts:
                await self._sleep(attempt * self.verify_backoff)

        logger.warning(
            "Saved track data for %s not visible after %d attempts", key, self.verify_attempts
        )
        return False
