"""Per-session track loading and duration reconciliation.

A ``TrackSession`` tracks the currently selected track through these states::

    NO_TRACK -> LOADING_ARTIFACT -> ARTIFACT_READY -> ENGINE_READY
                                  (MISMATCH -> REGENERATING) -> ENGINE_READY

Each selection gets a ``LoadToken``. Selecting another track or folder cancels
the previous token, and every state change first checks that its token is
still current, so late responses for an abandoned track are discarded. Work
already in flight (including generation and its save) is not interrupted.
A selection gets at most one forced regeneration, so an engine and generator
that keep disagreeing cannot loop.
"""

from __future__ import annotations

import logging
import math
import posixpath
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import httpx

from ..config import TrackDataConfig
from .errors import TrackDataError
from .keys import folder_track_key
from .models import ProgressCallback, TrackData, TrackDataProgress
from .pipeline import TrackDataPipeline

logger = logging.getLogger(__name__)

DEFAULT_DURATION_TOLERANCE = 2.0


class PlayerState(str, Enum):
    """Lifecycle of the currently selected track."""

    NO_TRACK = "no_track"
    LOADING_ARTIFACT = "loading_artifact"
    ARTIFACT_READY = "artifact_ready"
    ENGINE_READY = "engine_ready"
    MISMATCH = "mismatch"
    REGENERATING = "regenerating"


class PlaybackEngine(Protocol):
    """The player that renders the waveform and decodes the audio stream."""

    def load_waveform(self, audio_path: str, peaks: list[float], duration: float) -> None:
        """Show precomputed peaks so the engine can skip a full decode."""
        ...


@dataclass
class LoadToken:
    """Identity of one track selection."""

    audio_path: str
    cancelled: bool = False
    repaired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class TrackSession:
    """Loads artifacts for the selected track and repairs corrupt ones."""

    def __init__(
        self,
        pipeline: TrackDataPipeline,
        engine: PlaybackEngine,
        *,
        tolerance: float = DEFAULT_DURATION_TOLERANCE,
        on_progress: ProgressCallback | None = None,
    ):
        self.pipeline = pipeline
        self.engine = engine
        self.tolerance = tolerance
        self.on_progress = on_progress

        self.state = PlayerState.NO_TRACK
        self.current_track: str | None = None
        self.track_data: TrackData | None = None
        self.engine_duration: float | None = None
        self.generating_track: str | None = None
        self.progress: TrackDataProgress | None = None
        self.durations: dict[str, float] = {}

        self.folder: str | None = None
        self.playlist: list[str] = []
        self._token: LoadToken | None = None
        self._folder_generation = 0
        self._pending_durations: set[str] = set()

    @classmethod
    def from_config(
        cls,
        pipeline: TrackDataPipeline,
        engine: PlaybackEngine,
        settings: TrackDataConfig,
        on_progress: ProgressCallback | None = None,
    ) -> TrackSession:
        """Build a session using the duration tolerance from config.yaml."""
        return cls(
            pipeline, engine, tolerance=settings.duration_tolerance, on_progress=on_progress
        )

    def _is_current(self, token: LoadToken) -> bool:
        return token is self._token and not token.cancelled

    def _transition(self, state: PlayerState) -> None:
        logger.debug("%s: %s -> %s", self.current_track, self.state.value, state.value)
        self.state = state

    def _progress_for(self, token: LoadToken) -> ProgressCallback:
        def report(progress: TrackDataProgress) -> None:
            if not self._is_current(token):
                return
            self.generating_track = token.audio_path
            self.progress = progress
            if self.on_progress is not None:
                self.on_progress(progress)

        return report

    def _finish_generation(self, token: LoadToken) -> None:
        if self._is_current(token):
            self.generating_track = None
            self.progress = None

    def _apply(self, token: LoadToken, track_data: TrackData, replace_duration: bool) -> None:
        self.track_data = track_data
        if replace_duration:
            self.durations[token.audio_path] = track_data.duration
        else:
            self.durations.setdefault(token.audio_path, track_data.duration)
        self.engine.load_waveform(token.audio_path, track_data.peaks, track_data.duration)

    def select_folder(self, folder: str) -> None:
        """Abandon the current track and any folder-wide duration lookup."""
        logger.debug("Switching to folder %s", folder)
        self._folder_generation += 1
        self.folder = folder
        self.playlist = []
        if self._token is not None:
            self._token.cancel()
        self._token = None
        self._transition(PlayerState.NO_TRACK)
        self.current_track = None
        self.track_data = None
        self.engine_duration = None
        self.generating_track = None
        self.progress = None

    async def open_folder(self, folder: str) -> list[str]:
        """Switch to a folder and return its tracks in running order.

        Returns:
            Audio paths in playback order, or an empty list if another folder
            was opened before the listing arrived
        """
        self.select_folder(folder)
        generation = self._folder_generation
        names = await self.pipeline.client.folder_playlist(folder)
        if generation != self._folder_generation:
            return []
        self.playlist = [posixpath.join(folder, name) if folder else name for name in names]
        return self.playlist

    async def select_track(self, audio_path: str) -> TrackData | None:
        """Load (or generate) the artifact for a newly selected track.

        Returns:
            The applied artifact, or None if loading failed or the selection
            changed before the load finished
        """
        if self._token is not None:
            self._token.cancel()
        token = LoadToken(audio_path)
        self._token = token

        self.current_track = audio_path
        self.track_data = None
        self.engine_duration = None
        self.generating_track = None
        self.progress = None
        self._transition(PlayerState.LOADING_ARTIFACT)

        try:
            result = await self.pipeline.load(audio_path, on_progress=self._progress_for(token))
        except (TrackDataError, httpx.HTTPError, ValueError) as e:
            logger.error("Failed to load track data for %s: %s", audio_path, e)
            return None
        finally:
            self._finish_generation(token)

        if not self._is_current(token):
            logger.debug("Discarding track data for deselected track %s", audio_path)
            return None

        self._apply(token, result.track_data, replace_duration=result.generated)
        self._transition(PlayerState.ARTIFACT_READY)

        # The engine may have become ready while the artifact was still loading
        if self.engine_duration is not None:
            self._transition(PlayerState.ENGINE_READY)
            await self._reconcile(token, self.engine_duration)

        return self.track_data

    async def engine_ready(self, engine_duration: float) -> bool:
        """Handle the engine reporting its own duration for the current track.

        Returns:
            True if a mismatch was detected and the artifact was regenerated
        """
        token = self._token
        if token is None or not self._is_current(token):
            return False
        if not math.isfinite(engine_duration) or engine_duration <= 0:
            return False

        self.engine_duration = engine_duration
        self.durations.setdefault(token.audio_path, engine_duration)

        # Reconciliation waits until the artifact decision has settled
        if self.state == PlayerState.LOADING_ARTIFACT:
            return False

        self._transition(PlayerState.ENGINE_READY)
        return await self._reconcile(token, engine_duration)

    async def _reconcile(self, token: LoadToken, engine_duration: float) -> bool:
        track_data = self.track_data
        if track_data is None or abs(engine_duration - track_data.duration) <= self.tolerance:
            return False
        # One forced regeneration per selection; a repeat mismatch is left alone
        if token.repaired:
            logger.warning(
                "Track data for %s still differs from engine duration after repair; not retrying",
                token.audio_path,
            )
            return False
        token.repaired = True

        logger.warning(
            "Track data duration %.2fs for %s differs from engine duration %.2fs; regenerating",
            track_data.duration,
            token.audio_path,
            engine_duration,
        )
        self._transition(PlayerState.MISMATCH)
        self._transition(PlayerState.REGENERATING)

        try:
            result = await self.pipeline.load(
                token.audio_path, force=True, on_progress=self._progress_for(token)
            )
        except (TrackDataError, httpx.HTTPError, ValueError) as e:
            logger.error("Failed to repair track data for %s: %s", token.audio_path, e)
            if self._is_current(token):
                self._transition(PlayerState.ENGINE_READY)
            return False
        finally:
            self._finish_generation(token)

        if not self._is_current(token):
            return False

        self._apply(token, result.track_data, replace_duration=True)
        self._transition(PlayerState.ENGINE_READY)
        return True

    async def load_folder_durations(self, folder: str, names: list[str]) -> dict[str, float]:
        """Fill in durations for a folder's tracks from their artifacts.

        Tracks already known or already being fetched are skipped. Results
        arriving after a folder switch are dropped.

        Returns:
            Newly resolved durations keyed by audio path
        """
        paths = {posixpath.join(folder, name) if folder else name: name for name in names}
        missing = [
            path
            for path in paths
            if path not in self.durations and path not in self._pending_durations
        ]
        if not missing:
            return {}

        generation = self._folder_generation
        keys = {folder_track_key(folder, paths[path]): path for path in missing}
        self._pending_durations.update(missing)
        try:
            fetched = await self.pipeline.client.fetch_many_with_fallback(list(keys))
        finally:
            self._pending_durations.difference_update(missing)

        if generation != self._folder_generation:
            return {}

        resolved: dict[str, float] = {}
        for key, path in keys.items():
            track_data = fetched.get(key)
            if track_data is not None and path not in self.durations:
                self.durations[path] = track_data.duration
                resolved[path] = track_data.duration
        return resolved
