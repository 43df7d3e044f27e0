"""HTTP client for the track data API with a session-scoped in-memory cache."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from ..running_order import RunningOrder, merge_playlist, running_order_key
from .keys import is_audio_file
from .models import StalenessVerdict, TrackData

logger = logging.getLogger(__name__)

TRACK_DATA_ENDPOINT = "/api/track-data"
BATCH_ENDPOINT = "/api/track-data/batch"
AUDIO_URL_ENDPOINT = "/api/audio-url"
FILES_ENDPOINT = "/api/files"
RUNNING_ORDER_ENDPOINT = "/api/running-order"


class TrackDataCache:
    """Artifacts already fetched during one browsing session.

    Only real artifacts are stored; absence is never cached because an artifact
    may be generated later. Entries are never evicted.
    """

    def __init__(self):
        self._entries: dict[str, TrackData] = {}

    def get(self, key: str) -> TrackData | None:
        return self._entries.get(key)

    def store(self, key: str, data: TrackData) -> None:
        self._entries[key] = data

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class TrackDataClient:
    """Fetches, checks and saves track data through the HTTP API."""

    def __init__(self, http: httpx.AsyncClient, cache: TrackDataCache | None = None):
        self.http = http
        self.cache = cache if cache is not None else TrackDataCache()

    async def check(self, key: str, audio_path: str | None = None) -> StalenessVerdict:
        """Ask the server whether an artifact exists and is current.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response
        """
        params = {"path": key, "check": "1"}
        if audio_path:
            params["audioPath"] = audio_path
        response = await self.http.get(TRACK_DATA_ENDPOINT, params=params)
        response.raise_for_status()
        return StalenessVerdict.model_validate(response.json())

    async def fetch_remote(self, key: str) -> TrackData | None:
        """Fetch an artifact from the server, ignoring the cache."""
        response = await self.http.get(TRACK_DATA_ENDPOINT, params={"path": key})
        if response.is_error:
            return None
        try:
            return TrackData.model_validate(response.json())
        except (ValueError, ValidationError):
            logger.warning("Discarding malformed track data for %s", key)
            return None

    async def fetch_one(self, key: str) -> TrackData | None:
        """Return a cached artifact, or fetch and cache it."""
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        data = await self.fetch_remote(key)
        if data is not None:
            self.cache.store(key, data)
        return data

    async def fetch_many(self, keys: list[str]) -> dict[str, TrackData | None]:
        """Resolve many keys with at most one batch request.

        Cached keys are answered locally; only the rest go to the server. If the
        batch request fails, the result holds just the cached keys and callers
        fall back to ``fetch_one`` for the remainder.
        """
        result: dict[str, TrackData | None] = {}
        uncached: list[str] = []
        for key in dict.fromkeys(keys):
            cached = self.cache.get(key)
            if cached is not None:
                result[key] = cached
            else:
                uncached.append(key)

        if not uncached:
            return result

        try:
            response = await self.http.post(BATCH_ENDPOINT, json={"paths": uncached})
        except httpx.HTTPError as e:
            logger.warning("Batch track data request failed: %s", e)
            return result
        if response.is_error:
            logger.warning("Batch track data request returned %s", response.status_code)
            return result

        try:
            payload = response.json().get("data") or {}
            entries = list(payload.items())
        except (ValueError, AttributeError):
            logger.warning("Batch track data response was not a JSON object")
            return result

        for key, raw in entries:
            data: TrackData | None = None
            if raw is not None:
                try:
                    data = TrackData.model_validate(raw)
                except ValidationError:
                    logger.warning("Discarding malformed track data for %s", key)
            if data is not None:
                self.cache.store(key, data)
            result[key] = data

        return result

    async def fetch_many_with_fallback(self, keys: list[str]) -> dict[str, TrackData | None]:
        """Batch fetch, then retry unresolved keys one at a time.

        Sequential single fetches are the degraded path for keys the batch
        left absent or null; one failing key does not affect the others.
        """
        result = await self.fetch_many(keys)
        for key in dict.fromkeys(keys):
            if result.get(key) is not None:
                continue
            try:
                result[key] = await self.fetch_one(key)
            except httpx.HTTPError as e:
                logger.warning("Fallback track data fetch failed for %s: %s", key, e)
                result[key] = None
        return result

    async def save(self, key: str, data: TrackData) -> None:
        """Persist an artifact and remember it locally.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response
        """
        response = await self.http.post(
            TRACK_DATA_ENDPOINT,
            params={"path": key},
            content=data.model_dump_json(),
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()
        self.cache.store(key, data)

    async def audio_url(self, audio_path: str) -> str:
        """Get a downloadable URL for an audio file.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response
            ValueError: If the server response has no URL
        """
        response = await self.http.get(AUDIO_URL_ENDPOINT, params={"path": audio_path})
        response.raise_for_status()
        url = response.json().get("url")
        if not url:
            raise ValueError(f"Signed audio URL missing for {audio_path}")
        return url

    async def folder_playlist(self, folder: str) -> list[str]:
        """List a folder's audio files in running order.

        Files missing from the stored order are appended; a folder without a
        stored order keeps the listing order.

        Raises:
            httpx.HTTPError: If the folder listing fails
        """
        response = await self.http.get(FILES_ENDPOINT, params={"path": folder})
        response.raise_for_status()
        audio_names = [
            item["name"]
            for item in response.json().get("files", [])
            if item.get("type") == "file" and is_audio_file(item.get("name", ""))
        ]

        order: RunningOrder | None = None
        order_response = await self.http.get(
            RUNNING_ORDER_ENDPOINT,
            params={
                "path": running_order_key(folder),
                "legacyPath": running_order_key(folder, legacy=True),
            },
        )
        if order_response.is_success:
            try:
                order = RunningOrder.model_validate(order_response.json())
            except (ValueError, ValidationError):
                logger.warning("Ignoring malformed running order for %s", folder)

        return merge_playlist(order, audio_names)
