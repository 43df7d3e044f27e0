"""Track data persistence on top of the generic blob store."""

from __future__ import annotations

import asyncio

from ..storage import BlobMetadata, StorageBackend
from .models import TrackData


class TrackDataStore:
    """Reads and writes track data artifacts.

    A missing artifact is an ordinary ``None`` result, never an exception.
    Backend calls block, so they run in a worker thread.
    """

    def __init__(self, backend: StorageBackend, root_dir: str = ""):
        self.backend = backend
        self.root_dir = root_dir

    def resolve(self, key: str) -> str:
        """Apply the configured root prefix to a request path."""
        return f"{self.root_dir}{key}"

    async def get(self, key: str) -> TrackData | None:
        raw = await asyncio.to_thread(self.backend.get_bytes, self.resolve(key))
        if raw is None:
            return None
        return TrackData.model_validate_json(raw)

    async def put(self, key: str, data: TrackData) -> None:
        """Fully replace the artifact at ``key``."""
        payload = data.model_dump_json(indent=2) + "\n"
        await asyncio.to_thread(
            self.backend.put_bytes, self.resolve(key), payload.encode("utf-8"), "application/json"
        )

    async def get_metadata(self, key: str) -> BlobMetadata | None:
        return await asyncio.to_thread(self.backend.get_metadata, self.resolve(key))
