"""Type-safe application state for Litestar."""

from __future__ import annotations

from litestar.datastructures import State

from ..config import Config
from ..storage import StorageBackend
from ..trackdata.store import TrackDataStore


class AppState(State):
    """Type-safe application state.

    Subclassing State allows proper type checking when injected into handlers.

    Note: Attributes are set directly on the State dict, not as class attributes.
    This avoids deserialization issues with Litestar's signature model.
    """

    config: Config
    storage: StorageBackend
    track_data_store: TrackDataStore

    def resolve(self, path: str) -> str:
        """Apply the configured root prefix to a request path."""
        return f"{self.config.storage.root_dir}{path}"
