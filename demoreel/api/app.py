"""Litestar app configuration."""

from __future__ import annotations

from litestar import Litestar
from litestar.config.cors import CORSConfig

from ..config import Config, get_config
from ..storage import StorageBackend, get_storage
from ..trackdata.store import TrackDataStore
from .file_routes import get_audio_url, list_files, stream_audio
from .running_order_routes import get_running_order, save_running_order
from .state import AppState
from .track_data_routes import get_track_data, get_track_data_batch, save_track_data


def create_app(config: Config | None = None, storage: StorageBackend | None = None) -> Litestar:
    """Build the application around a configuration and storage backend.

    Both default to the process-wide instances loaded from config.yaml.
    """
    config = config or get_config()
    storage = storage or get_storage(config)

    # Allow CORS from development origins and the configured frontend
    allowed_origins = ["http://localhost:5173", "http://localhost:3000"]
    if config.frontend_url not in allowed_origins and config.frontend_url not in ["/", ""]:
        allowed_origins.append(config.frontend_url)

    cors_config = CORSConfig(
        allow_origins=allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    app_state = AppState(
        {
            "config": config,
            "storage": storage,
            "track_data_store": TrackDataStore(storage, config.storage.root_dir),
        }
    )

    return Litestar(
        route_handlers=[
            get_track_data,
            save_track_data,
            get_track_data_batch,
            list_files,
            get_audio_url,
            stream_audio,
            get_running_order,
            save_running_order,
        ],
        cors_config=cors_config,
        state=app_state,
        request_max_body_size=1024 * 1024 * 20,  # peaks for long tracks are large
    )
