from __future__ import annotations

from pathlib import Path

import pytest

from demoreel.config import Config, StorageConfig, TrackDataConfig
from demoreel.storage import LocalStorage
from demoreel.trackdata.store import TrackDataStore


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    root = tmp_path / "media"
    root.mkdir()
    return root


@pytest.fixture
def storage(media_root: Path) -> LocalStorage:
    return LocalStorage(media_root)


@pytest.fixture
def store(storage: LocalStorage) -> TrackDataStore:
    return TrackDataStore(storage)


@pytest.fixture
def config(media_root: Path) -> Config:
    return Config(
        storage=StorageConfig(local_path=str(media_root)),
        track_data=TrackDataConfig(verify_backoff_seconds=0),
    )
