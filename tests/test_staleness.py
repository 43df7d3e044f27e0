"""Tests for artifact staleness detection."""

import pytest

from demoreel.trackdata.keys import artifact_key
from demoreel.trackdata.staleness import check_stale

from helpers import make_track_data, set_mtime

AUDIO = "band/a.wav"
ARTIFACT = artifact_key(AUDIO)


@pytest.fixture
def write(storage, media_root):
    def _write(key: str, mtime: float, data: bytes = b"x") -> None:
        storage.put_bytes(key, data)
        set_mtime(media_root / key, mtime)

    return _write


@pytest.mark.asyncio
async def test_missing_artifact_is_not_stale(store, write):
    write(AUDIO, 2_000)
    verdict = await check_stale(store, AUDIO, ARTIFACT)
    assert verdict.exists is False
    assert verdict.needsRegeneration is False


@pytest.mark.asyncio
@pytest.mark.parametrize("audio_mtime,artifact_mtime", [(1_000, 2_000), (2_000, 2_000)])
async def test_artifact_not_older_is_fresh(store, write, audio_mtime, artifact_mtime):
    write(AUDIO, audio_mtime)
    write(ARTIFACT, artifact_mtime)
    verdict = await check_stale(store, AUDIO, ARTIFACT)
    assert verdict.exists is True
    assert verdict.needsRegeneration is False


@pytest.mark.asyncio
async def test_artifact_older_than_audio_is_stale(store, write):
    write(ARTIFACT, 1_000)
    write(AUDIO, 2_000)
    verdict = await check_stale(store, AUDIO, ARTIFACT)
    assert verdict.exists is True
    assert verdict.needsRegeneration is True


@pytest.mark.asyncio
async def test_generated_at_is_ignored(store, write):
    # The timestamp inside the JSON says "ancient" but the backend says "new"
    payload = make_track_data(generated_at="1999-01-01T00:00:00.000Z").model_dump_json().encode()
    write(ARTIFACT, 3_000, payload)
    write(AUDIO, 2_000)
    verdict = await check_stale(store, AUDIO, ARTIFACT)
    assert verdict.needsRegeneration is False


@pytest.mark.asyncio
async def test_missing_audio_cannot_prove_staleness(store, write):
    write(ARTIFACT, 1_000)
    verdict = await check_stale(store, AUDIO, ARTIFACT)
    assert verdict.exists is True
    assert verdict.needsRegeneration is False


@pytest.mark.asyncio
async def test_without_audio_path(store, write):
    write(ARTIFACT, 1_000)
    write(AUDIO, 2_000)
    verdict = await check_stale(store, None, ARTIFACT)
    assert verdict.needsRegeneration is False
