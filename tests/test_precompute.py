"""Tests for offline precomputation over a directory tree."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from demoreel.trackdata.models import TrackData
from demoreel.trackdata.precompute import precompute_tree, walk_audio_folders

from helpers import FakeGenerator


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    root = tmp_path / "reviews"
    (root / "live").mkdir(parents=True)
    (root / "empty").mkdir()
    for name in ("b.wav", "a2.wav", "a1.wav", "notes.txt"):
        (root / name).write_bytes(b"audio")
    (root / "live" / "take.MP3").write_bytes(b"audio")
    return root


def test_walk_finds_audio_folders(tree):
    folders = walk_audio_folders(tree)
    assert [f.path for f in folders] == [tree, tree / "live"]
    assert folders[0].files == ["a1.wav", "a2.wav", "b.wav"]
    assert folders[1].files == ["take.MP3"]


@pytest.mark.asyncio
async def test_generates_artifacts_and_running_orders(tree):
    generator = FakeGenerator(duration=2.0)
    report = await precompute_tree(tree, generator)

    assert report.folders == 2
    assert report.generated == 4
    assert report.skipped == 0
    assert report.failed == []
    assert report.running_orders_written == 2

    artifact = TrackData.model_validate_json((tree / "a1.wav.track-data.v2.json").read_text())
    assert artifact.duration == pytest.approx(2.0)
    assert artifact.scale == 256
    assert not (tree / "notes.txt.track-data.v2.json").exists()
    assert (tree / "live" / "take.MP3.track-data.v2.json").exists()

    order = json.loads((tree / "running-order.v2.json").read_text())
    assert order == {"playlist": ["a1.wav", "a2.wav", "b.wav"]}


@pytest.mark.asyncio
async def test_second_run_writes_nothing(tree):
    await precompute_tree(tree, FakeGenerator())
    before = {p: p.stat().st_mtime_ns for p in tree.rglob("*.json")}

    generator = FakeGenerator()
    report = await precompute_tree(tree, generator)

    assert generator.calls == []
    assert report.generated == 0
    assert report.skipped == 4
    assert report.running_orders_written == 0
    assert {p: p.stat().st_mtime_ns for p in tree.rglob("*.json")} == before


@pytest.mark.asyncio
async def test_overwrite_regenerates(tree):
    await precompute_tree(tree, FakeGenerator(duration=1.0))
    report = await precompute_tree(tree, FakeGenerator(duration=5.0), overwrite=True)

    assert report.generated == 4
    assert report.running_orders_written == 2
    artifact = TrackData.model_validate_json((tree / "b.wav.track-data.v2.json").read_text())
    assert artifact.duration == pytest.approx(5.0)


@pytest.mark.asyncio
async def test_unreadable_file_does_not_stop_siblings(tree):
    report = await precompute_tree(tree, FakeGenerator(fail_for={"a2.wav"}))

    assert report.failed == [tree / "a2.wav"]
    assert report.generated == 3
    assert not (tree / "a2.wav.track-data.v2.json").exists()
    assert (tree / "b.wav.track-data.v2.json").exists()
    # The running order still lists every audio file
    order = json.loads((tree / "running-order.v2.json").read_text())
    assert order["playlist"] == ["a1.wav", "a2.wav", "b.wav"]


@pytest.mark.asyncio
async def test_existing_running_order_kept(tree):
    (tree / "running-order.v2.json").write_text('{"playlist": ["b.wav"]}')
    await precompute_tree(tree, FakeGenerator())
    assert json.loads((tree / "running-order.v2.json").read_text()) == {"playlist": ["b.wav"]}


@pytest.mark.asyncio
async def test_running_order_can_be_disabled(tree):
    report = await precompute_tree(tree, FakeGenerator(), running_order=False)
    assert report.running_orders_written == 0
    assert not (tree / "running-order.v2.json").exists()


@pytest.mark.asyncio
async def test_custom_scale_passed_to_generator(tree):
    generator = FakeGenerator()
    await precompute_tree(tree, generator, scale=512)
    assert {scale for _, scale in generator.calls} == {512}


@pytest.mark.asyncio
async def test_no_audio(tmp_path):
    report = await precompute_tree(tmp_path, FakeGenerator())
    assert report.folders == 0
    assert report.generated == 0


@pytest.mark.asyncio
async def test_not_a_directory(tmp_path):
    with pytest.raises(NotADirectoryError):
        await precompute_tree(tmp_path / "missing", FakeGenerator())


@pytest.mark.asyncio
async def test_invalid_scale(tree):
    with pytest.raises(ValueError):
        await precompute_tree(tree, FakeGenerator(), scale=0)
