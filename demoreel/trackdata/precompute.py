"""Offline precomputation of track data over a directory tree."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from ..running_order import RUNNING_ORDER_FILENAME, RunningOrder, sort_names
from .errors import SourceUnreadableError
from .generator import TrackDataGenerator
from .keys import TRACK_DATA_SUFFIX, is_audio_file
from .peaks import DEFAULT_SCALE, validate_scale

logger = logging.getLogger(__name__)


@dataclass
class AudioFolder:
    """A folder holding at least one audio file."""

    path: Path
    files: list[str]


@dataclass
class PrecomputeReport:
    """Counts from one precompute run."""

    folders: int = 0
    generated: int = 0
    skipped: int = 0
    failed: list[Path] = field(default_factory=list)
    running_orders_written: int = 0


def walk_audio_folders(root: Path) -> list[AudioFolder]:
    """Recursively find folders containing audio files, parents before children."""
    folders: list[AudioFolder] = []

    def walk(current: Path) -> None:
        entries = sorted(current.iterdir())
        audio_files = [e.name for e in entries if e.is_file() and is_audio_file(e.name)]
        if audio_files:
            folders.append(AudioFolder(path=current, files=audio_files))
        for entry in entries:
            if entry.is_dir():
                walk(entry)

    walk(root)
    return folders


def write_json_atomic(path: Path, payload: str) -> None:
    """Write a file so readers see either the old content or the full new content."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


async def precompute_tree(
    root: Path,
    generator: TrackDataGenerator,
    scale: int = DEFAULT_SCALE,
    overwrite: bool = False,
    running_order: bool = True,
) -> PrecomputeReport:
    """Generate ``<file>.track-data.v2.json`` beside every audio file under ``root``.

    Existing outputs are left alone unless ``overwrite`` is set, so a second run
    performs no writes. A file that cannot be decoded is logged and counted; the
    rest of its folder is still processed.

    Args:
        root: Directory to walk
        generator: Generator reading local file paths
        scale: Samples per peak window
        overwrite: Regenerate artifacts and running orders that already exist
        running_order: Also write running-order.v2.json per folder

    Returns:
        PrecomputeReport with counts of generated, skipped and failed files

    Raises:
        NotADirectoryError: If root is not an existing directory
        ValueError: If scale is not a positive integer
    """
    scale = validate_scale(scale)
    if not root.is_dir():
        raise NotADirectoryError(f"Input path is not a directory: {root}")

    report = PrecomputeReport()
    folders = walk_audio_folders(root)
    report.folders = len(folders)
    if not folders:
        logger.info("No audio files found under %s", root)
        return report

    logger.info("Found %d folder(s) with audio files", len(folders))

    for folder in folders:
        logger.info("Processing %s", folder.path)
        sorted_files = sort_names(folder.files)

        for name in sorted_files:
            audio_path = folder.path / name
            output_path = folder.path / f"{name}{TRACK_DATA_SUFFIX}"

            if not overwrite and output_path.exists():
                logger.info("Skipping existing %s", output_path.name)
                report.skipped += 1
                continue

            logger.info("Generating %s", output_path.name)
            try:
                track_data = await generator.generate(str(audio_path), scale)
            except (SourceUnreadableError, OSError) as e:
                logger.error("Failed to generate track data for %s: %s", audio_path, e)
                report.failed.append(audio_path)
                continue

            write_json_atomic(output_path, track_data.model_dump_json(indent=2) + "\n")
            report.generated += 1

        if running_order:
            order_path = folder.path / RUNNING_ORDER_FILENAME
            if overwrite or not order_path.exists():
                payload = RunningOrder(playlist=sorted_files).model_dump_json(indent=2) + "\n"
                write_json_atomic(order_path, payload)
                report.running_orders_written += 1
                logger.info("Wrote %s", order_path.name)
            else:
                logger.info("Skipping existing %s", order_path.name)

    return report
