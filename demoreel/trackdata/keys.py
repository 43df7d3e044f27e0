"""Naming conventions for audio files and their derived artifacts.

The version segment in the suffix is a format marker: artifacts written under
another suffix are simply never looked up (no migration).
"""

from __future__ import annotations

import posixpath

AUDIO_EXTENSIONS = (".wav", ".mp3", ".ogg")
TRACK_DATA_SUFFIX = ".track-data.v2.json"


def is_audio_file(name: str) -> bool:
    """Check the extension case-insensitively."""
    return name.lower().endswith(AUDIO_EXTENSIONS)


def artifact_key(audio_path: str) -> str:
    """Derive the track data key stored beside an audio file."""
    return f"{audio_path}{TRACK_DATA_SUFFIX}"


def folder_track_key(folder: str, name: str) -> str:
    """Artifact key for a file name inside a folder."""
    return artifact_key(posixpath.join(folder, name) if folder else name)
