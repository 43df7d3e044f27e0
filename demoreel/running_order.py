"""Running order (playlist) files stored beside the audio of a folder."""

from __future__ import annotations

import locale
import posixpath

from pydantic import BaseModel

RUNNING_ORDER_FILENAME = "running-order.v2.json"
LEGACY_RUNNING_ORDER_FILENAME = "running-order.json"


class RunningOrder(BaseModel):
    """User-controlled ordering of the tracks in a folder."""

    playlist: list[str]


def sort_names(names: list[str]) -> list[str]:
    """Sort file names with the active locale's collation."""
    return sorted(names, key=locale.strxfrm)


def running_order_key(folder: str, legacy: bool = False) -> str:
    name = LEGACY_RUNNING_ORDER_FILENAME if legacy else RUNNING_ORDER_FILENAME
    return posixpath.join(folder, name) if folder else name


def merge_playlist(order: RunningOrder | None, audio_names: list[str]) -> list[str]:
    """Apply a stored order to the files actually present.

    Names in the stored order that no longer exist are dropped; files missing
    from the order are appended in their listing order.
    """
    if order is None:
        return list(audio_names)

    present = set(audio_names)
    ordered = [name for name in order.playlist if name in present]
    known = set(ordered)
    return ordered + [name for name in audio_names if name not in known]
