"""Exceptions raised by track data generation."""

from __future__ import annotations


class TrackDataError(Exception):
    """Base class for track data failures."""


class SourceUnreadableError(TrackDataError):
    """An audio source could not be probed, downloaded or decoded.

    Fatal for the single file or track it concerns; batch callers catch it
    per item and carry on with the rest.
    """

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")
