"""Waveform track data: peak extraction, persistence, retrieval and reconciliation."""

from .errors import SourceUnreadableError, TrackDataError
from .keys import TRACK_DATA_SUFFIX, artifact_key
from .models import StalenessVerdict, TrackData, TrackDataPhase, TrackDataProgress

__all__ = [
    "TRACK_DATA_SUFFIX",
    "SourceUnreadableError",
    "StalenessVerdict",
    "TrackData",
    "TrackDataError",
    "TrackDataPhase",
    "TrackDataProgress",
    "artifact_key",
]
