"""Decide whether a stored artifact still reflects its source audio."""

from __future__ import annotations

from .models import StalenessVerdict
from .store import TrackDataStore


async def check_stale(
    store: TrackDataStore, audio_key: str | None, artifact_key: str
) -> StalenessVerdict:
    """Compare backend modification times of an audio file and its artifact.

    Only metadata is read. A missing artifact is reported as ``exists=False``
    (the caller must generate it), which is distinct from staleness. When the
    audio timestamp is unavailable the artifact cannot be proven stale.

    Args:
        store: Artifact store
        audio_key: Path of the source audio, or None to skip the comparison
        artifact_key: Path of the track data artifact

    Returns:
        StalenessVerdict with exists and needsRegeneration flags
    """
    artifact_meta = await store.get_metadata(artifact_key)
    if artifact_meta is None:
        return StalenessVerdict(exists=False, needsRegeneration=False)

    audio_meta = await store.get_metadata(audio_key) if audio_key else None

    needs_regeneration = audio_meta is not None and audio_meta.updated > artifact_meta.updated
    return StalenessVerdict(exists=True, needsRegeneration=needs_regeneration)
