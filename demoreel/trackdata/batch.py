"""Bounded-concurrency batch lookup of track data artifacts."""

from __future__ import annotations

import asyncio
import logging

from .models import TrackData
from .store import TrackDataStore

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


async def batch_get(
    store: TrackDataStore, keys: list[str], concurrency: int = DEFAULT_CONCURRENCY
) -> dict[str, TrackData | None]:
    """Fetch many artifacts with at most ``concurrency`` lookups in flight.

    A fixed pool of workers drains one shared queue, so load on the backend is
    bounded regardless of how many keys are requested. Each key resolves on its
    own: a missing artifact or any lookup failure yields None for that key only.

    Args:
        store: Artifact store
        keys: Artifact keys; duplicates collapse to a single entry
        concurrency: Worker pool size

    Returns:
        Mapping with exactly one entry per distinct requested key

    Raises:
        ValueError: If keys is empty or concurrency is not positive
    """
    if not keys:
        raise ValueError("At least one key is required")
    if concurrency <= 0:
        raise ValueError(f"Concurrency must be positive, got {concurrency}")

    unique_keys = list(dict.fromkeys(keys))
    queue: asyncio.Queue[str] = asyncio.Queue()
    for key in unique_keys:
        queue.put_nowait(key)

    results: dict[str, TrackData | None] = {}

    async def worker() -> None:
        while True:
            try:
                key = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                results[key] = await store.get(key)
            except Exception:
                logger.exception("Error fetching track data for %s", key)
                results[key] = None

    await asyncio.gather(*(worker() for _ in range(min(concurrency, len(unique_keys)))))
    return results
