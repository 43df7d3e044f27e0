"""Track data endpoints: staleness check, fetch, save and batch fetch."""

from __future__ import annotations

import logging
from typing import Annotated

from litestar import Response, get, post
from litestar.datastructures import CacheControlHeader
from litestar.exceptions import InternalServerException, NotFoundException, ValidationException
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK

from ..config import CacheConfig
from ..trackdata.batch import batch_get
from ..trackdata.models import StalenessVerdict, TrackData
from ..trackdata.staleness import check_stale
from .models import BatchRequest, BatchResponse, MessageResponse
from .params import require_path, validate_path
from .state import AppState

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": CacheControlHeader(no_store=True).to_header()}


def cacheable_headers(cache: CacheConfig) -> dict[str, str]:
    """Shared caches may serve slightly stale track data while revalidating."""
    header = CacheControlHeader(
        public=True,
        max_age=cache.max_age,
        s_maxage=cache.s_maxage,
        stale_while_revalidate=cache.stale_while_revalidate,
    )
    return {"Cache-Control": header.to_header()}


@get("/api/track-data")
async def get_track_data(
    state: AppState,
    path: str | None = None,
    audio_path: Annotated[str | None, Parameter(query="audioPath")] = None,
    check: str | None = None,
) -> Response[TrackData | StalenessVerdict]:
    """Fetch a track data artifact, or with check=1 report whether it is current."""
    path = require_path(path)
    store = state.track_data_store

    if check == "1":
        if audio_path:
            validate_path(audio_path)
        try:
            verdict = await check_stale(store, audio_path or None, path)
        except Exception as e:
            logger.exception("Error checking track data for %s", path)
            raise InternalServerException("Error checking track data") from e
        return Response(verdict, headers=NO_STORE)

    try:
        track_data = await store.get(path)
    except Exception as e:
        logger.exception("Error fetching track data for %s", path)
        raise NotFoundException("Track data not found") from e

    if track_data is None:
        raise NotFoundException("Track data not found")
    return Response(track_data, headers=cacheable_headers(state.config.cache))


@post("/api/track-data", status_code=HTTP_200_OK)
async def save_track_data(state: AppState, data: TrackData, path: str | None = None) -> MessageResponse:
    """Persist a track data artifact, replacing any existing one."""
    path = require_path(path)
    try:
        await state.track_data_store.put(path, data)
    except Exception as e:
        logger.exception("Error saving track data for %s", path)
        raise InternalServerException("Error saving track data") from e

    logger.info("Saved track data for %s (%d peaks)", path, len(data.peaks))
    return MessageResponse(message="Track data saved successfully")


@post("/api/track-data/batch", status_code=HTTP_200_OK)
async def get_track_data_batch(state: AppState, data: BatchRequest) -> Response[BatchResponse]:
    """Fetch many artifacts at once; unavailable ones come back as null."""
    if not data.paths:
        raise ValidationException("Paths are required")
    for path in data.paths:
        validate_path(path)

    results = await batch_get(
        state.track_data_store, data.paths, state.config.track_data.batch_concurrency
    )
    return Response(BatchResponse(data=results), headers=cacheable_headers(state.config.cache))
