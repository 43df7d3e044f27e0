"""Folder listing and audio access endpoints."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from urllib.parse import urlencode

from litestar import Response, get
from litestar.datastructures import CacheControlHeader
from litestar.exceptions import NotFoundException
from litestar.response import Stream

from .models import AudioUrlResponse, FilesResponse
from .params import require_path, validate_path
from .state import AppState

logger = logging.getLogger(__name__)


@get("/api/files")
async def list_files(state: AppState, path: str = "") -> FilesResponse:
    """List the folders and files directly under a path."""
    validate_path(path)
    files = await asyncio.to_thread(state.storage.list_files, state.resolve(path))
    return FilesResponse(files=files)


@get("/api/audio-url")
async def get_audio_url(state: AppState, path: str | None = None) -> Response[AudioUrlResponse]:
    """Get a short-lived URL for downloading an audio file.

    Backends that cannot sign URLs get the streaming endpoint instead.
    """
    path = require_path(path)
    key = state.resolve(path)

    metadata = await asyncio.to_thread(state.storage.get_metadata, key)
    if metadata is None:
        raise NotFoundException("File not found")

    url = await asyncio.to_thread(state.storage.get_url, key)
    if url is None:
        url = f"/api/audio?{urlencode({'path': path})}"

    return Response(
        AudioUrlResponse(url=url),
        headers={"Cache-Control": CacheControlHeader(private=True, max_age=60).to_header()},
    )


@get("/api/audio")
async def stream_audio(state: AppState, path: str | None = None) -> Stream:
    """Stream an audio file from storage."""
    path = require_path(path)
    key = state.resolve(path)

    metadata = await asyncio.to_thread(state.storage.get_metadata, key)
    if metadata is None:
        raise NotFoundException("File not found")

    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return Stream(state.storage.iter_bytes(key), media_type=media_type)
