"""Running order (playlist) endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from litestar import get, post
from litestar.exceptions import InternalServerException, NotFoundException
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK
from pydantic import ValidationError

from ..running_order import RunningOrder
from .models import MessageResponse
from .params import require_path, validate_path
from .state import AppState

logger = logging.getLogger(__name__)


async def _read_running_order(state: AppState, path: str) -> RunningOrder | None:
    raw = await asyncio.to_thread(state.storage.get_bytes, state.resolve(path))
    if raw is None:
        return None
    try:
        return RunningOrder.model_validate_json(raw)
    except ValidationError:
        logger.warning("Ignoring malformed running order at %s", path)
        return None


@get("/api/running-order")
async def get_running_order(
    state: AppState,
    path: str | None = None,
    legacy_path: Annotated[str | None, Parameter(query="legacyPath")] = None,
) -> RunningOrder:
    """Read a folder's running order, falling back to the legacy file name."""
    path = require_path(path)
    order = await _read_running_order(state, path)
    if order is None and legacy_path:
        order = await _read_running_order(state, validate_path(legacy_path))
    if order is None:
        raise NotFoundException("Running order not found")
    return order


@post("/api/running-order", status_code=HTTP_200_OK)
async def save_running_order(
    state: AppState, data: RunningOrder, path: str | None = None
) -> MessageResponse:
    """Persist a folder's running order."""
    path = require_path(path)
    payload = data.model_dump_json(indent=2) + "\n"
    try:
        await asyncio.to_thread(
            state.storage.put_bytes, state.resolve(path), payload.encode("utf-8"), "application/json"
        )
    except Exception as e:
        logger.exception("Error saving running order for %s", path)
        raise InternalServerException("Error saving running order") from e
    return MessageResponse(message="Running order saved successfully")
