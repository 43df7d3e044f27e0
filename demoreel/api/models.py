"""Pydantic models for API requests and responses."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..storage import FileItem
from ..trackdata.models import TrackData


class BatchRequest(BaseModel):
    """Artifact paths to resolve in one request."""

    paths: list[str] = Field(default_factory=list)


class BatchResponse(BaseModel):
    """One entry per requested path; null when the artifact is unavailable."""

    data: dict[str, TrackData | None]


class MessageResponse(BaseModel):
    """Plain acknowledgment."""

    message: str


class FilesResponse(BaseModel):
    """Folder listing."""

    files: list[FileItem]


class AudioUrlResponse(BaseModel):
    """Where to download an audio file from."""

    url: str
