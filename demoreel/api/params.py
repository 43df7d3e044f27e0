"""Validation of path query parameters."""

from __future__ import annotations

from litestar.exceptions import ValidationException


def require_path(path: str | None) -> str:
    """Reject missing paths and paths that try to leave the storage root.

    Raises:
        ValidationException: If the path is missing or contains '..' segments
    """
    if not path:
        raise ValidationException("Path is required")
    return validate_path(path)


def validate_path(path: str) -> str:
    if ".." in path.replace("\\", "/").split("/"):
        raise ValidationException("Invalid path")
    return path
