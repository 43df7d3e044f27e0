"""Storage abstraction for audio files and their artifacts (local or Cloudflare R2).

Storage backend is determined by configuration:
- storage.r2 present → R2Storage (production, shared bucket)
- storage.r2 absent → LocalStorage (development, files under storage.local_path)

Keys are slash-separated paths relative to the backend root. Missing keys are
reported as None rather than raised, so callers can treat "not generated yet"
as an ordinary result.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Protocol

import boto3
from botocore.exceptions import ClientError
from pydantic import BaseModel

from .config import Config, R2Config

STREAM_CHUNK_SIZE = 64 * 1024

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class FileItem(BaseModel):
    """An entry in a folder listing."""

    name: str
    type: Literal["file", "directory"]


@dataclass(frozen=True)
class BlobMetadata:
    """Backend-owned metadata for a stored object."""

    updated: datetime


class StorageBackend(Protocol):
    """Protocol for storage backends."""

    def list_files(self, prefix: str) -> list[FileItem]:
        """List the immediate children of a folder."""
        ...

    def get_bytes(self, key: str) -> bytes | None:
        """Read an object, or None if it does not exist."""
        ...

    def put_bytes(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        """Create or fully replace an object."""
        ...

    def get_metadata(self, key: str) -> BlobMetadata | None:
        """Read object metadata without downloading content."""
        ...

    def iter_bytes(self, key: str) -> Iterator[bytes]:
        """Stream an object's content in chunks."""
        ...

    def get_url(self, key: str) -> str | None:
        """Get a directly downloadable URL, or None if the backend cannot sign one."""
        ...


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


class LocalStorage:
    """Local filesystem storage backend."""

    def __init__(self, root: Path | str = "media"):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        root = self.root.resolve()
        path = (root / key.lstrip("/")).resolve()
        if path != root and root not in path.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    def list_files(self, prefix: str) -> list[FileItem]:
        """List folders first, then files, skipping hidden entries."""
        folder = self._path(prefix)
        if not folder.is_dir():
            return []

        directories: list[FileItem] = []
        files: list[FileItem] = []
        for entry in sorted(folder.iterdir()):
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                directories.append(FileItem(name=entry.name, type="directory"))
            elif entry.is_file():
                files.append(FileItem(name=entry.name, type="file"))
        return directories + files

    def get_bytes(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError):
            return None

    def put_bytes(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        """Write to a temporary sibling and rename it into place."""
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_metadata(self, key: str) -> BlobMetadata | None:
        path = self._path(key)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        if not path.is_file():
            return None
        return BlobMetadata(updated=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc))

    def iter_bytes(self, key: str) -> Iterator[bytes]:
        with open(self._path(key), "rb") as f:
            for chunk in iter(lambda: f.read(STREAM_CHUNK_SIZE), b""):
                yield chunk

    def get_url(self, key: str) -> str | None:
        """Local files have no signed URL; callers fall back to streaming."""
        return None


class R2Storage:
    """Cloudflare R2 storage backend."""

    def __init__(self, r2_config: R2Config):
        """Initialize R2 storage with configuration."""
        self.config = r2_config
        self.s3_client = boto3.client(
            "s3",
            endpoint_url=f"https://{r2_config.account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=r2_config.access_key_id,
            aws_secret_access_key=r2_config.secret_access_key,
            region_name="auto",
        )

    def list_files(self, prefix: str) -> list[FileItem]:
        """List a folder using the '/' delimiter to simulate directories."""
        prefix = prefix.strip("/")
        prefix = f"{prefix}/" if prefix else ""

        directories: list[FileItem] = []
        files: list[FileItem] = []
        paginator = self.s3_client.get_paginator("list_objects_v2")
        for page in paginator.paginate(
            Bucket=self.config.bucket_name, Prefix=prefix, Delimiter="/"
        ):
            for common_prefix in page.get("CommonPrefixes", []):
                name = common_prefix.get("Prefix", "")[len(prefix) :].rstrip("/")
                if name and not name.startswith("."):
                    directories.append(FileItem(name=name, type="directory"))
            for obj in page.get("Contents", []):
                key = obj.get("Key", "")
                # Skip the folder placeholder itself
                if not key or key == prefix:
                    continue
                files.append(FileItem(name=key[len(prefix) :], type="file"))
        return directories + files

    def get_bytes(self, key: str) -> bytes | None:
        try:
            response = self.s3_client.get_object(Bucket=self.config.bucket_name, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise
        return response["Body"].read()

    def put_bytes(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        _ = self.s3_client.put_object(
            Bucket=self.config.bucket_name, Key=key, Body=data, ContentType=content_type
        )

    def get_metadata(self, key: str) -> BlobMetadata | None:
        try:
            response = self.s3_client.head_object(Bucket=self.config.bucket_name, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise
        last_modified = response.get("LastModified")
        if last_modified is None:
            return None
        return BlobMetadata(updated=last_modified)

    def iter_bytes(self, key: str) -> Iterator[bytes]:
        try:
            response = self.s3_client.get_object(Bucket=self.config.bucket_name, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise FileNotFoundError(key) from e
            raise
        yield from response["Body"].iter_chunks(STREAM_CHUNK_SIZE)

    def get_url(self, key: str) -> str | None:
        """Get presigned URL for downloading an object."""
        return self.s3_client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.config.bucket_name, "Key": key},
            ExpiresIn=self.config.url_expiry_seconds,
        )


# Global storage instance
_storage: StorageBackend | None = None


def get_storage(config: Config | None = None) -> StorageBackend:
    """Get the configured storage backend.

    R2Storage when config.storage.r2 is set, LocalStorage otherwise.
    """
    global _storage

    if _storage is not None:
        return _storage

    if config is None:
        from .config import get_config

        config = get_config()

    if config.storage.r2 is not None:
        _storage = R2Storage(config.storage.r2)
    else:
        _storage = LocalStorage(config.storage.local_path)

    return _storage
