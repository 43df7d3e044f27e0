# pyright: reportExplicitAny=false
"""Configuration management for demoreel."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = "config.yaml"


class R2Config(BaseModel):
    """Cloudflare R2 storage configuration."""

    account_id: str = Field(..., description="Cloudflare account ID")
    access_key_id: str = Field(..., description="R2 access key ID")
    secret_access_key: str = Field(..., description="R2 secret access key")
    bucket_name: str = Field(..., description="R2 bucket holding audio and track data")
    url_expiry_seconds: int = Field(
        default=3600, description="Lifetime of presigned audio URLs"
    )


class StorageConfig(BaseModel):
    """Where audio files and their derived artifacts live."""

    root_dir: str = Field(default="", description="Prefix applied to every request path")
    local_path: str = Field(
        default="media", description="Filesystem root used when R2 is not configured"
    )
    r2: R2Config | None = Field(default=None, description="R2 configuration (optional)")


class TrackDataConfig(BaseModel):
    """Waveform summary generation and reconciliation settings."""

    scale: int = Field(default=256, description="Samples per peak window")
    duration_tolerance: float = Field(
        default=2.0, description="Seconds of drift allowed between engine and artifact"
    )
    batch_concurrency: int = Field(default=5, description="Max in-flight batch lookups")
    verify_attempts: int = Field(default=8, description="Post-save visibility checks")
    verify_backoff_seconds: float = Field(
        default=0.75, description="Linear backoff step between visibility checks"
    )

    @field_validator("scale", "batch_concurrency", "verify_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Counts and window sizes must be positive."""
        if v <= 0:
            raise ValueError(f"Value must be a positive integer, got {v}")
        return v

    @field_validator("duration_tolerance", "verify_backoff_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Value must not be negative, got {v}")
        return v


class CacheConfig(BaseModel):
    """HTTP caching for track data responses."""

    max_age: int = 300
    s_maxage: int = 3600
    stale_while_revalidate: int = 86400


class Config(BaseModel):
    """Global configuration."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    track_data: TrackDataConfig = Field(default_factory=TrackDataConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    frontend_url: str = Field(
        default="http://localhost:5173", description="Origin allowed through CORS"
    )

    @classmethod
    def _collect_required_env_vars(cls, data: Any, collected: set[str] | None = None) -> set[str]:
        """Recursively collect all ${VAR_NAME} references from config data."""
        if collected is None:
            collected = set()

        if isinstance(data, dict):
            for v in data.values():
                cls._collect_required_env_vars(v, collected)
        elif isinstance(data, list):
            for item in data:
                cls._collect_required_env_vars(item, collected)
        elif isinstance(data, str):
            collected.update(re.findall(r"\$\{([^}]+)\}", data))

        return collected

    @classmethod
    def _substitute_env_vars(cls, data: Any) -> Any:
        """Recursively substitute ${VAR_NAME} with environment variables.

        Raises:
            ValueError: If referenced environment variable is not set
        """
        if isinstance(data, dict):
            return {k: cls._substitute_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars(item) for item in data]
        elif isinstance(data, str):

            def replace_var(match: re.Match[str]) -> str:
                var_name = match.group(1)
                value = os.getenv(var_name)
                if value is None:
                    raise ValueError(
                        f"Environment variable '{var_name}' referenced in config but not set"
                    )
                return value

            return re.sub(r"\$\{([^}]+)\}", replace_var, data)
        else:
            return data

    @classmethod
    def load(cls, config_path: str = DEFAULT_CONFIG_PATH) -> Config:
        """Load configuration from YAML file.

        Note: Assumes environment variables are already loaded (e.g., via load_dotenv()).
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, "r") as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}

        # Only sections that are present need their variables set
        required_vars: set[str] = set()
        for section in ("storage", "track_data", "cache", "frontend_url"):
            if data.get(section) is not None:
                required_vars.update(cls._collect_required_env_vars(data[section]))

        missing_vars = [var for var in required_vars if var not in os.environ]
        if missing_vars:
            raise ValueError(
                f"Missing required environment variables: {', '.join(sorted(missing_vars))}\n"
                + "Please set these in your .env file or environment.\n"
                + "See .env.example for reference."
            )

        return cls(**cls._substitute_env_vars(data))


# Global config instance
_config: Config | None = None


def load_config(config_path: str | None = None) -> Config:
    """Load and cache the global configuration."""
    global _config
    _config = Config.load(config_path or os.getenv("DEMOREEL_CONFIG", DEFAULT_CONFIG_PATH))
    return _config


def get_config() -> Config:
    """Get the cached configuration (loads if not already loaded)."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
