"""Bridge configuration models and loaders."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from rtsp_kvs.media.errors import ConfigurationError
from rtsp_kvs.media.uri import validate_rtsp_uri

DEFAULT_TAGS: List[Tuple[str, str]] = [("Produced-By", "Kinesis-Video-GStreamer-Demo")]


class StreamSettings(BaseModel):
    """Per-stream hints copied into the stream descriptor."""

    model_config = ConfigDict(frozen=True)

    retention: timedelta = Field(
        default=timedelta(hours=1), description="How long the service keeps fragments"
    )
    tags: List[Tuple[str, str]] = Field(default_factory=lambda: list(DEFAULT_TAGS))
    fragment_duration: timedelta = Field(default=timedelta(seconds=2))
    frame_rate: int = Field(default=30, ge=1, le=240)
    avg_bandwidth_bps: int = Field(default=4 * 1024 * 1024, ge=1)

    @field_validator("retention", "fragment_duration")
    @classmethod
    def _validate_positive(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("duration must be positive")
        return value


class JournalSettings(BaseModel):
    """Local frame journal written by the producer."""

    model_config = ConfigDict(frozen=True)

    database_path: str = Field(default="/data/rtsp-kvs/journal.db")
    ensure_fsync: bool = Field(
        default=False, description="Force fsync after every frame write"
    )
    store_payloads: bool = Field(
        default=False, description="Keep a copy of every access unit in the journal"
    )


class WebSettings(BaseModel):
    """Status endpoint configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)


class BridgeConfig(BaseModel):
    """Top-level configuration for the launcher."""

    model_config = ConfigDict(frozen=True)

    stream: StreamSettings = Field(default_factory=StreamSettings)
    journal: JournalSettings = Field(default_factory=JournalSettings)
    web: WebSettings = Field(default_factory=WebSettings)
    stop_timeout_seconds: float = Field(default=5.0, gt=0.0)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeConfig":
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def from_file(cls, path: str | Path) -> "BridgeConfig":
        cfg_path = Path(path)
        if not cfg_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {cfg_path}")
        if cfg_path.suffix.lower() != ".json":
            raise ConfigurationError("Unsupported configuration file format; use JSON")
        return cls.from_dict(json.loads(cfg_path.read_text(encoding="utf-8")))

    @classmethod
    def default(cls) -> "BridgeConfig":
        return cls()


def resolve_config(path: Optional[str]) -> BridgeConfig:
    """Load configuration from disk, falling back to defaults when no path is given."""

    if path:
        return BridgeConfig.from_file(path)
    return BridgeConfig.default()


__all__ = [
    "BridgeConfig",
    "JournalSettings",
    "StreamSettings",
    "WebSettings",
    "resolve_config",
    "validate_rtsp_uri",
]
