"""Core configuration settings for trace reconstruction.

@public

This module provides centralized configuration for device-trace-core.
Settings are loaded from environment variables with .env file support via
pydantic-settings.

Environment variables:
    DEVICE_TRACE_SYMBOL_DIR: Directory holding <firmware_version>.yml symbol manifests
    DEVICE_TRACE_MAX_SPAN_DEPTH: Safety ceiling for nested spans per session
    DEVICE_TRACE_MAX_FRAME_SIZE: Largest accepted decoded frame, in bytes
    DEVICE_TRACE_IDLE_TIMEOUT_SECONDS: Session idle timeout (0 disables)
    DEVICE_TRACE_EXPORT_QUEUE_SIZE: Capacity of the background export queue
    DEVICE_TRACE_EXPORT_OVERFLOW_POLICY: "drop_oldest" or "block"
    DEVICE_TRACE_SERVICE_NAME: OpenTelemetry service.name for exported spans

Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file in current directory
    3. Default values

Example:
    >>> from device_trace_core.settings import settings
    >>> print(settings.max_span_depth)
    64

Note:
    Settings are loaded once at module import and frozen. Construct a new
    Settings object to pick up changed environment variables.
"""

from pathlib import Path
from typing import Literal, TypeAlias

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

OverflowPolicy: TypeAlias = Literal["drop_oldest", "block"]


class Settings(BaseSettings):
    """Configuration for the trace reconstruction engine.

    @public

    Attributes:
        symbol_dir: Directory searched by LocalSymbolSource for symbol manifests.
        max_span_depth: Maximum open spans per session. Deeper enters are
                        recorded as log events with a depth_exceeded warning.
        max_frame_size: Frames longer than this are discarded as corrupt.
        idle_timeout_seconds: A streamed session with no bytes for this long
                              is ended through the normal session-end path.
        export_queue_size: Bound of the QueuedSpanSink queue.
        export_overflow_policy: What QueuedSpanSink does when full.
        service_name: Value of the service.name resource attribute.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEVICE_TRACE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    symbol_dir: Path = Path("symbols")
    max_span_depth: int = Field(default=64, ge=1)
    max_frame_size: int = Field(default=4096, ge=16)
    idle_timeout_seconds: float = Field(default=30.0, ge=0.0)
    export_queue_size: int = Field(default=1024, ge=1)
    export_overflow_policy: OverflowPolicy = "drop_oldest"
    service_name: str = "embedded-device"


settings = Settings()
"""Global settings instance.

@public
"""
