"""Logging infrastructure for device-trace-core.

@public

Key components:
    get_pipeline_logger: Factory function for creating engine loggers
    setup_logging: Initialize logging configuration from YAML
    LoggingConfig: Configuration class for logging settings

Example:
    >>> from device_trace_core.logging import get_pipeline_logger
    >>>
    >>> logger = get_pipeline_logger(__name__)
    >>> logger.info("Decoding started")

Note:
    Always use get_pipeline_logger() so that the default configuration is
    applied before the first record is emitted.
"""

from .logging_config import LoggingConfig, get_pipeline_logger, setup_logging

__all__ = [
    "LoggingConfig",
    "setup_logging",
    "get_pipeline_logger",
]
