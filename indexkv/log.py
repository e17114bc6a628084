"""
Logging setup for IndexKV.

Library modules only create module-level loggers; applications that embed
IndexKV call setup_logging() once at startup.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import IndexKvConfig, ObservabilityConfig


def setup_logging(config: IndexKvConfig | ObservabilityConfig) -> None:
    """Configure root logging based on configuration.

    Args:
        config: IndexKV configuration, or just its observability section
    """
    if isinstance(config, IndexKvConfig):
        config = config.observability

    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
