"""
Configuration management for IndexKV.

Configuration is read from environment variables; every setting has a
default suitable for local development and tests. This module provides
typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Explicit constructor arguments on a Collection win over these defaults

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Document all new settings in the dataclass docstrings
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_LOG_FORMATS = ("json", "text")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


class StoreBackend(Enum):
    """Supported key-value store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


@dataclass(frozen=True)
class SqliteConfig:
    """SQLite store configuration.

    Attributes:
        path: SQLite database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    path: str = "indexkv.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> SqliteConfig:
        """Load configuration from environment variables."""
        return cls(
            path=os.getenv("INDEXKV_SQLITE_PATH", "indexkv.db"),
            wal_mode=_env_bool("INDEXKV_SQLITE_WAL_MODE", True),
            busy_timeout_ms=int(os.getenv("INDEXKV_SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class CollectionDefaults:
    """Defaults applied to collections built from configuration.

    Attributes:
        cleanup_stale_indexes: Erase index entries for old field values on update
        optimistic_checks: Stage versionstamp checks so concurrent writers conflict
    """

    cleanup_stale_indexes: bool = True
    optimistic_checks: bool = False

    @classmethod
    def from_env(cls) -> CollectionDefaults:
        """Load configuration from environment variables."""
        return cls(
            cleanup_stale_indexes=_env_bool("INDEXKV_CLEANUP_STALE_INDEXES", True),
            optimistic_checks=_env_bool("INDEXKV_OPTIMISTIC_CHECKS", False),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class IndexKvConfig:
    """Complete IndexKV configuration.

    Attributes:
        backend: Which store backend open_store() builds
        sqlite: SQLite configuration (if backend is SQLITE)
        collections: Collection defaults
        observability: Logging configuration
    """

    backend: StoreBackend = StoreBackend.MEMORY
    sqlite: SqliteConfig = field(default_factory=SqliteConfig)
    collections: CollectionDefaults = field(default_factory=CollectionDefaults)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> IndexKvConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        backend_str = os.getenv("INDEXKV_BACKEND", "memory").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid INDEXKV_BACKEND '{backend_str}'. Must be one of: memory, sqlite"
            )

        config = cls(
            backend=backend,
            sqlite=SqliteConfig.from_env(),
            collections=CollectionDefaults.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.backend == StoreBackend.SQLITE:
            if not self.sqlite.path:
                raise ValueError("INDEXKV_SQLITE_PATH is required when INDEXKV_BACKEND=sqlite")
            if self.sqlite.busy_timeout_ms < 0:
                raise ValueError("INDEXKV_SQLITE_BUSY_TIMEOUT_MS must be >= 0")

        if self.observability.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid LOG_LEVEL '{self.observability.log_level}'. "
                f"Must be one of: {', '.join(_LOG_LEVELS)}"
            )
        if self.observability.log_format not in _LOG_FORMATS:
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration summary."""
        logger.info(
            "IndexKV configuration loaded",
            extra={
                "backend": self.backend.value,
                "sqlite_path": self.sqlite.path
                if self.backend == StoreBackend.SQLITE
                else None,
                "cleanup_stale_indexes": self.collections.cleanup_stale_indexes,
                "optimistic_checks": self.collections.optimistic_checks,
                "log_level": self.observability.log_level,
            },
        )
