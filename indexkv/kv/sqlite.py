"""
SQLite key-value store for IndexKV.

This module persists the sorted key-value substrate in a single SQLite file.
Each atomic batch maps onto one SQLite transaction, which is what gives a
collection its all-or-nothing index updates.

Invariants:
    - One SQLite file per store
    - Every commit runs inside BEGIN IMMEDIATE ... COMMIT
    - Checks are evaluated inside the same transaction as the mutations
    - The commit counter only advances for applied commits

How to change safely:
    - Schema changes must keep existing files readable
    - Use transactions for all write operations
    - Keep key/value encodings in kv/base.py so every backend agrees

Table schema:
    kv:
        - key TEXT PRIMARY KEY (JSON array of key parts)
        - value_json TEXT
        - versionstamp TEXT

    kv_meta:
        - name TEXT PRIMARY KEY
        - value INTEGER
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Sequence

from .base import (
    AtomicOperation,
    Check,
    CommitResult,
    KvEntry,
    KvKey,
    KvStoreClosedError,
    Mutation,
    collapse_mutations,
    decode_key,
    decode_value,
    encode_key,
    encode_value,
    format_versionstamp,
    validate_key,
)

logger = logging.getLogger(__name__)


class SqliteKvStore:
    """Single-file SQLite implementation of KvStore.

    Thread safety:
        Each operation opens its own connection. SQLite serializes writers
        via BEGIN IMMEDIATE; WAL mode allows reads during writes.

    Example:
        >>> store = SqliteKvStore("/var/lib/indexkv/store.db")
        >>> result = await store.atomic().set(("users_by_id", "1"), {"id": "1"}).commit()
        >>> result.ok
        True
    """

    # SQLite schema version for migrations
    SCHEMA_VERSION = 1

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store.

        Args:
            path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._schema_ready = False
        self._closed = False

    @property
    def is_closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection, creating the schema on first use.

        Raises:
            KvStoreClosedError: If the store is closed
        """
        if self._closed:
            raise KvStoreClosedError(f"Store is closed: {self.path}")

        self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            if not self._schema_ready:
                self._create_schema(conn)
                self._schema_ready = True

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL,
                versionstamp TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS kv_meta (
                name TEXT PRIMARY KEY,
                value INTEGER NOT NULL
            );

            INSERT OR IGNORE INTO kv_meta (name, value) VALUES ('commit_counter', 0);
            INSERT OR IGNORE INTO kv_meta (name, value)
            VALUES ('schema_version', {self.SCHEMA_VERSION});
        """)
        logger.info(f"Initialized key-value store: {self.path}")

    async def get_many(self, keys: Sequence[Sequence[str]]) -> List[KvEntry]:
        """Read several keys in one query; absent keys come back with value=None."""
        normalized = [validate_key(k) for k in keys]
        if not normalized:
            return []

        encoded = [encode_key(k) for k in normalized]
        with self._get_connection() as conn:
            placeholders = ", ".join("?" for _ in encoded)
            cursor = conn.execute(
                f"SELECT key, value_json, versionstamp FROM kv WHERE key IN ({placeholders})",
                encoded,
            )
            rows = {row["key"]: row for row in cursor.fetchall()}

        entries = []
        for key, key_text in zip(normalized, encoded):
            row = rows.get(key_text)
            if row is None:
                entries.append(KvEntry(key=key))
            else:
                entries.append(
                    KvEntry(
                        key=key,
                        value=decode_value(row["value_json"]),
                        versionstamp=row["versionstamp"],
                    )
                )
        return entries

    def atomic(self) -> AtomicOperation:
        """Start a new atomic batch."""
        if self._closed:
            raise KvStoreClosedError(f"Store is closed: {self.path}")
        return AtomicOperation(self._commit)

    def _current_versionstamp(self, conn: sqlite3.Connection, key: KvKey) -> Optional[str]:
        cursor = conn.execute("SELECT versionstamp FROM kv WHERE key = ?", (encode_key(key),))
        row = cursor.fetchone()
        return row[0] if row else None

    async def _commit(self, checks: List[Check], mutations: List[Mutation]) -> CommitResult:
        changes = collapse_mutations(mutations)
        # Encode before opening the transaction so bad values never leave it half-open
        writes = [(encode_key(k), encode_value(v)) for k, v in changes.writes.items()]

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for check in checks:
                    current = self._current_versionstamp(conn, check.key)
                    if current != check.versionstamp:
                        conn.execute("ROLLBACK")
                        logger.debug(
                            "Atomic check failed",
                            extra={
                                "key": list(check.key),
                                "expected": check.versionstamp,
                                "actual": current,
                            },
                        )
                        return CommitResult(ok=False)

                conn.execute(
                    "UPDATE kv_meta SET value = value + 1 WHERE name = 'commit_counter'"
                )
                counter = conn.execute(
                    "SELECT value FROM kv_meta WHERE name = 'commit_counter'"
                ).fetchone()[0]
                versionstamp = format_versionstamp(counter)

                conn.executemany(
                    "DELETE FROM kv WHERE key = ?",
                    [(encode_key(k),) for k in changes.deletes],
                )
                conn.executemany(
                    """
                    INSERT INTO kv (key, value_json, versionstamp) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json = excluded.value_json,
                        versionstamp = excluded.versionstamp
                    """,
                    [(key_text, value_json, versionstamp) for key_text, value_json in writes],
                )

                conn.execute("COMMIT")

            except Exception:
                conn.execute("ROLLBACK")
                raise

        return CommitResult(ok=True, versionstamp=versionstamp)

    async def list_keys(self, prefix: Sequence[str] = ()) -> List[KvKey]:
        """List stored keys starting with prefix, in key order."""
        prefix = tuple(prefix)
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT key FROM kv")
            keys = [decode_key(row["key"]) for row in cursor.fetchall()]
        return sorted(k for k in keys if k[: len(prefix)] == prefix)

    async def close(self) -> None:
        """Mark the store closed. Connections are per-operation, so nothing stays open."""
        self._closed = True
        logger.debug(f"SqliteKvStore closed: {self.path}")
