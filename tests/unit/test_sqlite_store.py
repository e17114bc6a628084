"""
Unit tests for the SQLite key-value store.

Tests cover:
- Reads and atomic writes
- Versionstamp checks
- Persistence across store instances
- Value encoding (bytes, nested JSON)
"""

import os
import tempfile

import pytest

from indexkv.kv.base import KvStoreClosedError
from indexkv.kv.sqlite import SqliteKvStore


class TestSqliteKvStore:
    """Tests for SqliteKvStore."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        """Create store in the temporary directory."""
        return SqliteKvStore(os.path.join(data_dir, "store.db"), wal_mode=False)

    @pytest.mark.asyncio
    async def test_set_and_get(self, store):
        """Committed values can be read back."""
        result = await store.atomic().set(("users_by_id", "1"), {"id": "1"}).commit()

        assert result.ok
        entries = await store.get_many([("users_by_id", "1"), ("users_by_id", "2")])
        assert entries[0].value == {"id": "1"}
        assert entries[0].versionstamp == result.versionstamp
        assert entries[1].present is False

    @pytest.mark.asyncio
    async def test_get_many_empty(self, store):
        assert await store.get_many([]) == []

    @pytest.mark.asyncio
    async def test_database_file_created(self, store, data_dir):
        await store.atomic().set(("a",), 1).commit()
        assert os.path.exists(os.path.join(data_dir, "store.db"))

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.atomic().set(("a",), 1).set(("b",), 2).commit()
        await store.atomic().delete(("a",)).commit()

        assert await store.list_keys() == [("b",)]

    @pytest.mark.asyncio
    async def test_failed_check_rolls_back(self, store):
        """A refused batch applies nothing and does not advance versionstamps."""
        first = await store.atomic().set(("a",), 1).commit()

        refused = await store.atomic().check(("a",), None).set(("a",), 2).set(("b",), 2).commit()
        assert refused.ok is False

        entries = await store.get_many([("a",), ("b",)])
        assert entries[0].value == 1
        assert entries[1].present is False

        next_commit = await store.atomic().set(("c",), 3).commit()
        assert int(next_commit.versionstamp, 16) == int(first.versionstamp, 16) + 1

    @pytest.mark.asyncio
    async def test_check_versionstamp(self, store):
        first = await store.atomic().set(("a",), 1).commit()
        second = await store.atomic().check(("a",), first.versionstamp).set(("a",), 2).commit()
        stale = await store.atomic().check(("a",), first.versionstamp).set(("a",), 3).commit()

        assert second.ok
        assert stale.ok is False
        assert (await store.get_many([("a",)]))[0].value == 2

    @pytest.mark.asyncio
    async def test_unstorable_value_raises_and_writes_nothing(self, store):
        """Encoding happens before the transaction starts."""
        with pytest.raises(TypeError, match="not storable"):
            await store.atomic().set(("a",), 1).set(("b",), object()).commit()

        assert await store.list_keys() == []

    @pytest.mark.asyncio
    async def test_bytes_and_nested_values_round_trip(self, store):
        value = {"avatar": b"\x00\x01binary", "settings": {"tags": ["x", "y"], "n": 1.5}}
        await store.atomic().set(("a",), value).commit()

        assert (await store.get_many([("a",)]))[0].value == value

    @pytest.mark.asyncio
    async def test_persistence_across_instances(self, store, data_dir):
        """Data and the commit counter survive reopening the file."""
        first = await store.atomic().set(("a",), {"n": 1}).commit()
        await store.close()

        reopened = SqliteKvStore(os.path.join(data_dir, "store.db"), wal_mode=False)
        entries = await reopened.get_many([("a",)])
        assert entries[0].value == {"n": 1}

        second = await reopened.atomic().set(("b",), 2).commit()
        assert second.versionstamp > first.versionstamp

    @pytest.mark.asyncio
    async def test_list_keys_prefix_order(self, store):
        await (
            store.atomic()
            .set(("users_by_id", "b"), 1)
            .set(("users_by_id", "a"), 1)
            .set(("users_by_email", "z"), 1)
            .commit()
        )

        assert await store.list_keys(("users_by_id",)) == [
            ("users_by_id", "a"),
            ("users_by_id", "b"),
        ]

    @pytest.mark.asyncio
    async def test_wal_mode(self, data_dir):
        store = SqliteKvStore(os.path.join(data_dir, "wal.db"), wal_mode=True)
        result = await store.atomic().set(("a",), 1).commit()
        assert result.ok

    @pytest.mark.asyncio
    async def test_closed_store_rejects_operations(self, store):
        await store.close()

        assert store.is_closed
        with pytest.raises(KvStoreClosedError):
            await store.get_many([("a",)])
        with pytest.raises(KvStoreClosedError):
            store.atomic()
