"""
Unit tests for the atomic multi-index writer.

Tests cover:
- One entry per index on write, none on erase
- Stale entry cleanup on and off
- Optimistic checks on create, update and erase
- Deletes leave keys taken over by another record
"""

import pytest

from indexkv.collection.writer import IndexWriter, WriteOp
from indexkv.kv.memory import InMemoryKvStore

RECORD = {
    "id": "4429562d-1730-4805-bcfa-04e38a475851",
    "email": "a@b.com",
    "username": "a",
    "created_at": 1000,
    "updated_at": 1000,
}

OTHER = dict(RECORD, id="6b1c5f0e-0000-4000-8000-000000000000", username="b")


def updated(**changes):
    record = dict(RECORD)
    record.update(changes)
    return record


class TestIndexWriter:
    """Tests for IndexWriter."""

    @pytest.fixture
    def store(self):
        return InMemoryKvStore()

    @pytest.fixture
    def writer(self, store):
        return IndexWriter(store, "users", ("email", "username", "id"))

    def test_keys_for(self, writer):
        assert writer.keys_for(RECORD) == {
            "email": ("users_by_email", "a@b.com"),
            "username": ("users_by_username", "a"),
            "id": ("users_by_id", RECORD["id"]),
        }

    @pytest.mark.asyncio
    async def test_write_stores_one_copy_per_index(self, writer, store):
        result = await writer.apply(RECORD, WriteOp.WRITE)

        assert result.ok
        assert len(store) == 3
        entries = await store.get_many(list(writer.keys_for(RECORD).values()))
        assert all(e.value == RECORD for e in entries)
        assert store.commit_count == 1

    @pytest.mark.asyncio
    async def test_erase_removes_every_copy(self, writer, store):
        await writer.apply(RECORD, WriteOp.WRITE)

        result = await writer.apply(RECORD, WriteOp.ERASE)

        assert result.ok
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_update_cleans_stale_entry(self, writer, store):
        await writer.apply(RECORD, WriteOp.WRITE)

        new = updated(email="c@d.com", updated_at=2000)
        await writer.apply(new, WriteOp.WRITE, previous=RECORD)

        assert await store.list_keys(("users_by_email",)) == [("users_by_email", "c@d.com")]
        assert len(store) == 3

    @pytest.mark.asyncio
    async def test_update_without_cleanup_leaves_stale_entry(self, store):
        writer = IndexWriter(store, "users", ("email", "username", "id"), cleanup_stale_indexes=False)
        await writer.apply(RECORD, WriteOp.WRITE)

        new = updated(email="c@d.com", updated_at=2000)
        await writer.apply(new, WriteOp.WRITE, previous=RECORD)

        stale = await store.get_many([("users_by_email", "a@b.com")])
        assert stale[0].value == RECORD
        assert len(store) == 4


class TestOptimisticChecks:
    """Tests for IndexWriter with optimistic_checks=True."""

    @pytest.fixture
    def store(self):
        return InMemoryKvStore()

    @pytest.fixture
    def writer(self, store):
        return IndexWriter(store, "users", ("email", "username", "id"), optimistic_checks=True)

    @pytest.mark.asyncio
    async def test_create_refused_when_index_value_taken(self, writer, store):
        await writer.apply(RECORD, WriteOp.WRITE)

        other = dict(RECORD, id="6b1c5f0e-0000-4000-8000-000000000000", username="b")
        result = await writer.apply(other, WriteOp.WRITE)

        assert result.ok is False
        assert len(store) == 3

    @pytest.mark.asyncio
    async def test_update_with_current_versionstamp(self, writer, store):
        created = await writer.apply(RECORD, WriteOp.WRITE)

        result = await writer.apply(
            updated(username="b", updated_at=2000),
            WriteOp.WRITE,
            previous=RECORD,
            versionstamp=created.versionstamp,
        )

        assert result.ok

    @pytest.mark.asyncio
    async def test_update_with_stale_versionstamp_refused(self, writer, store):
        created = await writer.apply(RECORD, WriteOp.WRITE)
        await writer.apply(
            updated(updated_at=2000), WriteOp.WRITE, previous=RECORD, versionstamp=created.versionstamp
        )

        result = await writer.apply(
            updated(username="late", updated_at=3000),
            WriteOp.WRITE,
            previous=RECORD,
            versionstamp=created.versionstamp,
        )

        assert result.ok is False
        entries = await store.get_many([("users_by_username", "late")])
        assert entries[0].present is False

    @pytest.mark.asyncio
    async def test_update_refused_when_claiming_other_records_value(self, writer, store):
        created = await writer.apply(RECORD, WriteOp.WRITE)
        other = dict(RECORD, id="6b1c5f0e-0000-4000-8000-000000000000", email="x@y.com", username="b")
        await writer.apply(other, WriteOp.WRITE)

        result = await writer.apply(
            updated(username="b", updated_at=2000),
            WriteOp.WRITE,
            previous=RECORD,
            versionstamp=created.versionstamp,
        )

        assert result.ok is False
        entries = await store.get_many([("users_by_username", "b")])
        assert entries[0].value["id"] == other["id"]

    @pytest.mark.asyncio
    async def test_build_checks_for_creation(self, writer):
        checks = await writer.build_checks(RECORD, None, None)

        assert len(checks) == 3
        assert all(c.versionstamp is None for c in checks)

    @pytest.mark.asyncio
    async def test_erase_with_stale_versionstamp_refused(self, writer, store):
        created = await writer.apply(RECORD, WriteOp.WRITE)
        await writer.apply(
            updated(updated_at=2000), WriteOp.WRITE, previous=RECORD, versionstamp=created.versionstamp
        )

        result = await writer.apply(RECORD, WriteOp.ERASE, versionstamp=created.versionstamp)

        assert result.ok is False
        assert len(store) == 3


class TestTakenOverKeys:
    """Deletes skip keys that hold another record."""

    @pytest.fixture
    def store(self):
        return InMemoryKvStore()

    @pytest.fixture
    def writer(self, store):
        return IndexWriter(store, "users", ("email", "username", "id"))

    @pytest.mark.asyncio
    async def test_stale_cleanup_skips_taken_over_key(self, writer, store):
        await writer.apply(RECORD, WriteOp.WRITE)
        await writer.apply(OTHER, WriteOp.WRITE)

        new = updated(email="c@d.com", updated_at=2000)
        await writer.apply(new, WriteOp.WRITE, previous=RECORD)

        entries = await store.get_many([("users_by_email", "a@b.com"), ("users_by_email", "c@d.com")])
        assert entries[0].value == OTHER
        assert entries[1].value == new

    @pytest.mark.asyncio
    async def test_erase_skips_taken_over_key(self, writer, store):
        await writer.apply(RECORD, WriteOp.WRITE)
        await writer.apply(OTHER, WriteOp.WRITE)

        result = await writer.apply(RECORD, WriteOp.ERASE)

        assert result.ok
        assert await store.list_keys() == sorted(writer.keys_for(OTHER).values())

    @pytest.mark.asyncio
    async def test_owned_stale_key_checked_with_optimistic_checks(self, store):
        writer = IndexWriter(store, "users", ("email", "username", "id"), optimistic_checks=True)
        created = await writer.apply(RECORD, WriteOp.WRITE)

        class RacingStore:
            """Lets another record take the stale key between read and commit."""

            def __init__(self, inner):
                self.inner = inner

            async def get_many(self, keys):
                entries = await self.inner.get_many(keys)
                if ("users_by_email", "a@b.com") in keys:
                    await self.inner.atomic().set(("users_by_email", "a@b.com"), OTHER).commit()
                return entries

            def atomic(self):
                return self.inner.atomic()

        racing = IndexWriter(
            RacingStore(store), "users", ("email", "username", "id"), optimistic_checks=True
        )
        result = await racing.apply(
            updated(email="c@d.com", updated_at=2000),
            WriteOp.WRITE,
            previous=RECORD,
            versionstamp=created.versionstamp,
        )

        assert result.ok is False
        entries = await store.get_many([("users_by_email", "a@b.com")])
        assert entries[0].value == OTHER
