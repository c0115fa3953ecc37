"""
Tests for checkpoint storage.
"""

import pytest
import asyncio

from onboardflow.engine.errors import CheckpointConflictError
from onboardflow.storage.checkpoint import Checkpoint, InMemoryCheckpointStore


def make_checkpoint(next_step: str = "await-card-data", **data) -> Checkpoint:
    return Checkpoint(thread_id="t1", state={"data": data, "events": []}, next_step=next_step)


class TestInMemoryCheckpointStore:
    """Tests for the compare-and-swap checkpoint store."""

    @pytest.mark.asyncio
    async def test_create_and_load(self):
        """Test saving a new thread and loading it back."""
        store = InMemoryCheckpointStore()
        saved = await store.save("t1", make_checkpoint(email="a@b.c"), expected_version=0)

        assert saved.version == 1
        loaded = await store.load("t1")
        assert loaded.next_step == "await-card-data"
        assert loaded.state["data"] == {"email": "a@b.c"}
        assert loaded.version == 1

    @pytest.mark.asyncio
    async def test_load_unknown_thread(self):
        """Test loading a thread that was never saved."""
        assert await InMemoryCheckpointStore().load("missing") is None

    @pytest.mark.asyncio
    async def test_versions_increase(self):
        """Test each save bumps the version and keeps created_at."""
        store = InMemoryCheckpointStore()
        first = await store.save("t1", make_checkpoint(), expected_version=0)
        second = await store.save("t1", make_checkpoint("tokenize-card"), expected_version=1)

        assert second.version == 2
        assert second.created_at == first.created_at
        assert second.updated_at >= first.updated_at

    @pytest.mark.asyncio
    async def test_create_existing_thread_conflicts(self):
        """Test expected_version 0 requires a new thread."""
        store = InMemoryCheckpointStore()
        await store.save("t1", make_checkpoint(), expected_version=0)

        with pytest.raises(CheckpointConflictError) as exc_info:
            await store.save("t1", make_checkpoint(), expected_version=0)
        assert exc_info.value.expected_version == 0
        assert exc_info.value.actual_version == 1

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self):
        """Test a stale writer is rejected and the stored checkpoint kept."""
        store = InMemoryCheckpointStore()
        await store.save("t1", make_checkpoint(), expected_version=0)
        await store.save("t1", make_checkpoint("tokenize-card"), expected_version=1)

        with pytest.raises(CheckpointConflictError):
            await store.save("t1", make_checkpoint("cleanup"), expected_version=1)

        stored = await store.load("t1")
        assert stored.next_step == "tokenize-card"
        assert stored.version == 2

    @pytest.mark.asyncio
    async def test_concurrent_writers(self):
        """Test only one of two racing writers wins."""
        store = InMemoryCheckpointStore()
        results = await asyncio.gather(
            store.save("t1", make_checkpoint("a"), expected_version=0),
            store.save("t1", make_checkpoint("b"), expected_version=0),
            return_exceptions=True,
        )

        conflicts = [r for r in results if isinstance(r, CheckpointConflictError)]
        assert len(conflicts) == 1
        assert (await store.load("t1")).version == 1

    @pytest.mark.asyncio
    async def test_loads_are_copies(self):
        """Test callers cannot mutate stored state."""
        store = InMemoryCheckpointStore()
        await store.save("t1", make_checkpoint(tokenId="tok-1"), expected_version=0)

        loaded = await store.load("t1")
        loaded.state["data"]["tokenId"] = "changed"

        assert (await store.load("t1")).state["data"]["tokenId"] == "tok-1"

    @pytest.mark.asyncio
    async def test_delete_and_list(self):
        """Test deleting and listing threads."""
        store = InMemoryCheckpointStore()
        await store.save("t1", make_checkpoint(), expected_version=0)
        await store.save("t2", make_checkpoint(), expected_version=0)

        assert sorted(await store.list_threads()) == ["t1", "t2"]
        assert len(store) == 2
        assert await store.delete("t1") is True
        assert await store.delete("t1") is False
        assert await store.list_threads() == ["t2"]

    @pytest.mark.asyncio
    async def test_deleted_thread_starts_over(self):
        """Test a deleted thread can be created again from version 0."""
        store = InMemoryCheckpointStore()
        await store.save("t1", make_checkpoint(), expected_version=0)
        await store.delete("t1")

        saved = await store.save("t1", make_checkpoint(), expected_version=0)
        assert saved.version == 1


class TestCheckpoint:
    """Tests for Checkpoint serialization."""

    def test_to_dict_from_dict(self):
        """Test the JSON-safe representation."""
        checkpoint = make_checkpoint(email="a@b.c")
        checkpoint.version = 3

        data = checkpoint.to_dict()
        assert isinstance(data["created_at"], str)

        restored = Checkpoint.from_dict(data)
        assert restored.thread_id == "t1"
        assert restored.version == 3
        assert restored.state == checkpoint.state
        assert restored.created_at == checkpoint.created_at
