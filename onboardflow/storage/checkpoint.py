"""
Checkpoint Storage for the Workflow Engine.

A checkpoint holds, per thread, the latest merged state and the name of the
next step to run, plus a version counter used to reject concurrent resumes
of the same thread. The in-memory store can be replaced by any backend
that offers per-key compare-and-swap on the version.
"""

from typing import Any, Dict, List, Optional, Protocol
from dataclasses import dataclass, field, replace
from datetime import datetime
from copy import deepcopy
import asyncio
import logging

from onboardflow.engine.errors import CheckpointConflictError


logger = logging.getLogger(__name__)


@dataclass
class Checkpoint:
    """A persisted (state, next_step) pair for one thread."""
    thread_id: str
    state: Dict[str, Any]
    next_step: str
    version: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "state": self.state,
            "next_step": self.next_step,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Checkpoint":
        return cls(
            thread_id=data["thread_id"],
            state=data["state"],
            next_step=data["next_step"],
            version=data.get("version", 0),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else datetime.now(),
        )


class CheckpointStore(Protocol):
    """Protocol for checkpoint persistence backends."""

    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        """Return the latest checkpoint for a thread, or None."""

    async def save(
        self,
        thread_id: str,
        checkpoint: Checkpoint,
        expected_version: int,
    ) -> Checkpoint:
        """
        Persist a checkpoint if the stored version equals ``expected_version``.

        ``expected_version`` of 0 means the thread must not exist yet.
        Returns the stored checkpoint with its new version.

        Raises:
            CheckpointConflictError: The stored version differs
        """

    async def delete(self, thread_id: str) -> bool:
        """Remove a thread's checkpoint."""

    async def list_threads(self) -> List[str]:
        """Return all known thread ids."""


class InMemoryCheckpointStore:
    """
    Thread-safe in-memory checkpoint store.

    Every read and write deep-copies, so callers never share mutable state
    with the store. Data is not persisted across process restarts.
    """

    def __init__(self):
        self._checkpoints: Dict[str, Checkpoint] = {}
        self._lock = asyncio.Lock()

    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        """Get a thread's checkpoint."""
        async with self._lock:
            stored = self._checkpoints.get(thread_id)
            return deepcopy(stored) if stored else None

    async def save(
        self,
        thread_id: str,
        checkpoint: Checkpoint,
        expected_version: int,
    ) -> Checkpoint:
        """Compare-and-swap the thread's checkpoint."""
        async with self._lock:
            current = self._checkpoints.get(thread_id)
            actual_version = current.version if current else 0

            if actual_version != expected_version:
                logger.warning(
                    f"Rejected checkpoint for thread {thread_id}: "
                    f"expected v{expected_version}, stored v{actual_version}"
                )
                raise CheckpointConflictError(thread_id, expected_version, actual_version)

            stored = replace(
                deepcopy(checkpoint),
                thread_id=thread_id,
                version=actual_version + 1,
                created_at=current.created_at if current else datetime.now(),
                updated_at=datetime.now(),
            )
            self._checkpoints[thread_id] = stored
            return deepcopy(stored)

    async def delete(self, thread_id: str) -> bool:
        """Delete a thread's checkpoint."""
        async with self._lock:
            if thread_id in self._checkpoints:
                del self._checkpoints[thread_id]
                return True
            return False

    async def list_threads(self) -> List[str]:
        """List all thread ids."""
        async with self._lock:
            return list(self._checkpoints.keys())

    def __len__(self) -> int:
        return len(self._checkpoints)
