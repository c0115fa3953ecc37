"""
Storage package - Checkpoint persistence for workflow threads.
"""

from onboardflow.storage.checkpoint import (
    Checkpoint,
    CheckpointStore,
    InMemoryCheckpointStore,
)

__all__ = [
    "Checkpoint",
    "CheckpointStore",
    "InMemoryCheckpointStore",
]
