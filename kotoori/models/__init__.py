"""SQLAlchemy ORM models for Kotoori."""

from kotoori.models.base import Base
from kotoori.models.history import Snapshot, SnapshotBlob, TrackedFile

__all__ = [
    "Base",
    "Snapshot",
    "SnapshotBlob",
    "TrackedFile",
]
