"""File history schemas."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from kotoori.filesystem.text_file import TextEncoding

CONTENT_HASH_PATTERN = re.compile(r"^[0-9a-f]{64}$")

ContentHash = Annotated[str, Field(min_length=64, max_length=64, pattern=r"^[0-9a-f]{64}$")]

DiffGranularity = Literal["lines", "chars"]


def is_content_hash(value: str) -> bool:
    """Return True if *value* looks like a SHA-256 hex digest."""
    return CONTENT_HASH_PATTERN.match(value) is not None


class TrackedFileRecord(BaseModel):
    """A tracked file as shown in the history browser."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    path: str
    is_alive: bool
    created_at: datetime
    updated_at: datetime
    lost_at: datetime | None = None
    snapshot_count: int = Field(default=0, ge=0)


class SnapshotRecord(BaseModel):
    """One snapshot in a file's timeline."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    file_id: int
    parent_id: int | None = None
    content_hash: ContentHash
    char_count: int = Field(ge=0)
    change_delta: int
    created_at: datetime


class DiffChange(BaseModel):
    """A run of text that was added, removed or left unchanged."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["added", "removed", "unchanged"]
    value: str
    count: int = Field(ge=0)


class DiffResult(BaseModel):
    """Delta between two versions of a text."""

    added: int = Field(default=0, ge=0)
    removed: int = Field(default=0, ge=0)
    changes: list[DiffChange] = Field(default_factory=list)


class LivenessReport(BaseModel):
    """Outcome of one liveness sweep over all tracked files."""

    checked: int = 0
    lost: int = 0
    revived: int = 0
    ambiguous: int = 0


class SnapshotCreate(BaseModel):
    """Request to record the content of a saved file."""

    path: str = Field(min_length=1, max_length=4096)
    content: str


class SnapshotSaveResponse(BaseModel):
    """Response after a save; ``snapshot`` is None when content was unchanged."""

    recorded: bool
    snapshot: SnapshotRecord | None = None


class SnapshotContentResponse(BaseModel):
    """Content stored for a hash."""

    content_hash: ContentHash
    content: str


class FileHistoryDeleteResponse(BaseModel):
    """Response after deleting a file's history."""

    id: int
    deleted: bool = True


class RestoreRequest(BaseModel):
    """Request to write a snapshot's content back to disk.

    Without an ``encoding`` the target keeps the encoding it has on disk, or
    gets UTF-8 if it does not exist yet.
    """

    snapshot_id: int = Field(ge=1)
    target_path: str | None = Field(default=None, min_length=1, max_length=4096)
    encoding: TextEncoding | None = None


class RestoreResponse(BaseModel):
    """Response after restoring a snapshot."""

    snapshot_id: int
    path: str
    char_count: int
    encoding: TextEncoding


class GarbageCollectResponse(BaseModel):
    """Response after sweeping orphaned blobs."""

    reclaimed: int = Field(ge=0)
