"""Editor file schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from kotoori.filesystem.text_file import TextEncoding
from kotoori.schemas.history import SnapshotRecord


class FileOpenRequest(BaseModel):
    """Request to open a text file; ``encoding`` overrides detection."""

    path: str = Field(min_length=1, max_length=4096)
    encoding: TextEncoding | None = None


class FileOpenResponse(BaseModel):
    """Decoded file content."""

    path: str
    content: str
    encoding: TextEncoding


class FileSaveRequest(BaseModel):
    """Request to save editor content to disk."""

    path: str = Field(min_length=1, max_length=4096)
    content: str
    encoding: TextEncoding = "UTF-8"


class FileSaveResponse(BaseModel):
    """Response after a save.

    ``history_recorded`` is False when the file was written but the history
    store failed; ``snapshot`` is None when nothing changed or nothing was
    recorded.
    """

    path: str
    history_recorded: bool
    snapshot: SnapshotRecord | None = None


class UniquePathRequest(BaseModel):
    """Request for a non-colliding path for a new file."""

    path: str = Field(min_length=1, max_length=4096)


class UniquePathResponse(BaseModel):
    path: str
