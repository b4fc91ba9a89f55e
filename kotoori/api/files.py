"""Editor file endpoints: open and save text files with history recording."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from kotoori.api.deps import get_history_service
from kotoori.exceptions import BinaryFileError, HistoryWriteError
from kotoori.filesystem.text_file import read_text_file, unique_file_path, write_text_file
from kotoori.schemas.files import (
    FileOpenRequest,
    FileOpenResponse,
    FileSaveRequest,
    FileSaveResponse,
    UniquePathRequest,
    UniquePathResponse,
)
from kotoori.services.datetime_service import now_local
from kotoori.services.history_service import HistoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("/open", response_model=FileOpenResponse)
async def open_file(body: FileOpenRequest) -> FileOpenResponse:
    """Read a text file, detecting its encoding unless one is forced."""
    try:
        text_file = await asyncio.to_thread(read_text_file, Path(body.path), body.encoding)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail="File not found") from exc
    except BinaryFileError as exc:
        raise HTTPException(status_code=415, detail="Binary files cannot be opened") from exc
    return FileOpenResponse(path=body.path, content=text_file.content, encoding=text_file.encoding)


@router.post("/save", response_model=FileSaveResponse)
async def save_file(
    body: FileSaveRequest,
    history: Annotated[HistoryService, Depends(get_history_service)],
) -> FileSaveResponse:
    """Write the file, then record a snapshot of what was written.

    A history failure does not undo the save; the response tells the editor
    that this version was not recorded.
    """
    await asyncio.to_thread(write_text_file, Path(body.path), body.content, body.encoding)

    try:
        snapshot = await history.save_snapshot(body.path, body.content)
    except HistoryWriteError as exc:
        logger.error("Saved %s but history was not recorded: %s", body.path, exc)
        return FileSaveResponse(path=body.path, history_recorded=False)
    return FileSaveResponse(path=body.path, history_recorded=True, snapshot=snapshot)


@router.post("/unique-path", response_model=UniquePathResponse)
async def unique_path(body: UniquePathRequest) -> UniquePathResponse:
    """Return the requested path, or a timestamped variant if it is taken."""
    path = await asyncio.to_thread(unique_file_path, Path(body.path), now_local())
    return UniquePathResponse(path=str(path))
