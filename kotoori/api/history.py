"""File history API endpoints used by the history browser."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from kotoori.api.deps import get_history_service
from kotoori.filesystem.text_file import existing_encoding, write_text_file
from kotoori.schemas.history import (
    DiffGranularity,
    DiffResult,
    FileHistoryDeleteResponse,
    GarbageCollectResponse,
    RestoreRequest,
    RestoreResponse,
    SnapshotContentResponse,
    SnapshotCreate,
    SnapshotRecord,
    SnapshotSaveResponse,
    TrackedFileRecord,
)
from kotoori.services.history_service import HistoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/history", tags=["history"])

History = Annotated[HistoryService, Depends(get_history_service)]


@router.get("/files", response_model=list[TrackedFileRecord])
async def list_files(
    history: History,
    refresh: Annotated[bool, Query()] = True,
) -> list[TrackedFileRecord]:
    """List tracked files, checking which still exist on disk first."""
    if refresh:
        await history.refresh_liveness()
    return await history.list_tracked_files()


@router.delete("/files/{file_id}", response_model=FileHistoryDeleteResponse)
async def delete_file_history(file_id: int, history: History) -> FileHistoryDeleteResponse:
    """Delete a file's entire history."""
    if not await history.delete_file_history(file_id):
        raise HTTPException(status_code=404, detail="File not found")
    return FileHistoryDeleteResponse(id=file_id)


@router.get("/snapshots", response_model=list[SnapshotRecord])
async def list_snapshots(
    history: History,
    path: Annotated[str, Query(min_length=1, max_length=4096)],
) -> list[SnapshotRecord]:
    """List snapshots of a file, newest first."""
    return await history.get_history(path)


@router.post("/snapshots", response_model=SnapshotSaveResponse, status_code=201)
async def save_snapshot(body: SnapshotCreate, history: History) -> SnapshotSaveResponse:
    """Record a saved file's content. Unchanged content records nothing."""
    snapshot = await history.save_snapshot(body.path, body.content)
    return SnapshotSaveResponse(recorded=snapshot is not None, snapshot=snapshot)


@router.get("/snapshots/{snapshot_id}", response_model=SnapshotRecord)
async def get_snapshot(snapshot_id: int, history: History) -> SnapshotRecord:
    """Get a single snapshot."""
    snapshot = await history.get_snapshot(snapshot_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return snapshot


@router.get("/snapshots/{snapshot_id}/diff", response_model=DiffResult)
async def get_parent_diff(
    snapshot_id: int,
    history: History,
    granularity: Annotated[DiffGranularity, Query()] = "lines",
) -> DiffResult:
    """Diff a snapshot against the one before it."""
    diff = await history.get_parent_diff(snapshot_id, granularity)
    if diff is None:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return diff


@router.get("/content/{content_hash}", response_model=SnapshotContentResponse)
async def get_content(content_hash: str, history: History) -> SnapshotContentResponse:
    """Get the text stored for a content hash."""
    content = await history.get_snapshot_content(content_hash)
    if content is None:
        raise HTTPException(status_code=404, detail="Content not found")
    return SnapshotContentResponse(content_hash=content_hash, content=content)


@router.get("/diff", response_model=DiffResult)
async def get_diff(
    history: History,
    old: Annotated[int, Query(ge=1)],
    new: Annotated[int, Query(ge=1)],
    granularity: Annotated[DiffGranularity, Query()] = "lines",
) -> DiffResult:
    """Diff two snapshots. Missing data on either side counts as empty text."""
    return await history.get_diff(old, new, granularity)


@router.post("/restore", response_model=RestoreResponse)
async def restore_snapshot(body: RestoreRequest, history: History) -> RestoreResponse:
    """Write a snapshot's content back to its file or to another path."""
    snapshot = await history.get_snapshot(body.snapshot_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    content = await history.get_snapshot_content(snapshot.content_hash)
    if content is None:
        raise HTTPException(status_code=404, detail="Snapshot content is no longer available")

    if body.target_path is not None:
        target = body.target_path
    else:
        tracked = await history.get_tracked_file(snapshot.file_id)
        if tracked is None:
            raise HTTPException(status_code=404, detail="File not found")
        target = tracked.path

    target_file = Path(target)
    encoding = body.encoding or await asyncio.to_thread(existing_encoding, target_file) or "UTF-8"
    await asyncio.to_thread(write_text_file, target_file, content, encoding)
    logger.info("Restored snapshot %d to %s (%s)", snapshot.id, target, encoding)
    return RestoreResponse(
        snapshot_id=snapshot.id, path=target, char_count=len(content), encoding=encoding
    )


@router.post("/gc", response_model=GarbageCollectResponse)
async def collect_garbage(history: History) -> GarbageCollectResponse:
    """Remove stored content that no snapshot references."""
    return GarbageCollectResponse(reclaimed=await history.collect_garbage())
