"""Snapshot ledger: tracked-file registry and per-file snapshot timeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update

from kotoori.models.history import Snapshot, TrackedFile
from kotoori.services.datetime_service import now_utc

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession


async def get_tracked_file(session: AsyncSession, file_id: int) -> TrackedFile | None:
    """Get a tracked file by ID."""
    return await session.get(TrackedFile, file_id)


async def get_tracked_file_by_path(session: AsyncSession, path: str) -> TrackedFile | None:
    """Get a tracked file by its absolute path."""
    result = await session.execute(select(TrackedFile).where(TrackedFile.path == path))
    return result.scalar_one_or_none()


async def ensure_tracked_file(session: AsyncSession, path: str) -> TrackedFile:
    """Look up the tracked file for *path*, registering it if unseen.

    New rows start alive. Liveness of existing rows is left alone; only the
    liveness sweep changes it.
    """
    tracked = await get_tracked_file_by_path(session, path)
    if tracked is not None:
        return tracked
    now = now_utc()
    tracked = TrackedFile(path=path, is_alive=True, created_at=now, updated_at=now)
    session.add(tracked)
    await session.flush()
    return tracked


async def list_tracked_files(session: AsyncSession) -> list[tuple[TrackedFile, int]]:
    """All tracked files ordered by path, each with its snapshot count."""
    count_stmt = select(Snapshot.file_id, func.count()).group_by(Snapshot.file_id)
    count_result = await session.execute(count_stmt)
    counts: dict[int, int] = {row[0]: row[1] for row in count_result.all()}

    result = await session.execute(select(TrackedFile).order_by(TrackedFile.path))
    return [(tracked, counts.get(tracked.id, 0)) for tracked in result.scalars().all()]


def set_liveness(tracked: TrackedFile, alive: bool, now: datetime) -> bool:
    """Apply a liveness transition. Returns True if the state changed."""
    if tracked.is_alive == alive:
        return False
    tracked.is_alive = alive
    tracked.lost_at = None if alive else now
    tracked.updated_at = now
    return True


async def delete_tracked_file(session: AsyncSession, file_id: int) -> None:
    """Remove a tracked file row. Its snapshots must already be gone."""
    await session.execute(delete(TrackedFile).where(TrackedFile.id == file_id))


async def head_snapshot(session: AsyncSession, file_id: int) -> Snapshot | None:
    """The most recently created snapshot of a file, or None."""
    stmt = (
        select(Snapshot)
        .where(Snapshot.file_id == file_id)
        .order_by(Snapshot.created_at.desc(), Snapshot.id.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def append_snapshot(
    session: AsyncSession,
    file_id: int,
    content_hash: str,
    char_count: int,
    parent: Snapshot | None,
) -> Snapshot:
    """Insert a new snapshot after *parent* and return the persisted row."""
    change_delta = char_count - parent.char_count if parent is not None else char_count
    snapshot = Snapshot(
        file_id=file_id,
        parent_id=parent.id if parent is not None else None,
        content_hash=content_hash,
        char_count=char_count,
        change_delta=change_delta,
        created_at=now_utc(),
    )
    session.add(snapshot)
    await session.flush()
    return snapshot


async def get_snapshot(session: AsyncSession, snapshot_id: int) -> Snapshot | None:
    """Get a snapshot by ID."""
    return await session.get(Snapshot, snapshot_id)


async def list_snapshots(session: AsyncSession, file_id: int) -> list[Snapshot]:
    """A file's snapshots, newest first."""
    stmt = (
        select(Snapshot)
        .where(Snapshot.file_id == file_id)
        .order_by(Snapshot.created_at.desc(), Snapshot.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def oldest_snapshots(session: AsyncSession, file_id: int, limit: int) -> list[Snapshot]:
    """The *limit* oldest snapshots of a file in chronological order."""
    stmt = (
        select(Snapshot)
        .where(Snapshot.file_id == file_id)
        .order_by(Snapshot.created_at.asc(), Snapshot.id.asc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_snapshots(session: AsyncSession, file_id: int) -> int:
    """Count a file's snapshots."""
    stmt = select(func.count()).select_from(Snapshot).where(Snapshot.file_id == file_id)
    result = await session.execute(stmt)
    return result.scalar() or 0


async def delete_snapshots(
    session: AsyncSession,
    file_id: int,
    snapshot_ids: Sequence[int] | None = None,
) -> list[str]:
    """Delete all of a file's snapshots, or only *snapshot_ids*.

    Returns the content hashes the deleted rows referenced, in deletion
    order, so the caller can reclaim blobs. Children of deleted snapshots
    keep their recorded delta but lose the parent link.
    """
    where = [Snapshot.file_id == file_id]
    if snapshot_ids is not None:
        if not snapshot_ids:
            return []
        where.append(Snapshot.id.in_(snapshot_ids))

    rows = await session.execute(select(Snapshot.id, Snapshot.content_hash).where(*where))
    doomed = rows.all()
    if not doomed:
        return []
    doomed_ids = [row[0] for row in doomed]

    await session.execute(
        update(Snapshot)
        .where(Snapshot.parent_id.in_(doomed_ids), Snapshot.id.not_in(doomed_ids))
        .values(parent_id=None)
    )
    await session.execute(delete(Snapshot).where(Snapshot.id.in_(doomed_ids)))
    return [row[1] for row in doomed]
