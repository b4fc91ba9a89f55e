"""History service: records every save of every tracked file.

Ties together the blob store, the snapshot ledger, retention and diffing.
Each public operation runs in its own session; writes commit once at the
end so a failure leaves neither a snapshot without its blob nor a deleted
blob that a snapshot still references.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from kotoori.exceptions import HistoryWriteError
from kotoori.filesystem.text_file import absolute_path, path_exists
from kotoori.schemas.history import (
    DiffResult,
    LivenessReport,
    SnapshotRecord,
    TrackedFileRecord,
)
from kotoori.services import snapshot_ledger as ledger
from kotoori.services.blob_store import find_orphan_blobs, get_blob, hash_content, put_blob
from kotoori.services.datetime_service import as_utc, now_utc
from kotoori.services.diff_service import compute_diff, full_addition
from kotoori.services.retention_service import (
    DEFAULT_MAX_SNAPSHOTS,
    enforce_retention,
    reclaim_blobs,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from kotoori.models.history import Snapshot, TrackedFile
    from kotoori.schemas.history import DiffGranularity

logger = logging.getLogger(__name__)


def _snapshot_record(snapshot: Snapshot) -> SnapshotRecord:
    return SnapshotRecord(
        id=snapshot.id,
        file_id=snapshot.file_id,
        parent_id=snapshot.parent_id,
        content_hash=snapshot.content_hash,
        char_count=snapshot.char_count,
        change_delta=snapshot.change_delta,
        created_at=as_utc(snapshot.created_at),
    )


def _tracked_file_record(tracked: TrackedFile, snapshot_count: int) -> TrackedFileRecord:
    return TrackedFileRecord(
        id=tracked.id,
        path=tracked.path,
        is_alive=tracked.is_alive,
        created_at=as_utc(tracked.created_at),
        updated_at=as_utc(tracked.updated_at),
        lost_at=as_utc(tracked.lost_at) if tracked.lost_at is not None else None,
        snapshot_count=snapshot_count,
    )


class HistoryService:
    """Snapshot history over an injected database session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_snapshots: int = DEFAULT_MAX_SNAPSHOTS,
        path_exists: Callable[[str], bool] = path_exists,
    ) -> None:
        if max_snapshots < 1:
            raise ValueError("max_snapshots must be at least 1")
        self.session_factory = session_factory
        self.max_snapshots = max_snapshots
        self._path_exists = path_exists

    async def save_snapshot(self, path: str, content: str) -> SnapshotRecord | None:
        """Record *content* as the newest version of *path*.

        Returns None when the content is identical to the file's current
        head. Raises HistoryWriteError if nothing could be recorded. *path* is
        made absolute first, so every spelling of a file shares one history.
        """
        path = await asyncio.to_thread(absolute_path, path)
        async with self.session_factory() as session:
            try:
                tracked = await ledger.ensure_tracked_file(session, path)
                head = await ledger.head_snapshot(session, tracked.id)
                content_hash = hash_content(content)
                if head is not None and head.content_hash == content_hash:
                    await session.rollback()
                    logger.debug("Content of %s unchanged, skipping snapshot", path)
                    return None
                await put_blob(session, content)
                snapshot = await ledger.append_snapshot(
                    session, tracked.id, content_hash, len(content), head
                )
                await enforce_retention(session, tracked.id, self.max_snapshots)
                record = _snapshot_record(snapshot)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Failed to record snapshot of %s: %s", path, exc)
                raise HistoryWriteError(f"Failed to record snapshot of {path}") from exc

        logger.info(
            "Saved snapshot %d of %s (%+d chars)", record.id, path, record.change_delta
        )
        return record

    async def get_history(self, path: str) -> list[SnapshotRecord]:
        """Snapshots of *path*, newest first. Empty if the path is untracked."""
        path = await asyncio.to_thread(absolute_path, path)
        async with self.session_factory() as session:
            tracked = await ledger.get_tracked_file_by_path(session, path)
            if tracked is None:
                return []
            snapshots = await ledger.list_snapshots(session, tracked.id)
            return [_snapshot_record(snap) for snap in snapshots]

    async def get_snapshot(self, snapshot_id: int) -> SnapshotRecord | None:
        """A single snapshot, or None."""
        async with self.session_factory() as session:
            snapshot = await ledger.get_snapshot(session, snapshot_id)
            return _snapshot_record(snapshot) if snapshot is not None else None

    async def get_snapshot_content(self, content_hash: str) -> str | None:
        """The text stored for *content_hash*, or None if it is unknown."""
        async with self.session_factory() as session:
            return await get_blob(session, content_hash)

    async def _content_of(self, session: AsyncSession, snapshot_id: int) -> str:
        snapshot = await ledger.get_snapshot(session, snapshot_id)
        if snapshot is None:
            logger.warning("Snapshot %d not found, diffing against empty content", snapshot_id)
            return ""
        content = await get_blob(session, snapshot.content_hash)
        if content is None:
            logger.warning(
                "Content %s of snapshot %d is missing, diffing against empty content",
                snapshot.content_hash,
                snapshot_id,
            )
            return ""
        return content

    async def get_diff(
        self,
        old_snapshot_id: int,
        new_snapshot_id: int,
        granularity: DiffGranularity = "lines",
    ) -> DiffResult:
        """Diff two snapshots. Missing snapshots or content count as empty text."""
        async with self.session_factory() as session:
            old = await self._content_of(session, old_snapshot_id)
            new = await self._content_of(session, new_snapshot_id)
        return compute_diff(old, new, granularity)

    async def get_parent_diff(
        self, snapshot_id: int, granularity: DiffGranularity = "lines"
    ) -> DiffResult | None:
        """Diff a snapshot against its parent, or None if it does not exist.

        A snapshot without a parent shows its whole content as added.
        """
        async with self.session_factory() as session:
            snapshot = await ledger.get_snapshot(session, snapshot_id)
            if snapshot is None:
                return None
            new = await self._content_of(session, snapshot_id)
            if snapshot.parent_id is None:
                return full_addition(new, granularity)
            old = await self._content_of(session, snapshot.parent_id)
        return compute_diff(old, new, granularity)

    async def get_tracked_file(self, file_id: int) -> TrackedFileRecord | None:
        """A single tracked file, or None."""
        async with self.session_factory() as session:
            tracked = await ledger.get_tracked_file(session, file_id)
            if tracked is None:
                return None
            count = await ledger.count_snapshots(session, file_id)
            return _tracked_file_record(tracked, count)

    async def list_tracked_files(self) -> list[TrackedFileRecord]:
        """All tracked files, alive or lost, ordered by path."""
        async with self.session_factory() as session:
            rows = await ledger.list_tracked_files(session)
            return [_tracked_file_record(tracked, count) for tracked, count in rows]

    async def refresh_liveness(self) -> LivenessReport:
        """Check every tracked path on disk and flag files as lost or alive.

        A file whose existence check fails keeps its previous state.
        """
        report = LivenessReport()
        async with self.session_factory() as session:
            rows = await ledger.list_tracked_files(session)
            now = now_utc()
            for tracked, _count in rows:
                report.checked += 1
                try:
                    exists = await asyncio.to_thread(self._path_exists, tracked.path)
                except OSError as exc:
                    logger.warning("Could not check whether %s exists: %s", tracked.path, exc)
                    report.ambiguous += 1
                    continue
                was_alive = tracked.is_alive
                if ledger.set_liveness(tracked, exists, now):
                    if was_alive:
                        report.lost += 1
                        logger.info("Tracked file lost: %s", tracked.path)
                    else:
                        report.revived += 1
                        logger.info("Tracked file is back: %s", tracked.path)
            await session.commit()
        return report

    async def delete_file_history(self, file_id: int) -> bool:
        """Forget a file: all its snapshots, its row, and blobs only it used.

        Returns False if no such file is tracked.
        """
        async with self.session_factory() as session:
            try:
                tracked = await ledger.get_tracked_file(session, file_id)
                if tracked is None:
                    return False
                path = tracked.path
                hashes = await ledger.delete_snapshots(session, file_id)
                await ledger.delete_tracked_file(session, file_id)
                reclaimed = await reclaim_blobs(session, hashes)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Failed to delete history of file %d: %s", file_id, exc)
                raise HistoryWriteError(f"Failed to delete history of file {file_id}") from exc

        logger.info(
            "Deleted history of %s: %d snapshot(s), %d blob(s)", path, len(hashes), reclaimed
        )
        return True

    async def collect_garbage(self) -> int:
        """Delete every blob no snapshot references. Returns the number removed."""
        async with self.session_factory() as session:
            try:
                orphans = await find_orphan_blobs(session)
                reclaimed = await reclaim_blobs(session, orphans)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Blob garbage collection failed: %s", exc)
                raise HistoryWriteError("Blob garbage collection failed") from exc
        if reclaimed:
            logger.info("Garbage collection reclaimed %d blob(s)", reclaimed)
        return reclaimed
