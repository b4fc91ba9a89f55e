"""Retention: bound per-file history depth and reclaim unreferenced blobs."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from kotoori.services.blob_store import count_blob_references, delete_blob
from kotoori.services.snapshot_ledger import count_snapshots, delete_snapshots, oldest_snapshots

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_SNAPSHOTS = 100


async def reclaim_blobs(session: AsyncSession, hashes: Iterable[str]) -> int:
    """Delete blobs among *hashes* that no snapshot references any more.

    Failures are logged and skipped: an orphaned blob only costs space and
    is picked up by a later garbage collection. Returns the number of blobs
    deleted.
    """
    reclaimed = 0
    for content_hash in dict.fromkeys(hashes):
        try:
            if await count_blob_references(session, content_hash) > 0:
                continue
            # A failed delete rolls back to here, not the caller's unit of work
            async with session.begin_nested():
                await delete_blob(session, content_hash)
        except SQLAlchemyError as exc:
            logger.warning("Failed to reclaim blob %s: %s", content_hash, exc)
            continue
        reclaimed += 1
    return reclaimed


async def enforce_retention(
    session: AsyncSession,
    file_id: int,
    max_snapshots: int = DEFAULT_MAX_SNAPSHOTS,
) -> int:
    """Rotate away a file's oldest snapshots beyond *max_snapshots*.

    Oldest is by creation time, with id only breaking ties. Blobs left
    without any referencing snapshot (in any file) are reclaimed. Returns
    the number of snapshots removed.
    """
    count = await count_snapshots(session, file_id)
    if count <= max_snapshots:
        return 0

    excess = count - max_snapshots
    oldest = await oldest_snapshots(session, file_id, excess)
    hashes = await delete_snapshots(session, file_id, [snap.id for snap in oldest])
    reclaimed = await reclaim_blobs(session, hashes)
    logger.info(
        "Rotated %d snapshot(s) of file %d, reclaimed %d blob(s)",
        len(hashes),
        file_id,
        reclaimed,
    )
    return len(hashes)
