"""Content-addressed blob storage for snapshot payloads."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from kotoori.models.history import Snapshot, SnapshotBlob
from kotoori.schemas.history import is_content_hash

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def hash_content(content: str) -> str:
    """Compute the SHA-256 hex digest of the UTF-8 encoded text."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


async def put_blob(session: AsyncSession, content: str) -> str:
    """Store *content* under its hash unless it is already present.

    Idempotent: repeated calls with the same content write nothing and
    return the same hash. Uses ``INSERT ... ON CONFLICT DO NOTHING`` so two
    writers racing on the same payload cannot trip the primary key.
    """
    content_hash = hash_content(content)
    stmt = (
        sqlite_insert(SnapshotBlob)
        .values(content_hash=content_hash, content=content)
        .on_conflict_do_nothing(index_elements=["content_hash"])
    )
    await session.execute(stmt)
    return content_hash


async def get_blob(session: AsyncSession, content_hash: str) -> str | None:
    """Return the payload stored for *content_hash*, or None if it is gone."""
    if not is_content_hash(content_hash):
        return None
    blob = await session.get(SnapshotBlob, content_hash)
    if blob is None:
        return None
    return blob.content


async def delete_blob(session: AsyncSession, content_hash: str) -> None:
    """Remove a payload. The caller must have checked it is unreferenced."""
    await session.execute(delete(SnapshotBlob).where(SnapshotBlob.content_hash == content_hash))


async def count_blob_references(session: AsyncSession, content_hash: str) -> int:
    """Count snapshots of any file that still point at *content_hash*."""
    stmt = select(func.count()).select_from(Snapshot).where(Snapshot.content_hash == content_hash)
    result = await session.execute(stmt)
    return result.scalar() or 0


async def find_orphan_blobs(session: AsyncSession) -> list[str]:
    """Return hashes of stored blobs that no snapshot references."""
    referenced = select(Snapshot.content_hash).where(
        Snapshot.content_hash == SnapshotBlob.content_hash
    )
    stmt = (
        select(SnapshotBlob.content_hash)
        .where(~referenced.exists())
        .order_by(SnapshotBlob.content_hash)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
