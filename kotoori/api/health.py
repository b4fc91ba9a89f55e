"""Liveness endpoint polled by the editor shell before it enables history."""

from __future__ import annotations

import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kotoori import __version__
from kotoori.api.deps import get_history_service, get_session
from kotoori.services.history_service import HistoryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Backend state as seen by the editor."""

    status: Literal["ok", "degraded"]
    version: str
    history_db: Literal["ok", "unreachable"]
    max_snapshots: int


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
    history: Annotated[HistoryService, Depends(get_history_service)],
) -> HealthResponse:
    """Report whether saves will be recorded.

    ``degraded`` means the editor can still open and save files, but the
    history database cannot be reached.
    """
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("History database unreachable: %s", exc)
        return HealthResponse(
            status="degraded",
            version=__version__,
            history_db="unreachable",
            max_snapshots=history.max_snapshots,
        )
    return HealthResponse(
        status="ok",
        version=__version__,
        history_db="ok",
        max_snapshots=history.max_snapshots,
    )
