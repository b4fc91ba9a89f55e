"""Shared API dependencies: DB session and history service."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from kotoori.services.history_service import HistoryService


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


def get_history_service(request: Request) -> HistoryService:
    """Get the history service from app state."""
    history: HistoryService = request.app.state.history_service
    return history
