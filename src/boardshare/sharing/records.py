"""Record lookups against the owner's original board-game tables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlmodel import select

from boardshare.exceptions import NotFoundError
from boardshare.models.records import MatchPlayer

from .registry import kind_of

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from boardshare.models.records import RecordBase
    from boardshare.types import ItemRef


async def get_record(
    session: AsyncSession,
    item: ItemRef,
    owner_id: str | None = None,
) -> RecordBase | None:
    """Fetch the record behind *item*, optionally restricted to *owner_id*."""
    model = kind_of(item.type).record_model
    stmt = select(model).where(model.id == item.id)
    if owner_id is not None:
        stmt = stmt.where(model.created_by == owner_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def require_record(
    session: AsyncSession,
    item: ItemRef,
    owner_id: str | None = None,
) -> RecordBase:
    """Like ``get_record`` but raise ``NotFoundError`` when missing."""
    record = await get_record(session, item, owner_id)
    if record is None:
        raise NotFoundError(f"{item.type.value.replace('_', ' ').capitalize()} {item.id} not found.")
    return record


async def list_match_players(session: AsyncSession, match_id: str) -> list[MatchPlayer]:
    """Participants of *match_id* in insertion order."""
    result = await session.execute(
        select(MatchPlayer)
        .where(MatchPlayer.match_id == match_id)
        .order_by(MatchPlayer.created_at, MatchPlayer.id)  # type: ignore[arg-type]
    )
    return list(result.scalars().all())
