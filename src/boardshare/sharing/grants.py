"""GrantStore — reads and idempotent inserts of per-type grant rows."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlmodel import select

from boardshare.dialect import insert_if_absent
from boardshare.exceptions import InternalInvariantViolation
from boardshare.models.grants import GRANT_KEY

from .registry import KINDS, kind_of

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from boardshare.models.grants import GrantBase
    from boardshare.types import ItemType


class GrantStore:
    """Persistence of materialized grants, one table per item type."""

    def __init__(self, *, dialect: str = "sqlite") -> None:
        self.dialect = dialect

    async def get(
        self,
        session: AsyncSession,
        item_type: ItemType,
        owner_id: str,
        shared_with_id: str,
        item_id: str,
    ) -> GrantBase | None:
        """Look up a grant by its natural key."""
        model = kind_of(item_type).grant_model
        result = await session.execute(
            select(model).where(
                model.owner_id == owner_id,
                model.shared_with_id == shared_with_id,
                model.item_id == item_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_id(
        self,
        session: AsyncSession,
        item_type: ItemType,
        grant_id: str,
    ) -> GrantBase | None:
        model = kind_of(item_type).grant_model
        result = await session.execute(select(model).where(model.id == grant_id))
        return result.scalar_one_or_none()

    async def insert(
        self,
        session: AsyncSession,
        item_type: ItemType,
        values: dict[str, Any],
    ) -> tuple[GrantBase, bool]:
        """Insert a grant unless its natural key already exists.

        Returns ``(grant, created)``.  When a concurrent writer won the
        race the existing row is returned with ``created=False``.
        """
        model = kind_of(item_type).grant_model
        row = model(**values)
        inserted = await insert_if_absent(
            session, self.dialect, model, row.model_dump(), GRANT_KEY
        )
        grant = await self.get(session, item_type, row.owner_id, row.shared_with_id, row.item_id)
        if grant is None:
            raise InternalInvariantViolation(
                f"{item_type.value} grant for item {row.item_id} not created."
            )
        return grant, bool(inserted)

    async def set_linked_item(
        self,
        session: AsyncSession,
        grant: GrantBase,
        linked_item_id: str | None,
    ) -> bool:
        """Set or clear ``linked_item_id``. Returns True if the value changed."""
        if grant.linked_item_id == linked_item_id:
            return False
        grant.linked_item_id = linked_item_id
        session.add(grant)
        await session.flush()
        return True

    async def list_for_recipient(
        self,
        session: AsyncSession,
        shared_with_id: str,
        item_type: ItemType | None = None,
    ) -> list[GrantBase]:
        """All grants held by *shared_with_id*, optionally for one item type."""
        types = [item_type] if item_type is not None else list(KINDS)
        grants: list[GrantBase] = []
        for t in types:
            model = kind_of(t).grant_model
            result = await session.execute(
                select(model)
                .where(model.shared_with_id == shared_with_id)
                .order_by(model.created_at)  # type: ignore[arg-type]
            )
            grants.extend(result.scalars().all())
        return grants

    async def find_for_item(
        self,
        session: AsyncSession,
        item_type: ItemType,
        item_id: str,
        shared_with_id: str,
    ) -> GrantBase | None:
        """The grant giving *shared_with_id* access to *item_id*, from any owner."""
        model = kind_of(item_type).grant_model
        result = await session.execute(
            select(model).where(
                model.item_id == item_id,
                model.shared_with_id == shared_with_id,
            )
        )
        return result.scalars().first()
