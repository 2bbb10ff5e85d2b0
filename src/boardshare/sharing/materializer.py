"""GrantMaterializer — find-or-create a grant and wire its parent grants."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from boardshare.exceptions import DependencyMissingError
from boardshare.types import ItemRef, Permission, parse_permission

from .records import require_record
from .registry import kind_of

if TYPE_CHECKING:
    from collections.abc import Collection

    from sqlalchemy.ext.asyncio import AsyncSession

    from boardshare.models.grants import GrantBase

    from .grants import GrantStore

logger = logging.getLogger(__name__)


class GrantMaterializer:
    """Idempotent upsert of grants.

    An existing grant for ``(owner, recipient, item)`` is returned
    unchanged, so manual acceptance and auto-share can both reach the
    same item without producing a second row.
    """

    def __init__(self, grants: GrantStore) -> None:
        self._grants = grants

    async def materialize(
        self,
        session: AsyncSession,
        item: ItemRef,
        owner_id: str,
        recipient_id: str,
        permission: Permission | str,
        *,
        on_demand: bool = True,
        blocked: Collection[ItemRef] = (),
    ) -> GrantBase:
        """Return the grant for *item*, creating it and its required parents if needed.

        A missing required parent grant is created on the spot when
        *on_demand* is true and the parent item is not in *blocked*
        (items the recipient explicitly declined).  Otherwise
        ``DependencyMissingError`` is raised.
        """
        permission = parse_permission(permission)
        existing = await self._grants.get(session, item.type, owner_id, recipient_id, item.id)
        if existing is not None:
            logger.debug("Reusing %s grant %s for %r", item.type.value, existing.id, item)
            return existing

        kind = kind_of(item.type)
        record = await require_record(session, item, owner_id)

        values: dict[str, str | None] = {
            "owner_id": owner_id,
            "shared_with_id": recipient_id,
            "item_id": item.id,
            "permission": permission.value,
        }
        for link in kind.parents:
            parent_item_id = getattr(record, link.source_attr)
            if parent_item_id is None:
                if link.required:
                    raise DependencyMissingError(
                        f"{item.type.value} {item.id} has no {link.item_type.value}."
                    )
                continue
            parent_grant = await self._grants.get(
                session, link.item_type, owner_id, recipient_id, parent_item_id
            )
            if parent_grant is None and link.required:
                parent = ItemRef(link.item_type, parent_item_id)
                if not on_demand or parent in blocked:
                    raise DependencyMissingError(
                        f"Shared {link.item_type.value} not found for {item.type.value} {item.id}."
                    )
                parent_grant = await self.materialize(
                    session,
                    parent,
                    owner_id,
                    recipient_id,
                    permission,
                    on_demand=on_demand,
                    blocked=blocked,
                )
            if parent_grant is not None:
                values[link.grant_attr] = parent_grant.id

        grant, created = await self._grants.insert(session, item.type, values)
        if not created:
            logger.debug("Concurrent writer created %s grant %s first", item.type.value, grant.id)
        return grant
