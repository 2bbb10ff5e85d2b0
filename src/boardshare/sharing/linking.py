"""LinkingResolver — map a shared item onto the recipient's own record.

Writes only ``linked_item_id`` on a grant.  Reads resolve a grant (and
its parent grants) to the linked local id when one is set.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from boardshare.exceptions import ForbiddenError, NotFoundError
from boardshare.types import ItemRef, ItemType, LinkResult, Permission, ResolvedGrant

from .records import get_record
from .registry import kind_of

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from boardshare.models.grants import GrantBase

    from .grants import GrantStore

logger = logging.getLogger(__name__)


def _require_linkable(item_type: ItemType) -> None:
    if not kind_of(item_type).linkable:
        raise ValueError(f"Shared {item_type.value} items cannot be linked.")


class LinkingResolver:
    """Links grants to recipient-owned records and resolves linked identities."""

    def __init__(self, grants: GrantStore) -> None:
        self._grants = grants

    async def verify_local_item(
        self,
        session: AsyncSession,
        item_type: ItemType,
        local_item_id: str,
        recipient_id: str,
    ) -> None:
        """Raise ``ForbiddenError`` unless *recipient_id* owns the local record."""
        _require_linkable(item_type)
        record = await get_record(session, ItemRef(item_type, local_item_id), recipient_id)
        if record is None:
            raise ForbiddenError(f"You do not own this {item_type.value}.")

    async def apply(
        self,
        session: AsyncSession,
        item_type: ItemType,
        grant: GrantBase,
        local_item_id: str | None,
    ) -> bool:
        """Write an already-verified link. Returns True if it changed."""
        _require_linkable(item_type)
        changed = await self._grants.set_linked_item(session, grant, local_item_id)
        if changed:
            logger.debug(
                "%s grant %s linked to %s", item_type.value, grant.id, local_item_id
            )
        return changed

    async def link(
        self,
        session: AsyncSession,
        item_type: ItemType,
        grant_id: str,
        recipient_id: str,
        local_item_id: str | None,
    ) -> LinkResult:
        """Link grant *grant_id* to *local_item_id*, or unlink with ``None``.

        Repeating a call with the same value is a no-op.  Unlinking keeps
        the grant and its permission.
        """
        _require_linkable(item_type)
        grant = await self._grants.get_by_id(session, item_type, grant_id)
        if grant is None or grant.shared_with_id != recipient_id:
            raise NotFoundError(f"Shared {item_type.value} not found.")

        if local_item_id is not None:
            await self.verify_local_item(session, item_type, local_item_id, recipient_id)

        changed = await self.apply(session, item_type, grant, local_item_id)
        if local_item_id is None:
            message = f"Shared {item_type.value} unlinked successfully."
        else:
            message = f"Shared {item_type.value} linked successfully."
        return LinkResult(
            success=True,
            message=message,
            grant_id=grant.id,
            linked_item_id=local_item_id,
            changed=changed,
        )

    async def resolve(
        self,
        session: AsyncSession,
        item_type: ItemType,
        grant_id: str,
        recipient_id: str,
    ) -> ResolvedGrant:
        """Load a grant held by *recipient_id* with its parent grants resolved."""
        grant = await self._grants.get_by_id(session, item_type, grant_id)
        if grant is None or grant.shared_with_id != recipient_id:
            raise NotFoundError(f"Shared {item_type.value} not found.")
        return await self.resolve_grant(session, item_type, grant)

    async def resolve_grant(
        self,
        session: AsyncSession,
        item_type: ItemType,
        grant: GrantBase,
    ) -> ResolvedGrant:
        resolved = ResolvedGrant(
            item_type=item_type,
            grant_id=grant.id,
            owner_id=grant.owner_id,
            shared_with_id=grant.shared_with_id,
            item_id=grant.item_id,
            permission=Permission(grant.permission),
            linked_item_id=grant.linked_item_id,
        )
        for link in kind_of(item_type).parents:
            parent_grant_id = getattr(grant, link.grant_attr)
            if parent_grant_id is None:
                continue
            parent = await self._grants.get_by_id(session, link.item_type, parent_grant_id)
            if parent is not None:
                resolved.parents[link.item_type] = await self.resolve_grant(
                    session, link.item_type, parent
                )
        return resolved
