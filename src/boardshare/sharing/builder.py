"""RequestTreeBuilder — expand a ``ShareItem`` spec into a pending request tree.

Every record the tree will reference is read and checked first; rows are
only written once the whole plan is known to be valid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from boardshare.exceptions import NotFoundError
from boardshare.types import ItemRef, ItemType, Permission, parse_permission

from .records import list_match_players, require_record
from .registry import kind_of
from .requests import RequestTree

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from boardshare.models.records import Match
    from boardshare.types import ShareItem

    from .requests import RequestTreeStore

logger = logging.getLogger(__name__)


@dataclass
class _Planned:
    item: ItemRef
    permission: Permission
    children: list[_Planned] = field(default_factory=list)


class RequestTreeBuilder:
    """Turns nested share specs into a root request plus child requests.

    A match node always carries its scoresheet and one ``match_player``
    child per participant; a match root additionally carries its game.
    """

    def __init__(self, requests: RequestTreeStore) -> None:
        self._requests = requests

    async def build(
        self,
        session: AsyncSession,
        owner_id: str,
        shared_with_id: str | None,
        spec: ShareItem,
        *,
        expires_at: datetime | None = None,
        permission_for: Callable[[ItemType], Permission] | None = None,
    ) -> RequestTree:
        """Validate and persist the tree described by *spec*.

        *permission_for*, when given, overrides the permission of every
        node by item type (used for friend default permissions).
        """
        if spec.item.type is ItemType.MATCH_PLAYER:
            raise ValueError("Match players are shared together with their match.")

        seen: set[ItemRef] = set()
        plan = await self._plan(session, owner_id, spec, None, seen, permission_for)

        root = await self._requests.create_root(
            session,
            owner_id,
            shared_with_id,
            plan.item,
            plan.permission,
            expires_at=expires_at,
        )
        tree = RequestTree(root=root)
        await self._attach(session, tree, root.id, plan.children)
        logger.debug("Built share tree %s with %d nodes", root.id, len(tree))
        return tree

    async def _attach(
        self,
        session: AsyncSession,
        tree: RequestTree,
        parent_id: str,
        children: list[_Planned],
    ) -> None:
        for planned in children:
            node = await self._requests.attach_child(
                session, parent_id, planned.item, planned.permission
            )
            tree.add(node)
            await self._attach(session, tree, node.id, planned.children)

    async def _plan(
        self,
        session: AsyncSession,
        owner_id: str,
        spec: ShareItem,
        parent: ItemRef | None,
        seen: set[ItemRef],
        permission_for: Callable[[ItemType], Permission] | None,
    ) -> _Planned:
        record = await require_record(session, spec.item, owner_id)
        if parent is not None:
            _check_belongs(record, spec.item, parent)

        seen.add(spec.item)
        node = _Planned(spec.item, _permission(spec.item.type, spec.permission, permission_for))

        if spec.item.type is ItemType.MATCH:
            node.children.extend(
                await self._expand_match(
                    session, record, spec, parent, seen, node.permission, permission_for
                )
            )

        for child in spec.children:
            if child.item in seen:
                logger.debug("Skipping duplicate %r in share tree", child.item)
                continue
            node.children.append(
                await self._plan(session, owner_id, child, spec.item, seen, permission_for)
            )
        return node

    async def _expand_match(
        self,
        session: AsyncSession,
        match: Match,
        spec: ShareItem,
        parent: ItemRef | None,
        seen: set[ItemRef],
        permission: Permission,
        permission_for: Callable[[ItemType], Permission] | None,
    ) -> list[_Planned]:
        children: list[_Planned] = []

        def add(item: ItemRef) -> None:
            if item in seen:
                return
            seen.add(item)
            children.append(_Planned(item, _permission(item.type, permission, permission_for)))

        if parent is None:
            add(ItemRef(ItemType.GAME, match.game_id))
        if spec.include_location and match.location_id is not None:
            add(ItemRef(ItemType.LOCATION, match.location_id))
        if match.scoresheet_id is not None:
            add(ItemRef(ItemType.SCORESHEET, match.scoresheet_id))

        participants = await list_match_players(session, match.id)
        if spec.include_players:
            for mp in participants:
                add(ItemRef(ItemType.PLAYER, mp.player_id))
        for mp in participants:
            add(ItemRef(ItemType.MATCH_PLAYER, mp.id))
        return children


def _permission(
    item_type: ItemType,
    default: Permission | str,
    permission_for: Callable[[ItemType], Permission] | None,
) -> Permission:
    if permission_for is not None:
        return permission_for(item_type)
    return parse_permission(default)


def _check_belongs(record: object, item: ItemRef, parent: ItemRef) -> None:
    """A child that references its parent's type must reference that parent."""
    for link in kind_of(item.type).parents:
        if link.item_type is parent.type and getattr(record, link.source_attr) != parent.id:
            raise NotFoundError(
                f"{item.type.value.capitalize()} {item.id} not found for {parent.type.value} {parent.id}."
            )
