"""RequestTreeStore — share request trees: creation, loading, status, cancel.

Stateless service that receives the request model at construction
and a session at call time.  Trees are loaded as a flat arena keyed by
id with a parent → children index rebuilt per call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlmodel import select

from boardshare.config import SharingPolicy, is_expired
from boardshare.dialect import insert_if_absent
from boardshare.exceptions import ConflictError, InternalInvariantViolation, NotFoundError
from boardshare.models.requests import ACTIVE_ROOT_KEY, ACTIVE_ROOT_WHERE, ACTIVE_SLOT, ShareRequest
from boardshare.types import ItemRef, ItemType, ShareStatus, parse_permission

from .registry import kind_of

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from boardshare.models.requests import ShareRequestBase
    from boardshare.types import Permission

logger = logging.getLogger(__name__)


@dataclass
class RequestTree:
    """A root request and all of its descendants, flattened by id."""

    root: ShareRequestBase
    nodes: dict[str, ShareRequestBase] = field(default_factory=dict)
    children: dict[str, list[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.nodes.setdefault(self.root.id, self.root)

    def add(self, node: ShareRequestBase) -> None:
        self.nodes[node.id] = node
        if node.parent_share_id is not None:
            self.children.setdefault(node.parent_share_id, []).append(node.id)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def parent(self, node: ShareRequestBase) -> ShareRequestBase | None:
        if node.parent_share_id is None:
            return None
        return self.nodes.get(node.parent_share_id)

    def child_nodes(self, request_id: str) -> list[ShareRequestBase]:
        return [self.nodes[cid] for cid in self.children.get(request_id, [])]

    def walk(self) -> Iterator[ShareRequestBase]:
        """Pre-order traversal from the root (parents before children)."""
        stack = [self.root.id]
        while stack:
            node_id = stack.pop()
            yield self.nodes[node_id]
            stack.extend(reversed(self.children.get(node_id, [])))

    def descendants(self, request_id: str) -> list[ShareRequestBase]:
        out: list[ShareRequestBase] = []
        stack = list(self.children.get(request_id, []))
        while stack:
            node_id = stack.pop()
            out.append(self.nodes[node_id])
            stack.extend(self.children.get(node_id, []))
        return out

    def depth(self, node: ShareRequestBase) -> int:
        depth = 0
        current = node
        while current.parent_share_id is not None:
            depth += 1
            current = self.nodes[current.parent_share_id]
        return depth

    def in_dependency_order(self) -> list[ShareRequestBase]:
        """Nodes ordered by item tier, then depth, then creation order."""
        position = {node.id: i for i, node in enumerate(self.walk())}
        return sorted(
            self.nodes.values(),
            key=lambda n: (kind_of(n.item_type).tier, self.depth(n), position[n.id]),
        )

    def find(self, item: ItemRef) -> ShareRequestBase | None:
        for node in self.walk():
            if node.item_type == item.type.value and node.item_id == item.id:
                return node
        return None


class RequestTreeStore:
    """Persistence of share request trees.

    Constructor receives the concrete request model so callers can use
    custom SQLModel subclasses with different table names.
    """

    def __init__(
        self,
        request_model: type[ShareRequestBase] | None = None,
        *,
        dialect: str = "sqlite",
        policy: SharingPolicy | None = None,
    ) -> None:
        self._request_model: type[ShareRequestBase] = request_model or ShareRequest  # type: ignore[assignment]
        self.dialect = dialect
        self.policy = policy or SharingPolicy()

    @property
    def request_model(self) -> type[ShareRequestBase]:
        return self._request_model

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get(self, session: AsyncSession, request_id: str) -> ShareRequestBase | None:
        model = self._request_model
        result = await session.execute(select(model).where(model.id == request_id))
        return result.scalar_one_or_none()

    async def get_by_token(self, session: AsyncSession, token: str) -> ShareRequestBase | None:
        model = self._request_model
        result = await session.execute(select(model).where(model.token == token))
        return result.scalar_one_or_none()

    def is_active(self, request: ShareRequestBase, now: datetime | None = None) -> bool:
        """Accepted, or pending, unexpired and inside the duplicate window."""
        if request.status == ShareStatus.ACCEPTED.value:
            return True
        if request.status != ShareStatus.PENDING.value:
            return False
        if is_expired(request.expires_at, now):
            return False
        return self.policy.within_duplicate_window(request.created_at, now)

    async def find_active_root(
        self,
        session: AsyncSession,
        owner_id: str,
        shared_with_id: str,
        item: ItemRef,
    ) -> ShareRequestBase | None:
        """Return the active root for the tuple, retiring stale slot holders."""
        model = self._request_model
        result = await session.execute(
            select(model).where(
                model.owner_id == owner_id,
                model.shared_with_id == shared_with_id,
                model.item_type == item.type.value,
                model.item_id == item.id,
                model.active_slot == ACTIVE_SLOT,
            )
        )
        now = datetime.now(UTC)
        active: ShareRequestBase | None = None
        for request in result.scalars().all():
            if self.is_active(request, now):
                active = request
            else:
                logger.debug("Retiring stale share request %s", request.id)
                request.active_slot = None
        await session.flush()
        return active

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_root(
        self,
        session: AsyncSession,
        owner_id: str,
        shared_with_id: str | None,
        item: ItemRef,
        permission: Permission | str,
        *,
        expires_at: datetime | None = None,
    ) -> ShareRequestBase:
        """Create a pending root request.

        Direct shares (*shared_with_id* set) raise ``ConflictError`` while
        another active root exists for the same owner, recipient and item.
        Public links (*shared_with_id* ``None``) are independent of each other.
        """
        permission = parse_permission(permission)
        if shared_with_id is not None:
            existing = await self.find_active_root(session, owner_id, shared_with_id, item)
            if existing is not None:
                if existing.status == ShareStatus.ACCEPTED.value:
                    raise ConflictError("This has already been accepted.")
                raise ConflictError("There is already a pending share.")
        else:
            expires_at = self.policy.link_expiry(expires_at)

        request = self._request_model(
            owner_id=owner_id,
            shared_with_id=shared_with_id,
            item_type=item.type.value,
            item_id=item.id,
            permission=permission.value,
            status=ShareStatus.PENDING.value,
            active_slot=ACTIVE_SLOT,
            expires_at=expires_at,
        )
        inserted = await insert_if_absent(
            session,
            self.dialect,
            self._request_model,
            request.model_dump(),
            ACTIVE_ROOT_KEY,
            index_where=ACTIVE_ROOT_WHERE,
        )
        if not inserted:
            # A concurrent writer created the same active root first
            raise ConflictError("There is already a pending share.")
        created = await self.get(session, request.id)
        if created is None:
            raise InternalInvariantViolation(f"Share request {request.id} not created.")
        return created

    async def attach_child(
        self,
        session: AsyncSession,
        parent_id: str,
        item: ItemRef,
        permission: Permission | str,
    ) -> ShareRequestBase:
        """Attach a pending child under *parent_id*, inheriting its parties and expiry."""
        permission = parse_permission(permission)
        parent = await self.get(session, parent_id)
        if parent is None:
            raise NotFoundError(f"Share request {parent_id} not found.")
        if ShareStatus(parent.status).is_terminal:
            raise ConflictError(f"Share request {parent_id} is already {parent.status}.")

        child = self._request_model(
            owner_id=parent.owner_id,
            shared_with_id=parent.shared_with_id,
            parent_share_id=parent.id,
            item_type=item.type.value,
            item_id=item.id,
            permission=permission.value,
            status=ShareStatus.PENDING.value,
            expires_at=parent.expires_at,
        )
        session.add(child)
        await session.flush()
        return child

    # ------------------------------------------------------------------
    # Trees
    # ------------------------------------------------------------------

    async def load_tree(self, session: AsyncSession, root_id: str) -> RequestTree:
        """Load *root_id* and every descendant, one query per level."""
        root = await self.get(session, root_id)
        if root is None or root.parent_share_id is not None:
            raise NotFoundError("Share request not found.")

        model = self._request_model
        tree = RequestTree(root=root)
        frontier = [root.id]
        while frontier:
            result = await session.execute(
                select(model)
                .where(model.parent_share_id.in_(frontier))  # type: ignore[union-attr]
                .order_by(model.created_at, model.id)  # type: ignore[arg-type]
            )
            level = [n for n in result.scalars().all() if n.id not in tree]
            for node in level:
                tree.add(node)
            frontier = [n.id for n in level]
        return tree

    async def lock_root(self, session: AsyncSession, root: ShareRequestBase) -> None:
        """Claim *root* for this unit of work.

        Takes a row lock where the dialect supports one, then bumps
        ``version``; a concurrent claimer sees a stale version and fails.
        """
        model = self._request_model
        await session.execute(select(model.id).where(model.id == root.id).with_for_update())
        expected = root.version
        result = await session.execute(
            update(model)
            .where(model.id == root.id, model.version == expected)  # type: ignore[arg-type]
            .values(version=expected + 1)
        )
        if result.rowcount != 1:
            raise ConflictError("Share request is being processed by another caller.")
        await session.refresh(root)

    async def set_status(
        self,
        session: AsyncSession,
        request: ShareRequestBase,
        status: ShareStatus,
    ) -> None:
        """Transition a pending request to *status* (exactly once)."""
        if ShareStatus(request.status).is_terminal:
            raise ConflictError(f"Share request {request.id} is already {request.status}.")
        request.status = status.value
        if status is ShareStatus.REJECTED:
            request.active_slot = None
        session.add(request)
        await session.flush()

    async def claim(self, session: AsyncSession, tree: RequestTree, recipient_id: str) -> None:
        """Bind an unclaimed public-link tree to *recipient_id*."""
        root = tree.root
        item = ItemRef(ItemType(root.item_type), root.item_id)
        existing = await self.find_active_root(session, root.owner_id, recipient_id, item)
        if existing is not None:
            raise ConflictError("This item is already shared with you.")
        for node in tree.nodes.values():
            node.shared_with_id = recipient_id
            session.add(node)
        await session.flush()

    async def cancel(self, session: AsyncSession, root_id: str, owner_id: str) -> int:
        """Hard-delete a pending root and all descendants. Returns rows deleted."""
        root = await self.get(session, root_id)
        if root is None or root.owner_id != owner_id or root.parent_share_id is not None:
            raise NotFoundError("Share request not found.")
        await self.lock_root(session, root)
        if root.status != ShareStatus.PENDING.value:
            raise ConflictError(f"Share request {root_id} is already {root.status}.")

        tree = await self.load_tree(session, root_id)
        # Children before parents so the self-referential FK never dangles
        doomed = sorted(tree.nodes.values(), key=tree.depth, reverse=True)
        for node in doomed:
            await session.delete(node)
            await session.flush()
        return len(doomed)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_incoming(self, session: AsyncSession, recipient_id: str) -> list[ShareRequestBase]:
        """Pending, unexpired root requests addressed to *recipient_id*."""
        model = self._request_model
        result = await session.execute(
            select(model)
            .where(
                model.shared_with_id == recipient_id,
                model.parent_share_id.is_(None),  # type: ignore[union-attr]
                model.status == ShareStatus.PENDING.value,
            )
            .order_by(model.created_at)  # type: ignore[arg-type]
        )
        now = datetime.now(UTC)
        return [r for r in result.scalars().all() if not is_expired(r.expires_at, now)]

    async def list_outgoing(
        self,
        session: AsyncSession,
        owner_id: str,
        status: ShareStatus | None = None,
    ) -> list[ShareRequestBase]:
        """Root requests created by *owner_id*, optionally filtered by status."""
        model = self._request_model
        stmt = select(model).where(
            model.owner_id == owner_id,
            model.parent_share_id.is_(None),  # type: ignore[union-attr]
        )
        if status is not None:
            stmt = stmt.where(model.status == status.value)
        result = await session.execute(stmt.order_by(model.created_at))  # type: ignore[arg-type]
        return list(result.scalars().all())
