"""BoardShareAsync — primary async class exposing the sharing boundary operations."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

from boardshare.config import SharingPolicy, is_expired
from boardshare.dialect import get_dialect
from boardshare.events import EventBus, EventType, ShareEvent
from boardshare.exceptions import ForbiddenError, InternalInvariantViolation, NotFoundError
from boardshare.sharing.acceptance import AcceptanceOrchestrator
from boardshare.sharing.autoshare import AutoSharePolicyEngine
from boardshare.sharing.builder import RequestTreeBuilder
from boardshare.sharing.friends import FriendPolicy
from boardshare.sharing.grants import GrantStore
from boardshare.sharing.linking import LinkingResolver
from boardshare.sharing.materializer import GrantMaterializer
from boardshare.sharing.records import get_record
from boardshare.sharing.requests import RequestTreeStore
from boardshare.types import (
    ItemRef,
    ItemType,
    Permission,
    RequestInfo,
    ShareItem,
    ShareRequestResult,
    ShareStatus,
    SharedChild,
    SharedItemView,
    item_ref,
    parse_permission,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable, Iterable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

    from boardshare.models.grants import GrantBase
    from boardshare.models.requests import ShareRequestBase
    from boardshare.types import AutoShareResult, Decision, LinkResult, ResolvedGrant

logger = logging.getLogger(__name__)


def _info(request: ShareRequestBase) -> RequestInfo:
    return RequestInfo(
        id=request.id,
        owner_id=request.owner_id,
        shared_with_id=request.shared_with_id,
        item_type=ItemType(request.item_type),
        item_id=request.item_id,
        permission=Permission(request.permission),
        status=ShareStatus(request.status),
        parent_share_id=request.parent_share_id,
        expires_at=request.expires_at,
        created_at=request.created_at,
    )


class BoardShareAsync:
    """Async facade wiring the request store, grant store, acceptance and auto-share.

    Each operation runs as one unit of work: commit on success, rollback
    on any error.  Pass ``session=`` to run inside a caller's transaction
    instead; the caller then commits and no events are emitted::

        engine = create_async_engine("postgresql+asyncpg://...")
        share = BoardShareAsync(engine=engine)
        await share.create_tables()
        result = await share.create_share_request("alice", "game", game_id)
        grant = await share.accept_share_link(result.token, "bob")
    """

    def __init__(
        self,
        *,
        engine: AsyncEngine | None = None,
        session_factory: Callable[..., AsyncSession] | None = None,
        dialect: str | None = None,
        policy: SharingPolicy | None = None,
        request_model: type[ShareRequestBase] | None = None,
    ) -> None:
        if engine is not None and session_factory is not None:
            raise ValueError("Pass either engine or session_factory, not both")
        if engine is None and session_factory is None:
            raise ValueError("An engine or a session_factory is required")

        self._engine = engine
        if engine is not None:
            self._session_factory: Callable[..., AsyncSession] = async_sessionmaker(
                engine, class_=AsyncSession, expire_on_commit=False
            )
            self.dialect = dialect or get_dialect(engine)
        else:
            assert session_factory is not None
            self._session_factory = session_factory
            self.dialect = dialect or "sqlite"

        self.policy = policy or SharingPolicy()
        self._event_bus = EventBus()

        self._requests = RequestTreeStore(request_model, dialect=self.dialect, policy=self.policy)
        self._grants = GrantStore(dialect=self.dialect)
        self._materializer = GrantMaterializer(self._grants)
        self._linking = LinkingResolver(self._grants)
        self._friends = FriendPolicy()
        self._builder = RequestTreeBuilder(self._requests)
        self._orchestrator = AcceptanceOrchestrator(
            self._requests, self._materializer, self._linking
        )
        self._autoshare = AutoSharePolicyEngine(
            self._requests, self._builder, self._orchestrator, self._friends
        )

    async def create_tables(self) -> None:
        """Create every sharing and record table on the engine."""
        if self._engine is None:
            raise ValueError("create_tables requires an engine")
        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session_for(self) -> AsyncGenerator[AsyncSession]:
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @asynccontextmanager
    async def _unit(self, session: AsyncSession | None = None) -> AsyncGenerator[AsyncSession]:
        """Yield *session* as-is, or a fresh committed-on-success session.

        Invariant violations are logged in full and re-raised without detail.
        """
        try:
            if session is not None:
                yield session
            else:
                async with self._session_for() as sess:
                    yield sess
        except InternalInvariantViolation as exc:
            logger.error("Sharing invariant violated: %s", exc, exc_info=True)
            raise InternalInvariantViolation("Internal error.") from None

    async def _publish(self, session: AsyncSession | None, *events: ShareEvent) -> None:
        """Emit *events* once the facade has committed its own unit of work.

        Nothing is emitted for a caller-owned *session*: the work is not
        durable until that caller commits.
        """
        if session is not None:
            logger.debug("Skipping %d event(s) for a caller-owned session", len(events))
            return
        for event in events:
            await self._event_bus.emit(event)

    # ------------------------------------------------------------------
    # Share requests
    # ------------------------------------------------------------------

    async def create_share_request(
        self,
        owner_id: str,
        item_type: ItemType | str,
        item_id: str,
        *,
        shared_with_id: str | None = None,
        permission: Permission | str = Permission.VIEW,
        children: Iterable[ShareItem] = (),
        include_players: bool = False,
        include_location: bool = False,
        expires_at: datetime | None = None,
        session: AsyncSession | None = None,
    ) -> ShareRequestResult:
        """Share an item directly with *shared_with_id*, or as a public link when ``None``.

        Friend shares are checked against the recipient's preferences and,
        when the recipient auto-accepts the item type, accepted at once.
        """
        item = item_ref(item_type, item_id)
        spec = ShareItem(
            item,
            permission=parse_permission(permission),
            children=list(children),
            include_players=include_players,
            include_location=include_location,
        )
        if shared_with_id == owner_id:
            raise ForbiddenError("You cannot share with yourself.")

        auto_accepted = False
        async with self._unit(session) as sess:
            setting = None
            if shared_with_id is not None:
                setting = await self._friends.check_recipient(
                    sess, owner_id, shared_with_id, item.type
                )
            tree = await self._builder.build(
                sess, owner_id, shared_with_id, spec, expires_at=expires_at
            )
            if shared_with_id is not None and self._friends.auto_accepts(setting, item.type):
                verdicts = self._orchestrator.policy_verdicts(
                    tree, self._friends.recipient_accept_flags(setting)
                )
                await self._orchestrator.apply(
                    sess, tree, verdicts, recipient_id=shared_with_id
                )
                auto_accepted = True
            root = tree.root

        await self._publish(
            session,
            ShareEvent(
                EventType.SHARE_REQUESTED,
                user_id=owner_id,
                item_type=item.type,
                item_id=item.id,
                request_id=root.id,
                other_user_id=shared_with_id,
            )
        )
        if auto_accepted:
            await self._publish(
                session,
                ShareEvent(
                    EventType.SHARE_ACCEPTED,
                    user_id=shared_with_id,  # type: ignore[arg-type]
                    item_type=item.type,
                    item_id=item.id,
                    request_id=root.id,
                    other_user_id=owner_id,
                )
            )

        if shared_with_id is None:
            return ShareRequestResult(
                success=True,
                message="Share link created successfully.",
                request_id=root.id,
                share_url=self.policy.share_url(root.token),
                token=root.token,
                child_count=len(tree) - 1,
            )
        return ShareRequestResult(
            success=True,
            message="Share accepted automatically." if auto_accepted else "Share request sent.",
            request_id=root.id,
            auto_accepted=auto_accepted,
            child_count=len(tree) - 1,
        )

    async def accept_share_request(
        self,
        request_id: str,
        recipient_id: str,
        decisions: Iterable[Decision] = (),
        *,
        token: str | None = None,
        session: AsyncSession | None = None,
    ) -> GrantBase:
        """Accept the tree rooted at *request_id*. Returns the root grant."""
        async with self._unit(session) as sess:
            outcome = await self._orchestrator.accept(
                sess, request_id, recipient_id, decisions, token=token
            )
            root = await self._requests.get(sess, request_id)
            assert root is not None

        await self._publish(
            session,
            ShareEvent(
                EventType.SHARE_ACCEPTED,
                user_id=recipient_id,
                item_type=ItemType(root.item_type),
                item_id=root.item_id,
                request_id=root.id,
                other_user_id=root.owner_id,
            )
        )
        return outcome.root_grant

    async def accept_share_link(
        self,
        token: str,
        recipient_id: str,
        decisions: Iterable[Decision] = (),
        *,
        session: AsyncSession | None = None,
    ) -> GrantBase:
        """Claim and accept the public link identified by *token*."""
        async with self._unit(session) as sess:
            root = await self._requests.get_by_token(sess, token)
            if root is None or root.parent_share_id is not None:
                raise NotFoundError("Share request not found.")
            request_id = root.id
        return await self.accept_share_request(
            request_id, recipient_id, decisions, token=token, session=session
        )

    async def reject_share_request(
        self,
        request_id: str,
        recipient_id: str,
        *,
        session: AsyncSession | None = None,
    ) -> list[RequestInfo]:
        """Reject the whole tree. Returns the rejected nodes."""
        async with self._unit(session) as sess:
            tree = await self._orchestrator.reject(sess, request_id, recipient_id)
            nodes = [_info(n) for n in tree.walk()]

        root = nodes[0]
        await self._publish(
            session,
            ShareEvent(
                EventType.SHARE_REJECTED,
                user_id=recipient_id,
                item_type=root.item_type,
                item_id=root.item_id,
                request_id=root.id,
                other_user_id=root.owner_id,
            )
        )
        return nodes

    async def cancel_share_request(
        self,
        request_id: str,
        owner_id: str,
        *,
        session: AsyncSession | None = None,
    ) -> int:
        """Delete a pending request tree owned by *owner_id*. Returns rows deleted."""
        async with self._unit(session) as sess:
            root = await self._requests.get(sess, request_id)
            deleted = await self._requests.cancel(sess, request_id, owner_id)
            assert root is not None
            shared_with_id = root.shared_with_id
            item = ItemRef(ItemType(root.item_type), root.item_id)

        await self._publish(
            session,
            ShareEvent(
                EventType.SHARE_CANCELLED,
                user_id=owner_id,
                item_type=item.type,
                item_id=item.id,
                request_id=request_id,
                other_user_id=shared_with_id,
            )
        )
        return deleted

    async def get_request_tree(
        self,
        request_id: str,
        user_id: str,
        *,
        session: AsyncSession | None = None,
    ) -> list[RequestInfo]:
        """Every node of a tree, root first, for its owner or recipient."""
        async with self._unit(session) as sess:
            tree = await self._requests.load_tree(sess, request_id)
            if user_id not in (tree.root.owner_id, tree.root.shared_with_id):
                raise NotFoundError("Share request not found.")
            return [_info(n) for n in tree.walk()]

    async def list_incoming_requests(
        self, recipient_id: str, *, session: AsyncSession | None = None
    ) -> list[RequestInfo]:
        async with self._unit(session) as sess:
            return [_info(r) for r in await self._requests.list_incoming(sess, recipient_id)]

    async def list_outgoing_requests(
        self,
        owner_id: str,
        status: ShareStatus | str | None = None,
        *,
        session: AsyncSession | None = None,
    ) -> list[RequestInfo]:
        wanted = ShareStatus(status) if status is not None else None
        async with self._unit(session) as sess:
            requests = await self._requests.list_outgoing(sess, owner_id, wanted)
            return [_info(r) for r in requests]

    # ------------------------------------------------------------------
    # Public links
    # ------------------------------------------------------------------

    async def resolve_shared_item_by_token(
        self, token: str, *, session: AsyncSession | None = None
    ) -> SharedItemView:
        """Read the item behind an unclaimed public link.

        Raises ``ForbiddenError`` once the link has expired.
        """
        async with self._unit(session) as sess:
            root = await self._requests.get_by_token(sess, token)
            if (
                root is None
                or root.parent_share_id is not None
                or root.shared_with_id is not None
                or root.status == ShareStatus.REJECTED.value
            ):
                raise NotFoundError("Share link not found.")
            if is_expired(root.expires_at):
                raise ForbiddenError("This share link has expired.")

            tree = await self._requests.load_tree(sess, root.id)
            record = await get_record(sess, ItemRef(ItemType(root.item_type), root.item_id))
            if record is None:
                raise NotFoundError("Shared item not found.")

            children: list[SharedChild] = []
            for node in tree.descendants(root.id):
                child = await get_record(sess, ItemRef(ItemType(node.item_type), node.item_id))
                if child is None:
                    logger.debug("Shared %s %s no longer exists", node.item_type, node.item_id)
                    continue
                children.append(
                    SharedChild(
                        item_type=ItemType(node.item_type),
                        item=child,
                        permission=Permission(node.permission),
                        request_id=node.id,
                    )
                )

            return SharedItemView(
                item_type=ItemType(root.item_type),
                item=record,
                permission=Permission(root.permission),
                child_items=children,
                expires_at=root.expires_at,
                request_id=root.id,
            )

    # ------------------------------------------------------------------
    # Grants and linking
    # ------------------------------------------------------------------

    async def link_shared_item(
        self,
        item_type: ItemType | str,
        grant_id: str,
        recipient_id: str,
        local_item_id: str | None,
        *,
        session: AsyncSession | None = None,
    ) -> LinkResult:
        """Link a held grant to the recipient's own item, or unlink with ``None``."""
        kind = ItemType(item_type)
        async with self._unit(session) as sess:
            result = await self._linking.link(sess, kind, grant_id, recipient_id, local_item_id)

        if result.changed:
            await self._publish(
                session,
                ShareEvent(
                    EventType.ITEM_LINKED,
                    user_id=recipient_id,
                    item_type=kind,
                    item_id=grant_id,
                )
            )
        return result

    async def list_grants(
        self,
        recipient_id: str,
        item_type: ItemType | str | None = None,
        *,
        session: AsyncSession | None = None,
    ) -> list[ResolvedGrant]:
        """Grants held by *recipient_id*, resolved through their links."""
        wanted = ItemType(item_type) if item_type is not None else None
        async with self._unit(session) as sess:
            resolved = []
            for kind in [wanted] if wanted is not None else list(ItemType):
                for grant in await self._grants.list_for_recipient(sess, recipient_id, kind):
                    resolved.append(await self._linking.resolve_grant(sess, kind, grant))
            return resolved

    async def resolve_grant(
        self,
        item_type: ItemType | str,
        grant_id: str,
        recipient_id: str,
        *,
        session: AsyncSession | None = None,
    ) -> ResolvedGrant:
        async with self._unit(session) as sess:
            return await self._linking.resolve(sess, ItemType(item_type), grant_id, recipient_id)

    async def can_access(
        self,
        user_id: str,
        item_type: ItemType | str,
        item_id: str,
        required: Permission | str = Permission.VIEW,
        *,
        session: AsyncSession | None = None,
    ) -> bool:
        """Owners always have access; others need a grant allowing *required*."""
        item = item_ref(item_type, item_id)
        required = parse_permission(required)
        async with self._unit(session) as sess:
            if await get_record(sess, item, user_id) is not None:
                return True
            grant = await self._grants.find_for_item(sess, item.type, item.id, user_id)
            return grant is not None and Permission(grant.permission).allows(required)

    # ------------------------------------------------------------------
    # Auto-share
    # ------------------------------------------------------------------

    async def on_match_created(
        self,
        owner_id: str,
        match_id: str,
        *,
        session: AsyncSession | None = None,
    ) -> AutoShareResult:
        """Auto-share a new match; pass the match's own *session* to share atomically."""
        async with self._unit(session) as sess:
            result = await self._autoshare.on_match_created(sess, owner_id, match_id)

        for recipient_id in result.shared_with:
            await self._publish(
                session,
                ShareEvent(
                    EventType.MATCH_AUTO_SHARED,
                    user_id=owner_id,
                    item_type=ItemType.MATCH,
                    item_id=match_id,
                    other_user_id=recipient_id,
                )
            )
        return result

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def session_factory(self) -> Callable[..., AsyncSession]:
        return self._session_factory
