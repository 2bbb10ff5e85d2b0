"""Main BoardShare class — sync wrappers over BoardShareAsync."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import create_async_engine

from boardshare._boardshare_async import BoardShareAsync

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from boardshare.config import SharingPolicy
    from boardshare.events import EventBus
    from boardshare.models.grants import GrantBase
    from boardshare.types import (
        AutoShareResult,
        Decision,
        ItemType,
        LinkResult,
        Permission,
        RequestInfo,
        ResolvedGrant,
        ShareItem,
        ShareRequestResult,
        SharedItemView,
        ShareStatus,
    )

logger = logging.getLogger(__name__)


class BoardShare:
    """Synchronous sharing facade backed by a private event loop in a background thread.

    Usage::

        with BoardShare("sqlite+aiosqlite:///boardshare.db") as share:
            result = share.create_share_request("alice", "game", game_id)
            share.accept_share_link(result.token, "bob")
    """

    def __init__(
        self,
        url: str,
        *,
        policy: SharingPolicy | None = None,
        create_tables: bool = True,
        echo: bool = False,
    ) -> None:
        self._closed = False

        # Private event loop in a daemon thread
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

        self._engine = create_async_engine(url, echo=echo)
        self._async = BoardShareAsync(engine=self._engine, policy=policy)
        if create_tables:
            self._run(self._async.create_tables())

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block for the result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Dispose the engine, stop the event loop and join the thread."""
        if self._closed:
            return
        self._closed = True

        try:
            self._run(self._engine.dispose())
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)

    def __enter__(self) -> BoardShare:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Share requests
    # ------------------------------------------------------------------

    def create_share_request(
        self,
        owner_id: str,
        item_type: ItemType | str,
        item_id: str,
        *,
        shared_with_id: str | None = None,
        permission: Permission | str = "view",
        children: Iterable[ShareItem] = (),
        include_players: bool = False,
        include_location: bool = False,
        expires_at: datetime | None = None,
    ) -> ShareRequestResult:
        return self._run(
            self._async.create_share_request(
                owner_id,
                item_type,
                item_id,
                shared_with_id=shared_with_id,
                permission=permission,
                children=children,
                include_players=include_players,
                include_location=include_location,
                expires_at=expires_at,
            )
        )

    def accept_share_request(
        self,
        request_id: str,
        recipient_id: str,
        decisions: Iterable[Decision] = (),
        *,
        token: str | None = None,
    ) -> GrantBase:
        return self._run(
            self._async.accept_share_request(request_id, recipient_id, decisions, token=token)
        )

    def accept_share_link(
        self, token: str, recipient_id: str, decisions: Iterable[Decision] = ()
    ) -> GrantBase:
        return self._run(self._async.accept_share_link(token, recipient_id, decisions))

    def reject_share_request(self, request_id: str, recipient_id: str) -> list[RequestInfo]:
        return self._run(self._async.reject_share_request(request_id, recipient_id))

    def cancel_share_request(self, request_id: str, owner_id: str) -> int:
        return self._run(self._async.cancel_share_request(request_id, owner_id))

    def get_request_tree(self, request_id: str, user_id: str) -> list[RequestInfo]:
        return self._run(self._async.get_request_tree(request_id, user_id))

    def list_incoming_requests(self, recipient_id: str) -> list[RequestInfo]:
        return self._run(self._async.list_incoming_requests(recipient_id))

    def list_outgoing_requests(
        self, owner_id: str, status: ShareStatus | str | None = None
    ) -> list[RequestInfo]:
        return self._run(self._async.list_outgoing_requests(owner_id, status))

    def resolve_shared_item_by_token(self, token: str) -> SharedItemView:
        return self._run(self._async.resolve_shared_item_by_token(token))

    # ------------------------------------------------------------------
    # Grants and linking
    # ------------------------------------------------------------------

    def link_shared_item(
        self,
        item_type: ItemType | str,
        grant_id: str,
        recipient_id: str,
        local_item_id: str | None,
    ) -> LinkResult:
        return self._run(
            self._async.link_shared_item(item_type, grant_id, recipient_id, local_item_id)
        )

    def list_grants(
        self, recipient_id: str, item_type: ItemType | str | None = None
    ) -> list[ResolvedGrant]:
        return self._run(self._async.list_grants(recipient_id, item_type))

    def resolve_grant(
        self, item_type: ItemType | str, grant_id: str, recipient_id: str
    ) -> ResolvedGrant:
        return self._run(self._async.resolve_grant(item_type, grant_id, recipient_id))

    def can_access(
        self,
        user_id: str,
        item_type: ItemType | str,
        item_id: str,
        required: Permission | str = "view",
    ) -> bool:
        return self._run(self._async.can_access(user_id, item_type, item_id, required))

    def on_match_created(self, owner_id: str, match_id: str) -> AutoShareResult:
        return self._run(self._async.on_match_created(owner_id, match_id))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def event_bus(self) -> EventBus:
        return self._async.event_bus

    @property
    def async_api(self) -> BoardShareAsync:
        """The wrapped async facade (operations must run on this instance's loop)."""
        return self._async

    def run(self, coro: Any) -> Any:
        """Run a coroutine on the private loop, e.g. to seed records in tests."""
        return self._run(coro)
