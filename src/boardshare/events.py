"""Share lifecycle notifications: what happened to a share, and who hears about it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from boardshare.types import ItemType

    ShareHandler = Callable[["ShareEvent"], Awaitable[None]]

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Points in a share's life that notification or feed code can follow."""

    SHARE_REQUESTED = "share_requested"
    SHARE_ACCEPTED = "share_accepted"
    SHARE_REJECTED = "share_rejected"
    SHARE_CANCELLED = "share_cancelled"
    ITEM_LINKED = "item_linked"
    MATCH_AUTO_SHARED = "match_auto_shared"


@dataclass(frozen=True, slots=True)
class ShareEvent:
    """One committed change to a share, seen from the user who made it.

    Attributes:
        event_type: Which step of the share's life this is.
        user_id: The owner sending or cancelling, or the recipient answering.
        item_type: Type of the shared root item.
        item_id: The root item, or the recipient's grant for ``ITEM_LINKED``.
        request_id: The root share request, absent for links and auto-shares.
        other_user_id: The other party to the share.
    """

    event_type: EventType
    user_id: str
    item_type: ItemType | None = None
    item_id: str | None = None
    request_id: str | None = None
    other_user_id: str | None = None


class EventBus:
    """Fans committed share events out to async subscribers.

    Subscribers of a type run one after another, oldest first.  A
    subscriber that raises is logged and skipped; the share it was told
    about stays in place.
    """

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[ShareHandler]] = {
            event_type: [] for event_type in EventType
        }

    def register(self, event_type: EventType, handler: ShareHandler) -> None:
        """Subscribe *handler* to *event_type*."""
        self._subscribers[event_type].append(handler)

    def unregister(self, event_type: EventType, handler: ShareHandler) -> bool:
        """Drop the earliest subscription of *handler*; ``False`` if it had none."""
        subscribers = self._subscribers[event_type]
        if handler not in subscribers:
            return False
        subscribers.remove(handler)
        return True

    async def emit(self, event: ShareEvent) -> None:
        for handler in list(self._subscribers[event.event_type]):
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Subscriber %r failed on %s from %s",
                    handler,
                    event.event_type.value,
                    event.user_id,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        return sum(len(subscribers) for subscribers in self._subscribers.values())

    def clear(self) -> None:
        """Drop every subscription, for every event type."""
        for subscribers in self._subscribers.values():
            subscribers.clear()
