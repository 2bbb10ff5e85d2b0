"""Value types: item references, enums, decisions, and result records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime


class ItemType(str, Enum):
    """Kinds of shareable board-game records."""

    GAME = "game"
    MATCH = "match"
    PLAYER = "player"
    LOCATION = "location"
    SCORESHEET = "scoresheet"
    MATCH_PLAYER = "match_player"


class Permission(str, Enum):
    """Access level carried by a share request or grant."""

    VIEW = "view"
    EDIT = "edit"

    def allows(self, required: Permission | str) -> bool:
        """Edit implies view."""
        required = Permission(required)
        return self is Permission.EDIT or required is Permission.VIEW


class ShareStatus(str, Enum):
    """Lifecycle state of a share request node."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not ShareStatus.PENDING


class SharingVisibility(str, Enum):
    """A user's global willingness to receive shares."""

    PUBLIC = "public"
    FRIENDS = "friends"
    NONE = "none"


def parse_permission(value: Permission | str) -> Permission:
    """Coerce *value* to a ``Permission`` or raise ``ValueError``."""
    try:
        return Permission(value)
    except ValueError:
        raise ValueError(
            f"Invalid permission: {value!r}. Must be 'view' or 'edit'."
        ) from None


@dataclass(frozen=True, slots=True)
class ItemRef:
    """Tagged reference to one record: ``(type, id)``.

    Attributes:
        type: Which record table the id belongs to.
        id: Primary key of the owner's original record.
    """

    type: ItemType
    id: str

    def __repr__(self) -> str:
        return f"ItemRef({self.type.value}:{self.id})"


def item_ref(item_type: ItemType | str, item_id: str) -> ItemRef:
    """Create an ItemRef, coercing the type from its string value."""
    return ItemRef(type=ItemType(item_type), id=item_id)


@dataclass
class ShareItem:
    """One node of a share tree as requested by the owner.

    Match specs expand at creation time: ``include_location`` adds the
    match's location, ``include_players`` adds each participant's player.
    Match-player rows and the match's scoresheet are always attached.
    """

    item: ItemRef
    permission: Permission = Permission.VIEW
    children: list[ShareItem] = field(default_factory=list)
    include_players: bool = False
    include_location: bool = False


@dataclass(frozen=True, slots=True)
class Decision:
    """A recipient's verdict on one request node."""

    request_id: str
    accept: bool
    link_to: str | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class ShareRequestResult:
    """Result of creating a share request tree."""

    success: bool
    message: str
    request_id: str | None = None
    share_url: str | None = None
    token: str | None = None
    auto_accepted: bool = False
    child_count: int = 0


@dataclass
class RequestInfo:
    """Flat view of one share request node."""

    id: str
    owner_id: str
    shared_with_id: str | None
    item_type: ItemType
    item_id: str
    permission: Permission
    status: ShareStatus
    parent_share_id: str | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class SharedChild:
    """A child item exposed through a public link."""

    item_type: ItemType
    item: Any
    permission: Permission
    request_id: str | None = None


@dataclass
class SharedItemView:
    """Read-only view of a public link's root item and its children."""

    item_type: ItemType
    item: Any
    permission: Permission
    child_items: list[SharedChild] = field(default_factory=list)
    expires_at: datetime | None = None
    request_id: str | None = None


@dataclass
class ResolvedGrant:
    """A grant with its identity resolved through ``linked_item_id``."""

    item_type: ItemType
    grant_id: str
    owner_id: str
    shared_with_id: str
    item_id: str
    permission: Permission
    linked_item_id: str | None = None
    parents: dict[ItemType, ResolvedGrant] = field(default_factory=dict)

    @property
    def is_linked(self) -> bool:
        return self.linked_item_id is not None

    @property
    def effective_item_id(self) -> str:
        """The recipient's own item when linked, else the owner's original."""
        return self.linked_item_id or self.item_id


@dataclass
class LinkResult:
    """Result of a link/unlink call."""

    success: bool
    message: str
    grant_id: str | None = None
    linked_item_id: str | None = None
    changed: bool = False


@dataclass
class AutoShareResult:
    """Outcome of auto-sharing one new match."""

    match_id: str
    accepted: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def shared_with(self) -> list[str]:
        return [*self.accepted, *self.pending]
