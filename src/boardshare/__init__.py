"""BoardShare: sharing and grant propagation for board-game records.

Share requests, transactional acceptance, linking and friend auto-share.
"""

__version__ = "0.0.1"

from boardshare._boardshare import BoardShare
from boardshare._boardshare_async import BoardShareAsync
from boardshare.config import SharingPolicy
from boardshare.events import EventBus, EventType, ShareEvent
from boardshare.exceptions import (
    BoardShareError,
    ConflictError,
    DependencyMissingError,
    ForbiddenError,
    InternalInvariantViolation,
    InvalidDecisionError,
    NotFoundError,
)
from boardshare.types import (
    AutoShareResult,
    Decision,
    ItemRef,
    ItemType,
    LinkResult,
    Permission,
    RequestInfo,
    ResolvedGrant,
    SharedChild,
    SharedItemView,
    ShareItem,
    ShareRequestResult,
    ShareStatus,
    SharingVisibility,
    item_ref,
)

__all__ = [
    "AutoShareResult",
    "BoardShare",
    "BoardShareAsync",
    "BoardShareError",
    "ConflictError",
    "Decision",
    "DependencyMissingError",
    "EventBus",
    "EventType",
    "ForbiddenError",
    "InternalInvariantViolation",
    "InvalidDecisionError",
    "ItemRef",
    "ItemType",
    "LinkResult",
    "NotFoundError",
    "Permission",
    "RequestInfo",
    "ResolvedGrant",
    "ShareEvent",
    "ShareItem",
    "ShareRequestResult",
    "ShareStatus",
    "SharedChild",
    "SharedItemView",
    "SharingPolicy",
    "SharingVisibility",
    "__version__",
    "item_ref",
]
