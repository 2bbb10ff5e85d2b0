"""Sharing engine — request trees, grants, acceptance, linking, auto-share."""

from boardshare.sharing.acceptance import AcceptanceOrchestrator, AcceptanceOutcome
from boardshare.sharing.autoshare import AutoSharePolicyEngine
from boardshare.sharing.builder import RequestTreeBuilder
from boardshare.sharing.friends import AutoShareConfig, FriendPolicy
from boardshare.sharing.grants import GrantStore
from boardshare.sharing.linking import LinkingResolver
from boardshare.sharing.materializer import GrantMaterializer
from boardshare.sharing.registry import KINDS, ItemKind, ParentLink, kind_of
from boardshare.sharing.requests import RequestTree, RequestTreeStore

__all__ = [
    "KINDS",
    "AcceptanceOrchestrator",
    "AcceptanceOutcome",
    "AutoShareConfig",
    "AutoSharePolicyEngine",
    "FriendPolicy",
    "GrantMaterializer",
    "GrantStore",
    "ItemKind",
    "LinkingResolver",
    "ParentLink",
    "RequestTree",
    "RequestTreeBuilder",
    "RequestTreeStore",
    "kind_of",
]
