"""ItemKind registry — per-type dispatch for records, grants and parent wiring.

Replaces per-type branching: every service looks up the ``ItemKind`` for
an ``ItemType`` and works from its models and ``ParentLink`` list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from boardshare.models.grants import (
    GameGrant,
    LocationGrant,
    MatchGrant,
    MatchPlayerGrant,
    PlayerGrant,
    ScoresheetGrant,
)
from boardshare.models.records import Game, Location, Match, MatchPlayer, Player, Scoresheet
from boardshare.types import ItemType

if TYPE_CHECKING:
    from boardshare.models.grants import GrantBase
    from boardshare.models.records import RecordBase


@dataclass(frozen=True, slots=True)
class ParentLink:
    """How a grant of one type points at the grant of another.

    Attributes:
        item_type: Type of the parent item.
        source_attr: Attribute on the source record holding the parent item id.
        grant_attr: Attribute on the grant holding the parent grant id.
        required: Whether the grant cannot exist without the parent grant.
    """

    item_type: ItemType
    source_attr: str
    grant_attr: str
    required: bool = False


@dataclass(frozen=True, slots=True)
class ItemKind:
    """Static description of one shareable item type."""

    item_type: ItemType
    record_model: type[RecordBase]
    grant_model: type[GrantBase]
    tier: int
    """Acceptance order: lower tiers are materialized first."""
    linkable: bool = False
    parents: tuple[ParentLink, ...] = ()
    derived: bool = False
    """Derived children follow their parent node's decision when undecided."""


KINDS: dict[ItemType, ItemKind] = {
    ItemType.GAME: ItemKind(ItemType.GAME, Game, GameGrant, tier=0, linkable=True),
    ItemType.LOCATION: ItemKind(ItemType.LOCATION, Location, LocationGrant, tier=0, linkable=True),
    ItemType.PLAYER: ItemKind(ItemType.PLAYER, Player, PlayerGrant, tier=0, linkable=True),
    ItemType.SCORESHEET: ItemKind(
        ItemType.SCORESHEET,
        Scoresheet,
        ScoresheetGrant,
        tier=1,
        parents=(ParentLink(ItemType.GAME, "game_id", "shared_game_id"),),
        derived=True,
    ),
    ItemType.MATCH: ItemKind(
        ItemType.MATCH,
        Match,
        MatchGrant,
        tier=2,
        parents=(
            ParentLink(ItemType.GAME, "game_id", "shared_game_id", required=True),
            ParentLink(ItemType.LOCATION, "location_id", "shared_location_id"),
            ParentLink(ItemType.SCORESHEET, "scoresheet_id", "shared_scoresheet_id"),
        ),
    ),
    ItemType.MATCH_PLAYER: ItemKind(
        ItemType.MATCH_PLAYER,
        MatchPlayer,
        MatchPlayerGrant,
        tier=3,
        parents=(
            ParentLink(ItemType.MATCH, "match_id", "shared_match_id", required=True),
            ParentLink(ItemType.PLAYER, "player_id", "shared_player_id"),
        ),
        derived=True,
    ),
}


def kind_of(item_type: ItemType | str) -> ItemKind:
    """Return the ``ItemKind`` for *item_type*."""
    return KINDS[ItemType(item_type)]
