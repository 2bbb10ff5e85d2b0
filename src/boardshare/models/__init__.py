"""SQLModel database models for boardshare."""

from boardshare.models.friends import Friend, FriendSetting, UserSharingPreference
from boardshare.models.grants import (
    GameGrant,
    GrantBase,
    LocationGrant,
    MatchGrant,
    MatchPlayerGrant,
    PlayerGrant,
    ScoresheetGrant,
)
from boardshare.models.records import (
    Game,
    Location,
    Match,
    MatchPlayer,
    Player,
    RecordBase,
    Scoresheet,
)
from boardshare.models.requests import ShareRequest, ShareRequestBase

__all__ = [
    "Friend",
    "FriendSetting",
    "Game",
    "GameGrant",
    "GrantBase",
    "Location",
    "LocationGrant",
    "Match",
    "MatchGrant",
    "MatchPlayer",
    "MatchPlayerGrant",
    "Player",
    "PlayerGrant",
    "RecordBase",
    "Scoresheet",
    "ScoresheetGrant",
    "ShareRequest",
    "ShareRequestBase",
    "UserSharingPreference",
]
