"""Friend relationships and the per-friend sharing policy.

A ``Friend`` row is directional: ``user_id`` keeps ``friend_user_id`` in
their friend list.  Its ``FriendSetting`` holds ``user_id``'s policy
towards that friend, both as a sharer (``auto_share_matches``, default
permissions) and as a recipient (``allow_shared_*``, ``auto_accept_*``).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class Friend(SQLModel, table=True):
    __tablename__ = "board_friends"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_user_id", name="uq_board_friends_pair"),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(index=True)
    friend_user_id: str = Field(index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class FriendSetting(SQLModel, table=True):
    __tablename__ = "board_friend_settings"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    friend_id: str = Field(foreign_key="board_friends.id", unique=True, index=True)

    # Sharer side: what this user pushes to the friend
    auto_share_matches: bool = Field(default=False)
    share_players_with_match: bool = Field(default=False)
    include_location_with_match: bool = Field(default=False)
    default_permission_for_game: str = Field(default="view")
    default_permission_for_matches: str = Field(default="view")
    default_permission_for_players: str = Field(default="view")
    default_permission_for_location: str = Field(default="view")

    # Recipient side: what this user accepts from the friend
    allow_shared_games: bool = Field(default=True)
    allow_shared_matches: bool = Field(default=True)
    allow_shared_players: bool = Field(default=True)
    allow_shared_location: bool = Field(default=True)
    auto_accept_game: bool = Field(default=False)
    auto_accept_matches: bool = Field(default=False)
    auto_accept_players: bool = Field(default=False)
    auto_accept_location: bool = Field(default=False)


class UserSharingPreference(SQLModel, table=True):
    """Global switch: ``public``, ``friends`` or ``none``."""

    __tablename__ = "board_user_sharing_preferences"

    user_id: str = Field(primary_key=True)
    allow_sharing: str = Field(default="friends")
