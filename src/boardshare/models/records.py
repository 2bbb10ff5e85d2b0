"""Board-game record models — the owner's originals that shares point at.

These tables belong to the CRUD layer; the sharing engine only reads them
to verify existence and ownership and to follow parent references
(a match's game, location and scoresheet; a match player's match and player).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class RecordBase(SQLModel):
    """Fields common to every owned record."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    created_by: str = Field(index=True)
    name: str = Field(default="")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class Game(RecordBase, table=True):
    __tablename__ = "board_games"


class Location(RecordBase, table=True):
    __tablename__ = "board_locations"


class Player(RecordBase, table=True):
    """A player in the owner's roster, optionally standing in for a friend account."""

    __tablename__ = "board_players"

    linked_friend_id: str | None = Field(default=None, index=True)


class Scoresheet(RecordBase, table=True):
    """Scoring template of a game, or a match's own copy of one (``parent_id`` set)."""

    __tablename__ = "board_scoresheets"

    game_id: str = Field(index=True)
    parent_id: str | None = Field(default=None, index=True)


class Match(RecordBase, table=True):
    __tablename__ = "board_matches"

    game_id: str = Field(index=True)
    location_id: str | None = Field(default=None)
    scoresheet_id: str | None = Field(default=None)
    finished: bool = Field(default=False)


class MatchPlayer(RecordBase, table=True):
    """One participant row of a match."""

    __tablename__ = "board_match_players"

    match_id: str = Field(index=True)
    player_id: str = Field(index=True)
