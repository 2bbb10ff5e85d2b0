"""Grant models — one durable permission row per accepted share, per item type.

Every grant table carries ``UNIQUE(owner_id, shared_with_id, item_id)``;
dependent grants reference their parent grants by id (a match grant its
game grant, a match-player grant its match grant).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

GRANT_KEY: list[str] = ["owner_id", "shared_with_id", "item_id"]
"""Natural key shared by every grant table."""


class GrantBase(SQLModel):
    """Base fields for a grant. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    owner_id: str = Field(index=True)
    shared_with_id: str = Field(index=True)
    item_id: str = Field(index=True)
    permission: str = Field(default="view")
    linked_item_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class GameGrant(GrantBase, table=True):
    __tablename__ = "board_game_grants"
    __table_args__ = (
        UniqueConstraint(*GRANT_KEY, name="uq_board_game_grants_key"),
    )


class LocationGrant(GrantBase, table=True):
    __tablename__ = "board_location_grants"
    __table_args__ = (
        UniqueConstraint(*GRANT_KEY, name="uq_board_location_grants_key"),
    )


class PlayerGrant(GrantBase, table=True):
    __tablename__ = "board_player_grants"
    __table_args__ = (
        UniqueConstraint(*GRANT_KEY, name="uq_board_player_grants_key"),
    )


class ScoresheetGrant(GrantBase, table=True):
    __tablename__ = "board_scoresheet_grants"
    __table_args__ = (
        UniqueConstraint(*GRANT_KEY, name="uq_board_scoresheet_grants_key"),
    )

    shared_game_id: str | None = Field(default=None, foreign_key="board_game_grants.id")


class MatchGrant(GrantBase, table=True):
    __tablename__ = "board_match_grants"
    __table_args__ = (
        UniqueConstraint(*GRANT_KEY, name="uq_board_match_grants_key"),
    )

    shared_game_id: str = Field(foreign_key="board_game_grants.id", index=True)
    shared_location_id: str | None = Field(default=None, foreign_key="board_location_grants.id")
    shared_scoresheet_id: str | None = Field(
        default=None, foreign_key="board_scoresheet_grants.id"
    )


class MatchPlayerGrant(GrantBase, table=True):
    __tablename__ = "board_match_player_grants"
    __table_args__ = (
        UniqueConstraint(*GRANT_KEY, name="uq_board_match_player_grants_key"),
    )

    shared_match_id: str = Field(foreign_key="board_match_grants.id", index=True)
    shared_player_id: str | None = Field(default=None, foreign_key="board_player_grants.id")
