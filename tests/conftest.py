"""Shared fixtures for boardshare tests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, select

from boardshare import BoardShareAsync
from boardshare.models import (
    Friend,
    FriendSetting,
    Game,
    Location,
    Match,
    MatchPlayer,
    Player,
    Scoresheet,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncEngine


@dataclass
class World:
    """Alice's records plus Bob's own copies.

    Alice and Bob are mutual friends with default settings; Carol knows
    nobody.  ``bob_player`` is Alice's player standing in for Bob.
    """

    game: Game
    template_sheet: Scoresheet
    location: Location
    match_sheet: Scoresheet
    match: Match
    bob_player: Player
    dave_player: Player
    match_players: list[MatchPlayer]
    alice_to_bob: Friend
    bob_to_alice: Friend
    bob_game: Game
    bob_local_player: Player
    bob_location: Location


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def async_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session, rolled back after each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def share(async_engine: AsyncEngine) -> BoardShareAsync:
    return BoardShareAsync(engine=async_engine)


@pytest.fixture
def seed(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[None]]:
    """Insert and commit rows in a short-lived session."""

    async def _seed(*rows: SQLModel) -> None:
        async with session_factory() as s:
            for row in rows:
                s.add(row)
            await s.commit()

    return _seed


@pytest.fixture
def configure(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[None]]:
    """Update ``user_id``'s FriendSetting towards ``friend_user_id``."""

    async def _configure(user_id: str, friend_user_id: str, **fields: Any) -> None:
        async with session_factory() as s:
            friend = (
                await s.execute(
                    select(Friend).where(
                        Friend.user_id == user_id, Friend.friend_user_id == friend_user_id
                    )
                )
            ).scalar_one()
            setting = (
                await s.execute(select(FriendSetting).where(FriendSetting.friend_id == friend.id))
            ).scalar_one()
            for name, value in fields.items():
                setattr(setting, name, value)
            s.add(setting)
            await s.commit()

    return _configure


@pytest.fixture
def count(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[int]]:
    """Count rows of *model* matching equality filters, in a fresh session."""

    async def _count(model: type[SQLModel], **filters: Any) -> int:
        async with session_factory() as s:
            stmt = select(func.count()).select_from(model)
            for name, value in filters.items():
                stmt = stmt.where(getattr(model, name) == value)
            return (await s.execute(stmt)).scalar_one()

    return _count


@pytest.fixture
async def world(seed: Callable[..., Awaitable[None]]) -> World:
    alice_to_bob = Friend(user_id="alice", friend_user_id="bob")
    bob_to_alice = Friend(user_id="bob", friend_user_id="alice")

    game = Game(created_by="alice", name="Catan")
    template_sheet = Scoresheet(created_by="alice", name="Default", game_id=game.id)
    match_sheet = Scoresheet(
        created_by="alice", name="Default", game_id=game.id, parent_id=template_sheet.id
    )
    location = Location(created_by="alice", name="Game Cafe")
    match = Match(
        created_by="alice",
        name="Friday night",
        game_id=game.id,
        location_id=location.id,
        scoresheet_id=match_sheet.id,
    )
    bob_player = Player(created_by="alice", name="Bob", linked_friend_id=alice_to_bob.id)
    dave_player = Player(created_by="alice", name="Dave")
    match_players = [
        MatchPlayer(created_by="alice", match_id=match.id, player_id=bob_player.id),
        MatchPlayer(created_by="alice", match_id=match.id, player_id=dave_player.id),
    ]

    await seed(alice_to_bob, bob_to_alice)
    await seed(
        FriendSetting(friend_id=alice_to_bob.id),
        FriendSetting(friend_id=bob_to_alice.id),
        game,
        template_sheet,
        match_sheet,
        location,
        match,
        bob_player,
        dave_player,
    )
    await seed(*match_players)

    bob_game = Game(created_by="bob", name="Catan (my copy)")
    bob_local_player = Player(created_by="bob", name="Me")
    bob_location = Location(created_by="bob", name="Home")
    await seed(bob_game, bob_local_player, bob_location)

    return World(
        game=game,
        template_sheet=template_sheet,
        location=location,
        match_sheet=match_sheet,
        match=match,
        bob_player=bob_player,
        dave_player=dave_player,
        match_players=match_players,
        alice_to_bob=alice_to_bob,
        bob_to_alice=bob_to_alice,
        bob_game=bob_game,
        bob_local_player=bob_local_player,
        bob_location=bob_location,
    )
