"""Tests for GrantStore and GrantMaterializer — idempotent grants and parent wiring."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import func
from sqlmodel import select

from boardshare.exceptions import DependencyMissingError, NotFoundError
from boardshare.models import GameGrant, LocationGrant, MatchGrant, PlayerGrant
from boardshare.sharing.grants import GrantStore
from boardshare.sharing.materializer import GrantMaterializer
from boardshare.types import ItemType, item_ref

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from tests.conftest import World


@pytest.fixture
def grants() -> GrantStore:
    return GrantStore()


@pytest.fixture
def materializer(grants: GrantStore) -> GrantMaterializer:
    return GrantMaterializer(grants)


async def _count(session: AsyncSession, model: type) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


# ---------------------------------------------------------------------------
# GrantStore
# ---------------------------------------------------------------------------


class TestGrantStore:
    async def test_insert_then_reinsert(self, grants: GrantStore, async_session: AsyncSession):
        values = {"owner_id": "alice", "shared_with_id": "bob", "item_id": "g1"}
        grant, created = await grants.insert(async_session, ItemType.GAME, values)
        assert created is True

        again, created = await grants.insert(
            async_session, ItemType.GAME, values | {"permission": "edit"}
        )
        assert created is False
        assert again.id == grant.id
        assert again.permission == "view"

    async def test_get_and_find(self, grants: GrantStore, async_session: AsyncSession):
        values = {"owner_id": "alice", "shared_with_id": "bob", "item_id": "g1"}
        grant, _ = await grants.insert(async_session, ItemType.GAME, values)

        assert (await grants.get(async_session, ItemType.GAME, "alice", "bob", "g1")) is grant
        assert await grants.get(async_session, ItemType.GAME, "alice", "carol", "g1") is None
        assert (await grants.get_by_id(async_session, ItemType.GAME, grant.id)) is grant
        assert await grants.get_by_id(async_session, ItemType.PLAYER, grant.id) is None
        assert (await grants.find_for_item(async_session, ItemType.GAME, "g1", "bob")) is grant

    async def test_set_linked_item(self, grants: GrantStore, async_session: AsyncSession):
        grant, _ = await grants.insert(
            async_session,
            ItemType.GAME,
            {"owner_id": "alice", "shared_with_id": "bob", "item_id": "g1"},
        )
        assert await grants.set_linked_item(async_session, grant, "g2") is True
        assert await grants.set_linked_item(async_session, grant, "g2") is False
        assert await grants.set_linked_item(async_session, grant, None) is True
        assert grant.linked_item_id is None

    async def test_list_for_recipient(self, grants: GrantStore, async_session: AsyncSession):
        await grants.insert(
            async_session, ItemType.GAME, {"owner_id": "alice", "shared_with_id": "bob", "item_id": "g1"}
        )
        await grants.insert(
            async_session, ItemType.PLAYER, {"owner_id": "alice", "shared_with_id": "bob", "item_id": "p1"}
        )
        await grants.insert(
            async_session, ItemType.GAME, {"owner_id": "alice", "shared_with_id": "carol", "item_id": "g1"}
        )
        assert len(await grants.list_for_recipient(async_session, "bob")) == 2
        players = await grants.list_for_recipient(async_session, "bob", ItemType.PLAYER)
        assert [g.item_id for g in players] == ["p1"]


# ---------------------------------------------------------------------------
# GrantMaterializer
# ---------------------------------------------------------------------------


class TestMaterialize:
    async def test_creates_once(
        self, materializer: GrantMaterializer, async_session: AsyncSession, world: World
    ):
        game = item_ref("game", world.game.id)
        first = await materializer.materialize(async_session, game, "alice", "bob", "view")
        second = await materializer.materialize(async_session, game, "alice", "bob", "edit")
        assert first.id == second.id
        assert second.permission == "view"
        assert await _count(async_session, GameGrant) == 1

    async def test_match_creates_game_on_demand(
        self, materializer: GrantMaterializer, async_session: AsyncSession, world: World
    ):
        grant = await materializer.materialize(
            async_session, item_ref("match", world.match.id), "alice", "bob", "edit"
        )
        assert isinstance(grant, MatchGrant)
        game_grant = (await async_session.execute(select(GameGrant))).scalar_one()
        assert grant.shared_game_id == game_grant.id
        assert game_grant.item_id == world.game.id
        assert game_grant.permission == "edit"
        # Optional parents are only wired when already granted
        assert grant.shared_location_id is None
        assert grant.shared_scoresheet_id is None
        assert await _count(async_session, LocationGrant) == 0

    async def test_match_wires_existing_location(
        self, materializer: GrantMaterializer, async_session: AsyncSession, world: World
    ):
        location = await materializer.materialize(
            async_session, item_ref("location", world.location.id), "alice", "bob", "view"
        )
        grant = await materializer.materialize(
            async_session, item_ref("match", world.match.id), "alice", "bob", "view"
        )
        assert grant.shared_location_id == location.id

    async def test_missing_parent_without_on_demand(
        self, materializer: GrantMaterializer, async_session: AsyncSession, world: World
    ):
        with pytest.raises(DependencyMissingError, match="Shared game not found"):
            await materializer.materialize(
                async_session,
                item_ref("match", world.match.id),
                "alice",
                "bob",
                "view",
                on_demand=False,
            )
        assert await _count(async_session, MatchGrant) == 0

    async def test_blocked_parent(
        self, materializer: GrantMaterializer, async_session: AsyncSession, world: World
    ):
        with pytest.raises(DependencyMissingError):
            await materializer.materialize(
                async_session,
                item_ref("match", world.match.id),
                "alice",
                "bob",
                "view",
                blocked={item_ref("game", world.game.id)},
            )

    async def test_match_player_wires_player_grant(
        self, materializer: GrantMaterializer, async_session: AsyncSession, world: World
    ):
        player = await materializer.materialize(
            async_session, item_ref("player", world.bob_player.id), "alice", "bob", "view"
        )
        mp = world.match_players[0]
        grant = await materializer.materialize(
            async_session, item_ref("match_player", mp.id), "alice", "bob", "view"
        )
        match_grant = (await async_session.execute(select(MatchGrant))).scalar_one()
        assert grant.shared_match_id == match_grant.id
        assert grant.shared_player_id == player.id

    async def test_match_player_without_player_grant(
        self, materializer: GrantMaterializer, async_session: AsyncSession, world: World
    ):
        mp = world.match_players[1]
        grant = await materializer.materialize(
            async_session, item_ref("match_player", mp.id), "alice", "bob", "view"
        )
        assert grant.shared_player_id is None
        assert await _count(async_session, PlayerGrant) == 0

    async def test_record_of_other_owner(
        self, materializer: GrantMaterializer, async_session: AsyncSession, world: World
    ):
        with pytest.raises(NotFoundError, match="not found"):
            await materializer.materialize(
                async_session, item_ref("game", world.bob_game.id), "alice", "bob", "view"
            )
