"""Tests for dialect.py — dialect detection and insert-if-absent."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, select

from boardshare.dialect import _insert_mssql, get_dialect, insert_if_absent
from boardshare.models import GameGrant, ShareRequest
from boardshare.models.grants import GRANT_KEY
from boardshare.models.requests import ACTIVE_ROOT_KEY, ACTIVE_ROOT_WHERE, ACTIVE_SLOT


def _grant_values(grant_id: str, permission: str = "view") -> dict:
    return {
        "id": grant_id,
        "owner_id": "alice",
        "shared_with_id": "bob",
        "item_id": "game-1",
        "permission": permission,
    }


class TestGetDialect:
    async def test_sqlite_async(self):
        engine = create_async_engine("sqlite+aiosqlite://", echo=False)
        assert get_dialect(engine) == "sqlite"
        await engine.dispose()

    def test_sqlite_sync(self):
        from sqlmodel import create_engine

        engine = create_engine("sqlite://", echo=False)
        assert get_dialect(engine) == "sqlite"


class TestGetDialectEdgeCases:
    def _mock_engine(self, dialect_name: str) -> MagicMock:
        """Create a mock engine (sync-style) with the given dialect name."""
        engine = MagicMock(spec=["dialect"])
        engine.dialect = MagicMock()
        engine.dialect.name = dialect_name
        return engine

    def test_unknown_dialect_returns_name(self):
        assert get_dialect(self._mock_engine("oracle")) == "oracle"

    def test_postgres_variant(self):
        assert get_dialect(self._mock_engine("postgres")) == "postgresql"

    def test_pyodbc_variant(self):
        assert get_dialect(self._mock_engine("pyodbc")) == "mssql"


# =========================================================================
# insert_if_absent() on SQLite
# =========================================================================


class TestInsertIfAbsent:
    async def test_insert(self):
        engine = create_async_engine("sqlite+aiosqlite://", echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with factory() as session:
            rowcount = await insert_if_absent(
                session, "sqlite", GameGrant, _grant_values("g1"), GRANT_KEY
            )
            await session.commit()
            assert rowcount == 1

            result = await session.execute(select(GameGrant).where(GameGrant.id == "g1"))
            grant = result.scalar_one()
            assert grant.item_id == "game-1"

        await engine.dispose()

    async def test_existing_key_is_left_alone(self):
        engine = create_async_engine("sqlite+aiosqlite://", echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with factory() as session:
            await insert_if_absent(session, "sqlite", GameGrant, _grant_values("g1"), GRANT_KEY)
            await session.commit()

        async with factory() as session:
            rowcount = await insert_if_absent(
                session, "sqlite", GameGrant, _grant_values("g2", "edit"), GRANT_KEY
            )
            await session.commit()
            assert rowcount == 0

            result = await session.execute(select(GameGrant))
            grants = result.scalars().all()
            assert len(grants) == 1
            assert grants[0].id == "g1"
            assert grants[0].permission == "view"

        await engine.dispose()

    async def test_different_recipient_inserts(self):
        engine = create_async_engine("sqlite+aiosqlite://", echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with factory() as session:
            await insert_if_absent(session, "sqlite", GameGrant, _grant_values("g1"), GRANT_KEY)
            values = _grant_values("g2") | {"shared_with_id": "carol"}
            rowcount = await insert_if_absent(session, "sqlite", GameGrant, values, GRANT_KEY)
            await session.commit()
            assert rowcount == 1

        await engine.dispose()

    async def test_partial_index_only_guards_rows_it_covers(self):
        engine = create_async_engine("sqlite+aiosqlite://", echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

        def _root(**fields) -> dict:
            return ShareRequest(
                owner_id="alice", item_type="game", item_id="game-1", **fields
            ).model_dump()

        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with factory() as session:
            counts = [
                await insert_if_absent(
                    session,
                    "sqlite",
                    ShareRequest,
                    values,
                    ACTIVE_ROOT_KEY,
                    index_where=ACTIVE_ROOT_WHERE,
                )
                for values in (
                    _root(shared_with_id="bob", active_slot=ACTIVE_SLOT),
                    _root(shared_with_id="bob", active_slot=ACTIVE_SLOT),
                    _root(shared_with_id=None, active_slot=ACTIVE_SLOT),
                    _root(shared_with_id=None, active_slot=ACTIVE_SLOT),
                    _root(shared_with_id="bob", status="rejected"),
                )
            ]
            await session.commit()
            assert counts == [1, 0, 1, 1, 1]

        await engine.dispose()


# =========================================================================
# _insert_mssql() SQL generation via mock
# =========================================================================


class TestInsertMssql:
    async def test_generates_merge_without_update(self):
        mock_session = AsyncMock(spec=AsyncSession)
        mock_result = MagicMock()
        mock_result.rowcount = 1
        mock_session.execute.return_value = mock_result

        rowcount = await _insert_mssql(
            mock_session,
            values=_grant_values("m1"),
            conflict_keys=GRANT_KEY,
            model=GameGrant,
        )
        assert rowcount == 1
        sql_text = str(mock_session.execute.call_args[0][0])
        assert "MERGE INTO board_game_grants" in sql_text
        assert "WITH (HOLDLOCK)" in sql_text
        assert "WHEN NOT MATCHED" in sql_text
        assert "WHEN MATCHED" not in sql_text.replace("WHEN NOT MATCHED", "")

    async def test_dispatches_on_dialect(self):
        mock_session = AsyncMock(spec=AsyncSession)
        mock_result = MagicMock()
        mock_result.rowcount = 0
        mock_session.execute.return_value = mock_result

        rowcount = await insert_if_absent(
            mock_session, "mssql", GameGrant, _grant_values("m1"), GRANT_KEY
        )
        assert rowcount == 0
        assert "MERGE INTO" in str(mock_session.execute.call_args[0][0])
