"""Dialect-aware SQL helpers: dialect detection and insert-if-absent."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession


def get_dialect(engine: Engine | AsyncEngine) -> str:
    """Return 'sqlite', 'postgresql', or 'mssql'."""
    # AsyncEngine wraps a sync engine
    sync_engine = getattr(engine, "sync_engine", engine)
    name = sync_engine.dialect.name
    if name == "sqlite":
        return "sqlite"
    if name in ("postgresql", "postgres"):
        return "postgresql"
    if name in ("mssql", "pyodbc"):
        return "mssql"
    return name


async def insert_if_absent(
    session: AsyncSession,
    dialect: str,
    model: type,
    values: dict[str, Any],
    conflict_keys: list[str],
    index_where: str | None = None,
) -> int:
    """Insert *values* into *model*'s table unless the natural key exists.

    Returns the rowcount: 1 when a row was inserted, 0 when a concurrent
    or earlier writer already holds the key.  Callers re-read afterwards.
    *index_where* names the predicate of a partial unique index on
    *conflict_keys*; rows outside it never conflict.

    - SQLite/PostgreSQL: INSERT ... ON CONFLICT (keys) [WHERE ...] DO NOTHING
    - MSSQL: MERGE INTO ... WITH (HOLDLOCK) WHEN NOT MATCHED
    """
    if dialect == "mssql":
        return await _insert_mssql(session, values, conflict_keys, model)
    return await _insert_sqlite_pg(session, dialect, values, conflict_keys, model, index_where)


async def _insert_sqlite_pg(
    session: AsyncSession,
    dialect: str,
    values: dict[str, Any],
    conflict_keys: list[str],
    model: type,
    index_where: str | None = None,
) -> int:
    from sqlalchemy.dialects import sqlite as sqlite_dialect

    dialect_module = sqlite_dialect
    if dialect == "postgresql":
        from sqlalchemy.dialects import postgresql as pg_dialect

        dialect_module = pg_dialect

    stmt = dialect_module.insert(model).values(**values)
    stmt = stmt.on_conflict_do_nothing(
        index_elements=conflict_keys,
        index_where=text(index_where) if index_where is not None else None,
    )
    result = await session.execute(stmt)
    return result.rowcount  # type: ignore[return-value]


async def _insert_mssql(
    session: AsyncSession,
    values: dict[str, Any],
    conflict_keys: list[str],
    model: type,
) -> int:
    """MSSQL insert-if-absent using MERGE INTO ... WITH (HOLDLOCK)."""
    table_name: str = model.__tablename__  # type: ignore[attr-defined]
    on_clause = " AND ".join(f"target.{k} = source.{k}" for k in conflict_keys)
    insert_cols = ", ".join(values.keys())
    insert_vals = ", ".join(f":{k}" for k in values)

    merge_sql = f"""
        MERGE INTO {table_name} WITH (HOLDLOCK) AS target
        USING (SELECT {", ".join(f":{k} AS {k}" for k in conflict_keys)}) AS source
        ON {on_clause}
        WHEN NOT MATCHED THEN
            INSERT ({insert_cols})
            VALUES ({insert_vals});
    """
    result = await session.execute(text(merge_sql), values)
    return result.rowcount  # type: ignore[return-value]
