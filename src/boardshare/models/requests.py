"""ShareRequest model — one node of a share request tree.

Provides ``ShareRequestBase`` (non-table) and ``ShareRequest`` (concrete table).
Subclass ``ShareRequestBase`` with ``table=True`` and a custom ``__tablename__``
to use a different table name per backend.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel

ACTIVE_SLOT: int = 1
"""``active_slot`` value of an active root; NULL everywhere else so the unique index ignores the row."""
ACTIVE_ROOT_KEY: list[str] = ["owner_id", "shared_with_id", "item_type", "item_id", "active_slot"]
"""Natural key of the active-root unique index."""
ACTIVE_ROOT_WHERE: str = "active_slot IS NOT NULL AND shared_with_id IS NOT NULL"
"""Predicate of the active-root index; retired roots, children and public links fall outside it."""


class ShareRequestBase(SQLModel):
    """Base fields for a share request. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    owner_id: str = Field(index=True)
    shared_with_id: str | None = Field(default=None, index=True)
    parent_share_id: str | None = Field(default=None, index=True)
    item_type: str = Field(index=True)
    item_id: str = Field(index=True)
    permission: str = Field(default="view")
    status: str = Field(default="pending", index=True)
    token: str = Field(default_factory=lambda: str(uuid.uuid4()), unique=True)
    active_slot: int | None = Field(default=None)
    version: int = Field(default=0)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    expires_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class ShareRequest(ShareRequestBase, table=True):
    """Default share request table, ``board_share_requests``."""

    __tablename__ = "board_share_requests"
    __table_args__ = (
        Index(
            "uq_board_share_requests_active_root",
            *ACTIVE_ROOT_KEY,
            unique=True,
            sqlite_where=text(ACTIVE_ROOT_WHERE),
            postgresql_where=text(ACTIVE_ROOT_WHERE),
            mssql_where=text(ACTIVE_ROOT_WHERE),
        ),
    )

    parent_share_id: str | None = Field(
        default=None, foreign_key="board_share_requests.id", index=True
    )
