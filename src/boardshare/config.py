"""SharingPolicy — tunable constants for the sharing engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta


@dataclass
class SharingPolicy:
    """Configuration shared by every sharing service."""

    duplicate_share_window: timedelta | None = field(default_factory=lambda: timedelta(days=7))
    """Pending root requests older than this stop blocking a fresh share.  ``None`` disables the window."""

    share_url_prefix: str = "/share/"
    """Public links are returned as ``share_url_prefix + token``."""

    default_link_ttl: timedelta | None = None
    """Expiry applied to public links created without an explicit ``expires_at``."""

    def __post_init__(self) -> None:
        if self.duplicate_share_window is not None and self.duplicate_share_window < timedelta(0):
            raise ValueError("duplicate_share_window must not be negative")
        if not self.share_url_prefix.endswith("/"):
            self.share_url_prefix += "/"

    def share_url(self, token: str) -> str:
        return f"{self.share_url_prefix}{token}"

    def link_expiry(self, expires_at: datetime | None, now: datetime | None = None) -> datetime | None:
        """Return *expires_at*, or the default link expiry when none was given."""
        if expires_at is not None or self.default_link_ttl is None:
            return expires_at
        return (now or datetime.now(UTC)) + self.default_link_ttl

    def within_duplicate_window(self, created_at: datetime, now: datetime | None = None) -> bool:
        if self.duplicate_share_window is None:
            return True
        return as_aware(created_at) > (now or datetime.now(UTC)) - self.duplicate_share_window


def as_aware(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    if expires_at is None:
        return False
    return as_aware(expires_at) <= (now or datetime.now(UTC))
