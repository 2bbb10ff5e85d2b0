"""FriendPolicy — friend lookups, recipient checks and auto-share settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlmodel import select

from boardshare.exceptions import ForbiddenError
from boardshare.models.friends import Friend, FriendSetting, UserSharingPreference
from boardshare.types import ItemType, Permission, SharingVisibility, parse_permission

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Recipient-side setting consulted for each item type.  Derived kinds
# (scoresheet, match_player) follow their match and have no flag.
ALLOW_FIELDS: dict[ItemType, str] = {
    ItemType.GAME: "allow_shared_games",
    ItemType.MATCH: "allow_shared_matches",
    ItemType.PLAYER: "allow_shared_players",
    ItemType.LOCATION: "allow_shared_location",
}

AUTO_ACCEPT_FIELDS: dict[ItemType, str] = {
    ItemType.GAME: "auto_accept_game",
    ItemType.MATCH: "auto_accept_matches",
    ItemType.PLAYER: "auto_accept_players",
    ItemType.LOCATION: "auto_accept_location",
}

PERMISSION_FIELDS: dict[ItemType, str] = {
    ItemType.GAME: "default_permission_for_game",
    ItemType.MATCH: "default_permission_for_matches",
    ItemType.PLAYER: "default_permission_for_players",
    ItemType.LOCATION: "default_permission_for_location",
}


@dataclass(frozen=True)
class AutoShareConfig:
    """Combined sharer and recipient settings for one owner → friend pair.

    Attributes:
        recipient_id: The friend's user id.
        sharer: The owner's setting row for the friend.
        recipient: The friend's setting row for the owner.
    """

    recipient_id: str
    sharer: FriendSetting
    recipient: FriendSetting

    @property
    def include_location(self) -> bool:
        return self.sharer.include_location_with_match and self.recipient.allow_shared_location

    @property
    def include_players(self) -> bool:
        return self.sharer.share_players_with_match and self.recipient.allow_shared_players

    def permission_for(self, item_type: ItemType) -> Permission:
        """Sharer's default permission for *item_type* (matches for derived kinds)."""
        field_name = PERMISSION_FIELDS.get(item_type, PERMISSION_FIELDS[ItemType.MATCH])
        return parse_permission(getattr(self.sharer, field_name))


class FriendPolicy:
    """Reads friend rows and settings; raises ``ForbiddenError`` on refusal."""

    async def get_friend(
        self, session: AsyncSession, user_id: str, friend_user_id: str
    ) -> Friend | None:
        """The row in *user_id*'s friend list pointing at *friend_user_id*."""
        result = await session.execute(
            select(Friend).where(
                Friend.user_id == user_id,
                Friend.friend_user_id == friend_user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_friend_by_id(self, session: AsyncSession, friend_id: str) -> Friend | None:
        result = await session.execute(select(Friend).where(Friend.id == friend_id))
        return result.scalar_one_or_none()

    async def get_setting(self, session: AsyncSession, friend: Friend) -> FriendSetting | None:
        result = await session.execute(
            select(FriendSetting).where(FriendSetting.friend_id == friend.id)
        )
        return result.scalar_one_or_none()

    async def get_visibility(self, session: AsyncSession, user_id: str) -> SharingVisibility:
        """The user's global preference; users without a row share with friends."""
        result = await session.execute(
            select(UserSharingPreference).where(UserSharingPreference.user_id == user_id)
        )
        pref = result.scalar_one_or_none()
        if pref is None:
            return SharingVisibility.FRIENDS
        return SharingVisibility(pref.allow_sharing)

    async def check_recipient(
        self,
        session: AsyncSession,
        owner_id: str,
        recipient_id: str,
        item_type: ItemType,
    ) -> FriendSetting | None:
        """Verify *recipient_id* accepts *item_type* shares from *owner_id*.

        Returns the recipient's setting row for the owner (``None`` when
        the recipient has not configured one).
        """
        if await self.get_visibility(session, recipient_id) is SharingVisibility.NONE:
            raise ForbiddenError("This user does not accept shares.")

        friend = await self.get_friend(session, recipient_id, owner_id)
        if friend is None:
            raise ForbiddenError("You can only share with users who have added you as a friend.")

        setting = await self.get_setting(session, friend)
        allow_field = ALLOW_FIELDS.get(item_type)
        if setting is not None and allow_field is not None and not getattr(setting, allow_field):
            raise ForbiddenError(f"This user does not accept shared {item_type.value}s.")
        return setting

    def auto_accepts(self, setting: FriendSetting | None, item_type: ItemType) -> bool:
        if setting is None:
            return False
        field_name = AUTO_ACCEPT_FIELDS.get(item_type)
        return field_name is not None and bool(getattr(setting, field_name))

    def recipient_accept_flags(self, setting: FriendSetting | None) -> dict[ItemType, bool]:
        """Per-type auto-accept verdicts for every flagged item type."""
        return {item_type: self.auto_accepts(setting, item_type) for item_type in AUTO_ACCEPT_FIELDS}

    async def auto_share_config(
        self,
        session: AsyncSession,
        owner_id: str,
        friend: Friend,
    ) -> AutoShareConfig | None:
        """Mutual opt-in check for auto-sharing a match with *friend*.

        Needs the owner's ``auto_share_matches`` towards the friend and the
        friend's ``allow_shared_matches`` towards the owner.  Returns
        ``None`` when either side is missing or switched off.
        """
        sharer = await self.get_setting(session, friend)
        if sharer is None or not sharer.auto_share_matches:
            logger.debug("Owner %s does not auto-share with %s", owner_id, friend.friend_user_id)
            return None

        if await self.get_visibility(session, friend.friend_user_id) is SharingVisibility.NONE:
            logger.debug("User %s does not accept shares", friend.friend_user_id)
            return None

        reverse = await self.get_friend(session, friend.friend_user_id, owner_id)
        recipient = await self.get_setting(session, reverse) if reverse is not None else None
        if recipient is None or not recipient.allow_shared_matches:
            logger.debug("User %s does not accept matches from %s", friend.friend_user_id, owner_id)
            return None

        return AutoShareConfig(recipient_id=friend.friend_user_id, sharer=sharer, recipient=recipient)
