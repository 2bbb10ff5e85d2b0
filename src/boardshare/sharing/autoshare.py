"""AutoSharePolicyEngine — share a newly created match with opted-in friends."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from boardshare.types import AutoShareResult, ItemRef, ItemType, ShareItem

from .records import get_record, list_match_players, require_record

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from boardshare.models.friends import Friend

    from .acceptance import AcceptanceOrchestrator
    from .builder import RequestTreeBuilder
    from .friends import FriendPolicy
    from .requests import RequestTreeStore

logger = logging.getLogger(__name__)


class AutoSharePolicyEngine:
    """Synthesizes and resolves match shares for participants' friend accounts.

    Runs inside the caller's unit of work.  A friend already holding an
    active share of the match is skipped, so calling it twice for the same
    match writes nothing new.
    """

    def __init__(
        self,
        requests: RequestTreeStore,
        builder: RequestTreeBuilder,
        orchestrator: AcceptanceOrchestrator,
        friends: FriendPolicy,
    ) -> None:
        self._requests = requests
        self._builder = builder
        self._orchestrator = orchestrator
        self._friends = friends

    async def _participant_friends(
        self, session: AsyncSession, owner_id: str, match_id: str
    ) -> list[Friend]:
        """Owner's friend rows behind the match's linked players, deduplicated."""
        friends: list[Friend] = []
        seen: set[str] = set()
        for mp in await list_match_players(session, match_id):
            player = await get_record(session, ItemRef(ItemType.PLAYER, mp.player_id), owner_id)
            if player is None or player.linked_friend_id is None:
                continue
            friend = await self._friends.get_friend_by_id(session, player.linked_friend_id)
            if friend is None or friend.user_id != owner_id:
                logger.debug("Player %s links to an unknown friend", player.id)
                continue
            if friend.friend_user_id in seen or friend.friend_user_id == owner_id:
                continue
            seen.add(friend.friend_user_id)
            friends.append(friend)
        return friends

    async def on_match_created(
        self, session: AsyncSession, owner_id: str, match_id: str
    ) -> AutoShareResult:
        """Share *match_id* with every participant's friend who opted in on both sides.

        The synthesized tree is accepted at once when the friend
        auto-accepts matches, and left pending otherwise.
        """
        match_ref = ItemRef(ItemType.MATCH, match_id)
        await require_record(session, match_ref, owner_id)
        result = AutoShareResult(match_id=match_id)

        for friend in await self._participant_friends(session, owner_id, match_id):
            recipient_id = friend.friend_user_id
            config = await self._friends.auto_share_config(session, owner_id, friend)
            if config is None:
                result.skipped.append(recipient_id)
                continue

            existing = await self._requests.find_active_root(
                session, owner_id, recipient_id, match_ref
            )
            if existing is not None:
                logger.debug("Match %s already shared with %s", match_id, recipient_id)
                result.skipped.append(recipient_id)
                continue

            spec = ShareItem(
                match_ref,
                permission=config.permission_for(ItemType.MATCH),
                include_players=config.include_players,
                include_location=config.include_location,
            )
            tree = await self._builder.build(
                session, owner_id, recipient_id, spec, permission_for=config.permission_for
            )

            flags = self._friends.recipient_accept_flags(config.recipient)
            if not flags[ItemType.MATCH]:
                result.pending.append(recipient_id)
                continue

            verdicts = self._orchestrator.policy_verdicts(tree, flags)
            await self._orchestrator.apply(
                session, tree, verdicts, recipient_id=recipient_id, on_demand=False
            )
            result.accepted.append(recipient_id)

        logger.debug(
            "Auto-shared match %s: %d accepted, %d pending, %d skipped",
            match_id,
            len(result.accepted),
            len(result.pending),
            len(result.skipped),
        )
        return result
