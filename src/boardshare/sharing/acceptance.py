"""AcceptanceOrchestrator — resolve a request tree into grants in one unit of work.

Decisions are validated and links checked before anything is written.
The root row is then locked, nodes are processed in dependency order
(games, locations and players first, then scoresheets, matches, match
players) and every accepted node is materialized.  Any exception leaves
the caller's transaction to be rolled back as a whole.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from boardshare.config import is_expired
from boardshare.exceptions import (
    ConflictError,
    ForbiddenError,
    InternalInvariantViolation,
    InvalidDecisionError,
    NotFoundError,
)
from boardshare.types import ItemRef, ItemType, ShareStatus

from .registry import kind_of

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from boardshare.models.grants import GrantBase
    from boardshare.models.requests import ShareRequestBase
    from boardshare.types import Decision

    from .linking import LinkingResolver
    from .materializer import GrantMaterializer
    from .requests import RequestTree, RequestTreeStore

logger = logging.getLogger(__name__)


@dataclass
class AcceptanceOutcome:
    """What one acceptance call wrote.

    Attributes:
        root_grant: Grant materialized for the root request.
        accepted: Ids of requests moved to ``accepted``.
        rejected: Ids of requests moved to ``rejected``.
        grants: Grant per accepted request id.
    """

    root_grant: GrantBase
    accepted: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    grants: dict[str, GrantBase] = field(default_factory=dict)


def node_ref(node: ShareRequestBase) -> ItemRef:
    return ItemRef(ItemType(node.item_type), node.item_id)


def follows_parent(node: ShareRequestBase, parent: ShareRequestBase) -> bool:
    """Whether an undecided *node* takes its parent's verdict.

    True for derived items of a match (its scoresheet and participant
    rows) and for items the parent cannot be granted without, such as the
    game under a match root.
    """
    if kind_of(node.item_type).derived and parent.item_type == ItemType.MATCH.value:
        return True
    return _required_by(node, parent)


def _required_by(node: ShareRequestBase, parent: ShareRequestBase) -> bool:
    return any(
        link.required and link.item_type.value == node.item_type
        for link in kind_of(parent.item_type).parents
    )


def _depends_on(node: ShareRequestBase, parent: ShareRequestBase) -> bool:
    """Whether *node* cannot be granted without its tree parent's item."""
    return any(
        link.required and link.item_type.value == parent.item_type
        for link in kind_of(node.item_type).parents
    )


def _cascade(
    tree: RequestTree,
    root_verdict: bool,
    choose: Callable[[ShareRequestBase, bool], bool | None],
) -> dict[str, bool]:
    """Assign a verdict to every node, parents before children.

    *choose* receives the node and its parent's verdict and returns the
    node's own verdict, or ``None`` when undecided.  An undecided node
    under a rejected parent is rejected; under an accepted parent it
    follows the parent when ``follows_parent`` holds and rejects otherwise.
    """
    verdicts: dict[str, bool] = {}
    for node in tree.walk():
        parent = tree.parent(node)
        if parent is None:
            verdicts[node.id] = root_verdict
            continue
        parent_verdict = verdicts[parent.id]
        chosen = choose(node, parent_verdict)
        if chosen is None:
            chosen = parent_verdict and follows_parent(node, parent)
        verdicts[node.id] = chosen
    return verdicts


class AcceptanceOrchestrator:
    """Applies accept/reject decisions to a share request tree."""

    def __init__(
        self,
        requests: RequestTreeStore,
        materializer: GrantMaterializer,
        linking: LinkingResolver,
    ) -> None:
        self._requests = requests
        self._materializer = materializer
        self._linking = linking

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_for_recipient(
        self,
        session: AsyncSession,
        request_id: str,
        recipient_id: str,
        *,
        token: str | None = None,
    ) -> RequestTree:
        """Load a pending, unexpired root addressed to *recipient_id*.

        Public links (no recipient yet) are only visible with their token.
        """
        root = await self._requests.get(session, request_id)
        if root is None or root.parent_share_id is not None:
            raise NotFoundError("Share request not found.")
        if root.shared_with_id is None:
            if token is None or token != root.token:
                raise NotFoundError("Share request not found.")
            if root.owner_id == recipient_id:
                raise ForbiddenError("You cannot accept your own share.")
        elif root.shared_with_id != recipient_id:
            raise NotFoundError("Share request not found.")

        if root.status == ShareStatus.ACCEPTED.value:
            raise ConflictError("This has already been accepted.")
        if root.status != ShareStatus.PENDING.value:
            raise ConflictError(f"This share has already been {root.status}.")
        if is_expired(root.expires_at):
            raise ForbiddenError("This share has expired.")

        return await self._requests.load_tree(session, root.id)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def resolve_decisions(self, tree: RequestTree, decisions: Iterable[Decision]) -> dict[str, bool]:
        """Turn a recipient's explicit decisions into a verdict per node.

        Accepting the tree accepts the root; an explicit rejection of the
        root is refused (use reject instead).  Explicit decisions stand on
        their own; a rejected parent only rejects undecided children, and a
        child that cannot exist without a rejected parent is refused.
        Undecided optional children are rejected.  Each game node whose
        scoresheet children are in play needs at least one of them accepted
        explicitly.
        """
        explicit: dict[str, bool] = {}
        for decision in decisions:
            if decision.request_id not in tree:
                raise NotFoundError(f"Share request {decision.request_id} not found.")
            explicit[decision.request_id] = decision.accept

        if explicit.get(tree.root.id) is False:
            raise InvalidDecisionError("The shared item itself must be accepted; reject the share instead.")

        verdicts = _cascade(tree, True, lambda node, _: explicit.get(node.id))

        for node in tree.walk():
            parent = tree.parent(node)
            if parent is None:
                continue
            if verdicts[parent.id]:
                if _required_by(node, parent) and explicit.get(node.id) is False:
                    raise InvalidDecisionError(
                        f"The {node.item_type} is required by the accepted {parent.item_type}."
                    )
            elif verdicts[node.id] and _depends_on(node, parent):
                raise InvalidDecisionError(
                    f"The {node.item_type} cannot be accepted without its {parent.item_type}."
                )

        for node in tree.walk():
            if node.item_type != ItemType.GAME.value or not verdicts[node.id]:
                continue
            sheets = [
                child
                for child in tree.child_nodes(node.id)
                if child.item_type == ItemType.SCORESHEET.value
            ]
            if sheets and not any(explicit.get(s.id) is True for s in sheets):
                raise InvalidDecisionError("At least one scoresheet must be accepted.")

        return verdicts

    def policy_verdicts(self, tree: RequestTree, flags: Mapping[ItemType, bool]) -> dict[str, bool]:
        """Verdicts from auto-accept flags; types without a flag follow their parent."""
        root_verdict = flags.get(ItemType(tree.root.item_type), False)

        def choose(node: ShareRequestBase, parent_verdict: bool) -> bool | None:
            parent = tree.parent(node)
            if not parent_verdict or (parent is not None and follows_parent(node, parent)):
                return None
            return flags.get(ItemType(node.item_type), True)

        return _cascade(tree, root_verdict, choose)

    async def validate_links(
        self,
        session: AsyncSession,
        tree: RequestTree,
        verdicts: Mapping[str, bool],
        decisions: Iterable[Decision],
        recipient_id: str,
    ) -> dict[str, str]:
        """Check every ``link_to`` before any write. Returns request id → local id."""
        links: dict[str, str] = {}
        for decision in decisions:
            if decision.link_to is None:
                continue
            node = tree.nodes[decision.request_id]
            if not verdicts[node.id]:
                raise InvalidDecisionError("Only accepted items can be linked.")
            await self._linking.verify_local_item(
                session, ItemType(node.item_type), decision.link_to, recipient_id
            )
            links[node.id] = decision.link_to
        return links

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def apply(
        self,
        session: AsyncSession,
        tree: RequestTree,
        verdicts: Mapping[str, bool],
        *,
        recipient_id: str,
        links: Mapping[str, str] | None = None,
        on_demand: bool = True,
    ) -> AcceptanceOutcome:
        """Lock the root, then materialize or reject every pending node."""
        links = links or {}
        await self._requests.lock_root(session, tree.root)
        if tree.root.shared_with_id is None:
            await self._requests.claim(session, tree, recipient_id)

        blocked = {node_ref(n) for n in tree.nodes.values() if not verdicts[n.id]}
        accepted: list[str] = []
        rejected: list[str] = []
        grants: dict[str, GrantBase] = {}

        for node in tree.in_dependency_order():
            if node.status != ShareStatus.PENDING.value:
                continue
            if not verdicts[node.id]:
                await self._requests.set_status(session, node, ShareStatus.REJECTED)
                rejected.append(node.id)
                continue

            grant = await self._materializer.materialize(
                session,
                node_ref(node),
                node.owner_id,
                recipient_id,
                node.permission,
                on_demand=on_demand,
                blocked=blocked,
            )
            grants[node.id] = grant
            await self._requests.set_status(session, node, ShareStatus.ACCEPTED)
            accepted.append(node.id)
            if node.id in links:
                await self._linking.apply(session, ItemType(node.item_type), grant, links[node.id])

        root_grant = grants.get(tree.root.id)
        if root_grant is None:
            raise InternalInvariantViolation(
                f"Accepting share request {tree.root.id} produced no root grant."
            )
        logger.debug(
            "Share %s resolved: %d accepted, %d rejected",
            tree.root.id,
            len(accepted),
            len(rejected),
        )
        return AcceptanceOutcome(
            root_grant=root_grant, accepted=accepted, rejected=rejected, grants=grants
        )

    async def accept(
        self,
        session: AsyncSession,
        request_id: str,
        recipient_id: str,
        decisions: Iterable[Decision] = (),
        *,
        token: str | None = None,
    ) -> AcceptanceOutcome:
        """Accept the tree rooted at *request_id* with per-node *decisions*."""
        decisions = list(decisions)
        tree = await self.load_for_recipient(session, request_id, recipient_id, token=token)
        verdicts = self.resolve_decisions(tree, decisions)
        links = await self.validate_links(session, tree, verdicts, decisions, recipient_id)
        return await self.apply(
            session, tree, verdicts, recipient_id=recipient_id, links=links, on_demand=True
        )

    async def reject(self, session: AsyncSession, request_id: str, recipient_id: str) -> RequestTree:
        """Reject the whole tree rooted at *request_id*."""
        root = await self._requests.get(session, request_id)
        if root is None or root.parent_share_id is not None or root.shared_with_id != recipient_id:
            raise NotFoundError("Share request not found.")
        if root.status != ShareStatus.PENDING.value:
            raise ConflictError(f"This share has already been {root.status}.")

        tree = await self._requests.load_tree(session, root.id)
        await self._requests.lock_root(session, tree.root)
        for node in tree.walk():
            if node.status == ShareStatus.PENDING.value:
                await self._requests.set_status(session, node, ShareStatus.REJECTED)
        return tree
