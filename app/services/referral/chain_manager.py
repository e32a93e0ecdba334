"""
Referral chain management module.

Creates the bounded-depth ancestor chain for a newly referred user and
toggles individual edges.
"""

from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.reward_policy import RewardPolicy
from app.models.referral import ReferralEdge
from app.repositories.referral_repository import ReferralEdgeRepository
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.base_service import BaseService, transaction
from app.utils.datetime_utils import as_utc, utc_now
from app.utils.exceptions import (
    AlreadyChainedError,
    CircularReferralError,
    ProfileNotFoundError,
    ReactivationWindowExpiredError,
    ReferralNotFoundError,
    SelfReferralError,
)


class ReferralChainManager(BaseService):
    """Manages referral chain operations."""

    def __init__(
        self, session: AsyncSession, policy: RewardPolicy | None = None
    ) -> None:
        """Initialize chain manager."""
        super().__init__(session, policy)
        self.edge_repo = ReferralEdgeRepository(session)
        self.profile_repo = VolunteerProfileRepository(session)

    async def walk_referrers(self, user_id: int) -> list[int]:
        """
        Follow referrer_id pointers upward from a user.

        The walk stops at a profile without referrer, on the first revisit
        of a node, or after policy.ancestry_scan_limit hops.

        Args:
            user_id: Starting user (not included in the result)

        Returns:
            Ancestor user IDs, nearest first
        """
        ancestry: list[int] = []
        visited = {user_id}
        current = user_id
        for _ in range(self.policy.ancestry_scan_limit):
            referrer_id = (await self.profile_repo.get_referrer_ids([current])).get(current)
            if referrer_id is None or referrer_id in visited:
                break
            ancestry.append(referrer_id)
            visited.add(referrer_id)
            current = referrer_id
        return ancestry

    @transaction
    async def create_referral_chain(
        self, referrer_id: int, referred_id: int
    ) -> list[ReferralEdge]:
        """
        Create referral edges for a newly referred user.

        Walks strictly via referrer_id pointers from the direct referrer,
        creating one edge per level up to max_referral_depth. A shorter
        ancestry simply yields fewer edges. All edges are written in one
        transaction together with referred.referrer_id.

        Args:
            referrer_id: Direct referrer user ID
            referred_id: Newly referred user ID

        Returns:
            Created edges, level 1 first

        Raises:
            SelfReferralError: referrer_id == referred_id
            ProfileNotFoundError: Either profile is missing
            AlreadyChainedError: The referred user was already referred
            CircularReferralError: The referrer descends from the referred user
        """
        if referrer_id == referred_id:
            raise SelfReferralError(user_id=referred_id)

        referred = await self.profile_repo.get_by_id(referred_id, for_update=True)
        if not referred:
            raise ProfileNotFoundError(user_id=referred_id)
        referrer = await self.profile_repo.get_by_id(referrer_id)
        if not referrer:
            raise ProfileNotFoundError(user_id=referrer_id)

        if referred.referrer_id is not None or await self.edge_repo.has_edges_for(referred_id):
            raise AlreadyChainedError(user_id=referred_id)

        ancestry = [referrer_id, *await self.walk_referrers(referrer_id)]
        if referred_id in ancestry:
            self.logger.warning(
                "Referral loop detected",
                extra={
                    "referred_id": referred_id,
                    "referrer_id": referrer_id,
                    "chain_ids": ancestry[: self.policy.max_referral_depth + 1],
                },
            )
            raise CircularReferralError(
                referrer_id=referrer_id, referred_id=referred_id
            )

        edges: list[ReferralEdge] = []
        for index, ancestor_id in enumerate(ancestry[: self.policy.max_referral_depth]):
            level = index + 1
            edge = ReferralEdge(
                referrer_id=ancestor_id,
                referred_id=referred_id,
                level=level,
                commission_rate=self.policy.rate_for_level(level),
                active=True,
            )
            self.session.add(edge)
            edges.append(edge)

        referred.referrer_id = referrer_id

        try:
            await self.session.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent chain creation for the same user
            raise AlreadyChainedError(user_id=referred_id) from e

        self.logger.info(
            "Referral chain created",
            extra={
                "referred_id": referred_id,
                "referrer_id": referrer_id,
                "levels_created": len(edges),
            },
        )
        return edges

    async def create_referral_chain_by_code(
        self, referral_code: str, referred_id: int
    ) -> list[ReferralEdge]:
        """
        Resolve a referral code and create the chain.

        Raises:
            ProfileNotFoundError: Unknown referral code
            (plus everything create_referral_chain raises)
        """
        referrer = None
        if referral_code and referral_code.strip():
            referrer = await self.profile_repo.get_by_referral_code(referral_code)
        if not referrer:
            raise ProfileNotFoundError(
                "Unknown referral code", referral_code=referral_code
            )
        return await self.create_referral_chain(referrer.user_id, referred_id)

    @transaction
    async def deactivate(self, edge_id: int) -> ReferralEdge:
        """
        Stop paying commission on an edge.

        Raises:
            ReferralNotFoundError: Unknown edge
        """
        edge = await self.edge_repo.get_by_id(edge_id, for_update=True)
        if not edge:
            raise ReferralNotFoundError(edge_id=edge_id)
        if edge.active:
            edge.active = False
            await self.session.flush()
            self.logger.info(
                "Referral edge deactivated",
                extra={"edge_id": edge_id, "referred_id": edge.referred_id},
            )
        return edge

    @transaction
    async def reactivate(self, edge_id: int) -> ReferralEdge:
        """
        Resume paying commission on an edge.

        Allowed only if the referred user was active within the
        reactivation window. total_commission_paid is kept as is.

        Raises:
            ReferralNotFoundError: Unknown edge
            ReactivationWindowExpiredError: Referred user inactive too long
        """
        edge = await self.edge_repo.get_by_id(edge_id, for_update=True)
        if not edge:
            raise ReferralNotFoundError(edge_id=edge_id)
        if edge.active:
            return edge

        referred = await self.profile_repo.get_by_id(edge.referred_id)
        last_activity = as_utc(referred.last_activity_at) if referred else None
        cutoff = utc_now() - timedelta(days=self.policy.reactivation_window_days)
        if last_activity is None or last_activity < cutoff:
            raise ReactivationWindowExpiredError(
                edge_id=edge_id, referred_id=edge.referred_id
            )

        edge.active = True
        await self.session.flush()
        self.logger.info(
            "Referral edge reactivated",
            extra={"edge_id": edge_id, "referred_id": edge.referred_id},
        )
        return edge
