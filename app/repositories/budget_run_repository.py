"""
BudgetRun repository.

Data access layer for BudgetRun model.
"""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.budget_run import BudgetRun
from app.repositories.base import BaseRepository


class BudgetRunRepository(BaseRepository[BudgetRun]):
    """Budget run repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize budget run repository."""
        super().__init__(BudgetRun, session)

    async def get_by_key(self, run_key: str) -> BudgetRun | None:
        """
        Get run by its idempotency key.

        Always re-reads the row: distributed_amount is only ever changed by
        atomic SQL updates that bypass the identity map.
        """
        stmt = (
            select(BudgetRun)
            .where(BudgetRun.run_key == run_key)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_distributed(self, run_id: int, amount: Decimal) -> None:
        """
        Atomically add a payout to distributed_amount.

        Args:
            run_id: Run ID
            amount: Payout amount
        """
        stmt = (
            update(BudgetRun)
            .where(BudgetRun.id == run_id)
            .values(distributed_amount=BudgetRun.distributed_amount + amount)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
