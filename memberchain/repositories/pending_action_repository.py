"""
Pending action repository.

Data access layer for submitted paid actions.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from memberchain.models.pending_action import PendingAction, PendingActionStatus
from memberchain.repositories.base import BaseRepository


class PendingActionRepository(BaseRepository[PendingAction]):
    """Repository for pending actions."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(PendingAction, session)

    async def get_by_tx_hash(self, tx_hash: str) -> PendingAction | None:
        """Get action by submitted transaction hash."""
        return await self.get_by(tx_hash=tx_hash.lower())

    async def get_stale_pending(self, older_than: datetime) -> list[PendingAction]:
        """
        Get pending actions submitted before a cutoff.

        Args:
            older_than: Submission time cutoff

        Returns:
            Stale pending actions
        """
        stmt = select(PendingAction).where(
            PendingAction.status == PendingActionStatus.PENDING.value,
            PendingAction.created_at < older_than,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
