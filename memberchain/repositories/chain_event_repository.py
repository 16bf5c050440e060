"""
Chain event repository.

Data access layer for applied contract events.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from memberchain.models.chain_event import ChainEventRecord
from memberchain.repositories.base import BaseRepository


class ChainEventRepository(BaseRepository[ChainEventRecord]):
    """Repository for applied chain events."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(ChainEventRecord, session)

    async def is_applied(self, tx_hash: str, event_kind: str) -> bool:
        """
        Check whether an event has already been recorded.

        Args:
            tx_hash: Transaction hash
            event_kind: Event name

        Returns:
            True if a row with this de-duplication key exists
        """
        return await self.exists(tx_hash=tx_hash.lower(), event_kind=event_kind)
