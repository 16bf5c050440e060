"""
Sync cursor repository.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from memberchain.models.sync_cursor import SyncCursor
from memberchain.repositories.base import BaseRepository


class SyncCursorRepository(BaseRepository[SyncCursor]):
    """Repository for event synchronization cursors."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(SyncCursor, session)

    async def get_last_block(self, name: str) -> int | None:
        """
        Get last processed block for a stream.

        Returns:
            Block number or None if the stream has never been synced
        """
        cursor = await self.get_by(name=name)
        return cursor.last_block if cursor else None

    async def save_last_block(self, name: str, block_number: int) -> SyncCursor:
        """
        Persist last processed block, creating the row on first use.

        Args:
            name: Stream name
            block_number: Last fully processed block

        Returns:
            Updated cursor row
        """
        cursor = await self.get_by(name=name)
        if cursor is None:
            return await self.create(name=name, last_block=block_number)
        return await self.update(cursor, last_block=block_number, last_error=None)

    async def record_error(self, name: str, error: str) -> None:
        """Store last error for a stream (for diagnostics)."""
        cursor = await self.get_by(name=name)
        if cursor is None:
            return
        await self.update(
            cursor,
            last_error=error[:1000],
            error_count=cursor.error_count + 1,
        )
