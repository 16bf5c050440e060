"""
Repositories.

Data access layer for the ledger tables.
"""

from memberchain.repositories.base import BaseRepository
from memberchain.repositories.chain_event_repository import ChainEventRepository
from memberchain.repositories.pending_action_repository import PendingActionRepository
from memberchain.repositories.sync_cursor_repository import SyncCursorRepository


__all__ = [
    "BaseRepository",
    "ChainEventRepository",
    "PendingActionRepository",
    "SyncCursorRepository",
]
