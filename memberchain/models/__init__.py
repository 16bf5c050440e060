"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from memberchain.models.base import Base
from memberchain.models.chain_event import ChainEventRecord
from memberchain.models.pending_action import (
    PendingAction,
    PendingActionStatus,
    PendingActionType,
)
from memberchain.models.sync_cursor import SyncCursor


__all__ = [
    "Base",
    "ChainEventRecord",
    "PendingAction",
    "PendingActionStatus",
    "PendingActionType",
    "SyncCursor",
]
