"""
Ledger.

Relational store the chain core writes to: applied events (idempotency
keys), pending actions and the sync cursor. The engine and orchestrator
depend on the Ledger protocol; SqlLedger implements it over SQLAlchemy.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Protocol

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from memberchain.models.pending_action import (
    TIMEOUT_REASON,
    PendingAction,
    PendingActionStatus,
)
from memberchain.repositories.chain_event_repository import ChainEventRepository
from memberchain.repositories.pending_action_repository import PendingActionRepository
from memberchain.repositories.sync_cursor_repository import SyncCursorRepository
from memberchain.services.event_sync.events import ACTION_EVENT_KINDS, ChainEvent
from memberchain.utils.security import mask_tx_hash


@dataclass(frozen=True)
class AppliedEvent:
    """Outcome of writing an event to the ledger."""

    recorded: bool
    pending_action: PendingAction | None = None
    action_found: bool = False


class Ledger(Protocol):
    """Storage operations required by the chain core."""

    async def has_event(self, tx_hash: str, event_kind: str) -> bool: ...

    async def apply_event(self, event: ChainEvent) -> AppliedEvent: ...

    async def record_pending_action(
        self,
        tx_hash: str,
        wallet_address: str,
        action_type: str,
        from_plan_id: int,
        to_plan_id: int,
        amount: int,
    ) -> PendingAction: ...

    async def fail_stale_pending_actions(
        self, timeout: timedelta, reason: str = TIMEOUT_REASON
    ) -> list[PendingAction]: ...

    async def load_cursor(self, name: str) -> int | None: ...

    async def save_cursor(self, name: str, block_number: int) -> None: ...

    async def record_cursor_error(self, name: str, error: str) -> None: ...


class SqlLedger:
    """
    SQLAlchemy-backed ledger.

    Each operation runs in its own session and transaction.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        """
        Initialize ledger.

        Args:
            session_maker: Async session factory
        """
        self.session_maker = session_maker

    async def has_event(self, tx_hash: str, event_kind: str) -> bool:
        """Check the idempotency key."""
        async with self.session_maker() as session:
            return await ChainEventRepository(session).is_applied(tx_hash, event_kind)

    async def apply_event(self, event: ChainEvent) -> AppliedEvent:
        """
        Record an event and confirm its pending action atomically.

        The event row is inserted first; a unique violation means another
        writer already applied it and the call is a no-op. Only the event
        kind matching the action type confirms the action, so a referral
        payout logged earlier in the same transaction does not. An action
        the timeout sweep failed is still confirmed by its event.

        Args:
            event: Decoded chain event

        Returns:
            AppliedEvent with the pending action confirmed by this event and
            whether any pending action exists for the transaction
        """
        try:
            async with self.session_maker() as session, session.begin():
                record = await ChainEventRepository(session).create(
                    tx_hash=event.tx_hash.lower(),
                    event_kind=event.kind,
                    contract_address=event.contract_address.lower(),
                    block_number=event.block_number,
                    log_index=event.log_index,
                    member_address=event.member_address,
                    payload=event.payload(),
                )

                pending_repo = PendingActionRepository(session)
                action = await pending_repo.get_by_tx_hash(event.tx_hash)
                confirmed: PendingAction | None = None

                if action is not None:
                    record.pending_action_matched = True
                    if (
                        ACTION_EVENT_KINDS.get(event.kind) == action.action_type
                        and action.awaits_confirmation
                    ):
                        if not action.is_pending:
                            logger.warning(
                                f"[Ledger] {mask_tx_hash(event.tx_hash)} confirmed "
                                f"after {action.error_message}, reopening as confirmed"
                            )
                        confirmed = await pending_repo.update(
                            action,
                            status=PendingActionStatus.CONFIRMED.value,
                            block_number=event.block_number,
                            confirmed_at=datetime.now(UTC),
                            error_message=None,
                        )
        except IntegrityError:
            logger.debug(
                f"[Ledger] {event.kind} {mask_tx_hash(event.tx_hash)} already recorded"
            )
            return AppliedEvent(recorded=False)

        return AppliedEvent(
            recorded=True,
            pending_action=confirmed,
            action_found=action is not None,
        )

    async def record_pending_action(
        self,
        tx_hash: str,
        wallet_address: str,
        action_type: str,
        from_plan_id: int,
        to_plan_id: int,
        amount: int,
    ) -> PendingAction:
        """
        Store a submitted action.

        Returns:
            Created pending action
        """
        async with self.session_maker() as session, session.begin():
            return await PendingActionRepository(session).create(
                tx_hash=tx_hash.lower(),
                wallet_address=wallet_address.lower(),
                action_type=action_type,
                status=PendingActionStatus.PENDING.value,
                from_plan_id=from_plan_id,
                to_plan_id=to_plan_id,
                amount=Decimal(amount),
            )

    async def fail_stale_pending_actions(
        self, timeout: timedelta, reason: str = TIMEOUT_REASON
    ) -> list[PendingAction]:
        """
        Mark pending actions older than timeout as failed.

        Returns:
            Actions moved to failed
        """
        cutoff = datetime.now(UTC) - timeout
        async with self.session_maker() as session, session.begin():
            repo = PendingActionRepository(session)
            stale = await repo.get_stale_pending(cutoff)
            for action in stale:
                await repo.update(
                    action,
                    status=PendingActionStatus.FAILED.value,
                    error_message=reason,
                )
            return stale

    async def load_cursor(self, name: str) -> int | None:
        async with self.session_maker() as session:
            return await SyncCursorRepository(session).get_last_block(name)

    async def save_cursor(self, name: str, block_number: int) -> None:
        async with self.session_maker() as session, session.begin():
            await SyncCursorRepository(session).save_last_block(name, block_number)

    async def record_cursor_error(self, name: str, error: str) -> None:
        """Store the last sync error next to the cursor."""
        async with self.session_maker() as session, session.begin():
            await SyncCursorRepository(session).record_error(name, error)
