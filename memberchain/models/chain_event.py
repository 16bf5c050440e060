"""
ChainEventRecord model.

Stores every applied contract event. The (tx_hash, event_kind) pair is the
de-duplication key: a row existing means the event has already been
applied.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from memberchain.models.base import Base


class ChainEventRecord(Base):
    """
    Applied contract event.

    Attributes:
        id: Primary key
        tx_hash: Transaction hash that emitted the event
        event_kind: Event name (MemberRegistered, PlanUpgraded, ...)
        contract_address: Emitting contract
        block_number: Block the event was included in
        log_index: Position of the log within the block
        member_address: Primary member the event refers to
        payload: Decoded event arguments
        pending_action_matched: Whether a pending action was confirmed
        created_at: When the event was recorded
    """

    __tablename__ = "chain_events"
    __table_args__ = (
        UniqueConstraint("tx_hash", "event_kind", name="uq_chain_events_tx_kind"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Idempotency key
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False, index=True)
    event_kind: Mapped[str] = mapped_column(String(64), nullable=False)

    # Location
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)
    block_number: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )
    log_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Decoded data
    member_address: Mapped[str | None] = mapped_column(
        String(42), nullable=True, index=True
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )

    pending_action_matched: Mapped[bool] = mapped_column(
        default=False, nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ChainEventRecord(id={self.id}, kind={self.event_kind}, "
            f"tx={self.tx_hash[:10]}..., block={self.block_number})>"
        )
