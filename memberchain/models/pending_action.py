"""
PendingAction model.

A submitted but unconfirmed paid state change (registration or upgrade).
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from memberchain.models.base import Base


class PendingActionType(StrEnum):
    """Paid action types."""

    REGISTER = "register"
    UPGRADE = "upgrade"


# Failure reason set by the timeout sweep
TIMEOUT_REASON = "timeout"


class PendingActionStatus(StrEnum):
    """Pending action status enumeration."""

    PENDING = "pending"  # Submitted, waiting for the event
    CONFIRMED = "confirmed"  # Matching event applied
    FAILED = "failed"  # Timed out or reverted


class PendingAction(Base):
    """
    PendingAction entity.

    Created by the transaction orchestrator right after submission, moved
    to confirmed by the event sync engine or to failed by the timeout
    sweep.

    Attributes:
        id: Primary key
        tx_hash: Submitted transaction hash
        wallet_address: Member wallet
        action_type: register/upgrade
        status: pending/confirmed/failed
        from_plan_id: Plan before the action (0 for registration)
        to_plan_id: Target plan
        amount: Paid amount in token minor units
        block_number: Block of the confirming event
        error_message: Failure reason
    """

    __tablename__ = "pending_actions"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Transaction
    tx_hash: Mapped[str] = mapped_column(
        String(66), nullable=False, unique=True, index=True
    )
    wallet_address: Mapped[str] = mapped_column(
        String(42), nullable=False, index=True
    )
    action_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PendingActionStatus.PENDING.value,
        index=True,
    )

    # Plan transition
    from_plan_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    to_plan_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # uint256 minor units do not fit BigInteger
    amount: Mapped[Decimal] = mapped_column(
        Numeric(78, 0), nullable=False, default=Decimal("0")
    )

    # Confirmation
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
        index=True,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    @property
    def is_pending(self) -> bool:
        """Check if action is still waiting for confirmation."""
        return self.status == PendingActionStatus.PENDING.value

    @property
    def awaits_confirmation(self) -> bool:
        """Pending, or failed only because the timeout sweep gave up on it."""
        if self.status == PendingActionStatus.FAILED.value:
            return self.error_message == TIMEOUT_REASON
        return self.is_pending

    def __repr__(self) -> str:
        return (
            f"<PendingAction(id={self.id}, type={self.action_type}, "
            f"status={self.status}, plan={self.from_plan_id}->{self.to_plan_id})>"
        )
