"""
SyncCursor model.

Tracks the last fully processed block so event synchronization resumes
where it stopped after a restart.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from memberchain.models.base import Base


class SyncCursor(Base):
    """
    Event synchronization cursor.

    One row per named event stream.
    """

    __tablename__ = "sync_cursor"

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True
    )

    # Last fully processed block
    last_block: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Error tracking
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
