"""
Pending action timeout sweep.

Submitted actions whose confirming event never arrives (reverted or
dropped transactions) are moved to failed after a timeout so the
notification layer can inform the member. The timeout is a heuristic:
if the confirming event shows up later the ledger still confirms the
action.
"""

from collections.abc import Awaitable, Callable
from datetime import timedelta

from loguru import logger

from memberchain.models.pending_action import TIMEOUT_REASON, PendingAction
from memberchain.services.ledger import Ledger
from memberchain.utils.security import mask_address, mask_tx_hash

FailedObserver = Callable[[PendingAction], Awaitable[None]]


class PendingActionSweeper:
    """Fails pending actions older than the configured timeout."""

    def __init__(self, ledger: Ledger, timeout_minutes: int = 30) -> None:
        """
        Initialize sweeper.

        Args:
            ledger: Pending action store
            timeout_minutes: Age after which a pending action is failed
        """
        if timeout_minutes <= 0:
            raise ValueError("timeout_minutes must be positive")

        self.ledger = ledger
        self.timeout = timedelta(minutes=timeout_minutes)
        self._observers: list[FailedObserver] = []
        self.logger = logger.bind(service="PendingActionSweeper")

    def add_observer(self, observer: FailedObserver) -> None:
        """Register a callback invoked for every action moved to failed."""
        self._observers.append(observer)

    async def sweep(self) -> list[PendingAction]:
        """
        Fail timed-out pending actions.

        Returns:
            Actions moved to failed
        """
        failed = await self.ledger.fail_stale_pending_actions(self.timeout, reason=TIMEOUT_REASON)

        for action in failed:
            self.logger.warning(
                f"Pending {action.action_type} {mask_tx_hash(action.tx_hash)} for "
                f"{mask_address(action.wallet_address)} timed out after {self.timeout}"
            )
            for observer in self._observers:
                try:
                    await observer(action)
                except Exception as e:
                    self.logger.exception(f"Failed-action observer error: {e}")

        if failed:
            self.logger.info(f"Marked {len(failed)} pending actions as failed")
        return failed
