"""Unit tests for the pending action timeout sweep."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from memberchain.services.pending_action_service import PendingActionSweeper


def make_action(tx_hash="0x" + "ab" * 32):
    action = MagicMock()
    action.tx_hash = tx_hash
    action.wallet_address = "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed"
    action.action_type = "register"
    return action


class TestPendingActionSweeper:
    """Test PendingActionSweeper."""

    @pytest.mark.asyncio
    async def test_sweep_uses_timeout(self, mock_ledger):
        sweeper = PendingActionSweeper(mock_ledger, timeout_minutes=30)

        failed = await sweeper.sweep()

        assert failed == []
        mock_ledger.fail_stale_pending_actions.assert_awaited_once_with(
            timedelta(minutes=30), reason="timeout"
        )

    @pytest.mark.asyncio
    async def test_observers_notified_per_action(self, mock_ledger):
        actions = [make_action(), make_action("0x" + "cd" * 32)]
        mock_ledger.fail_stale_pending_actions.return_value = actions
        sweeper = PendingActionSweeper(mock_ledger)
        observer = AsyncMock()
        sweeper.add_observer(observer)

        failed = await sweeper.sweep()

        assert failed == actions
        assert observer.await_count == 2

    @pytest.mark.asyncio
    async def test_observer_error_does_not_stop_sweep(self, mock_ledger):
        mock_ledger.fail_stale_pending_actions.return_value = [make_action(), make_action()]
        sweeper = PendingActionSweeper(mock_ledger)
        failing = AsyncMock(side_effect=RuntimeError("notifier down"))
        sweeper.add_observer(failing)

        failed = await sweeper.sweep()

        assert len(failed) == 2
        assert failing.await_count == 2

    def test_invalid_timeout(self, mock_ledger):
        with pytest.raises(ValueError):
            PendingActionSweeper(mock_ledger, timeout_minutes=0)
