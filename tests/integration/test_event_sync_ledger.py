"""
Integration tests for EventSyncEngine writing to SqlLedger.

Tests cover:
- A registration transaction whose referral payout is logged first
- Confirmation arriving after the timeout sweep failed the action
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from memberchain.models import PendingActionStatus
from memberchain.repositories import PendingActionRepository
from memberchain.services.cache.ttl_cache import TTLCache
from memberchain.services.event_sync.engine import EventSyncEngine
from memberchain.services.ledger import SqlLedger
from memberchain.services.pending_action_service import PendingActionSweeper
from tests.factories import MEMBER_WALLET, UPLINE_WALLET, make_log

TX_HASH = "0x" + "ab" * 32


def registration_logs(block_number=10):
    """Logs of one registration tx: referral payout first, then the registration."""
    return {
        "ReferralPaid": [
            make_log(
                "ReferralPaid",
                {"from": MEMBER_WALLET, "to": UPLINE_WALLET, "amount": 5_000_000},
                block_number,
                0,
                tx_hash=TX_HASH,
            )
        ],
        "MemberRegistered": [
            make_log(
                "MemberRegistered",
                {"member": MEMBER_WALLET, "upline": UPLINE_WALLET, "planId": 1, "cycleNumber": 1},
                block_number,
                1,
                tx_hash=TX_HASH,
            )
        ],
    }


def make_chain(head, logs):
    async def call(read_fn, operation_name="call", scope="global"):
        return logs.get(operation_name.removeprefix("get_logs[").removesuffix("]"), [])

    chain = MagicMock()
    chain.get_block_number = AsyncMock(return_value=head)
    chain.call = AsyncMock(side_effect=call)
    return chain


@pytest.fixture
def ledger(session_maker):
    return SqlLedger(session_maker)


async def record_register(ledger):
    await ledger.record_pending_action(
        tx_hash=TX_HASH,
        wallet_address=MEMBER_WALLET,
        action_type="register",
        from_plan_id=0,
        to_plan_id=1,
        amount=10_000_000,
    )


async def run_engine(ledger, clock, received):
    engine = EventSyncEngine(
        make_chain(head=10, logs=registration_logs()),
        MagicMock(),
        ledger,
        TTLCache(max_size=100),
        filter_delay=0,
        start_block=8,
        clock=clock,
        sleep=clock.sleep,
    )

    async def observer(event, action):
        received.append((event.kind, action is not None))

    engine.add_observer(observer)
    return await engine.run_cycle()


class TestRegistrationTransaction:
    """Test confirmation through the engine and the SQL ledger."""

    @pytest.mark.asyncio
    async def test_registration_event_confirms_action(self, ledger, session_maker, clock):
        await record_register(ledger)
        received = []

        result = await run_engine(ledger, clock, received)

        assert result["success"] is True
        assert result["anomalies"] == 0
        assert received == [("ReferralPaid", False), ("MemberRegistered", True)]
        async with session_maker() as session:
            action = await PendingActionRepository(session).get_by_tx_hash(TX_HASH)
        assert action.status == PendingActionStatus.CONFIRMED.value
        assert action.block_number == 10

    @pytest.mark.asyncio
    async def test_confirmation_after_timeout_sweep(self, ledger, session_maker, clock):
        await record_register(ledger)
        async with session_maker() as session, session.begin():
            action = await PendingActionRepository(session).get_by_tx_hash(TX_HASH)
            action.created_at = datetime.now(UTC) - timedelta(hours=1)
        failed = await PendingActionSweeper(ledger, timeout_minutes=30).sweep()
        assert [item.tx_hash for item in failed] == [TX_HASH]
        received = []

        result = await run_engine(ledger, clock, received)

        assert result["anomalies"] == 0
        assert ("MemberRegistered", True) in received
        async with session_maker() as session:
            action = await PendingActionRepository(session).get_by_tx_hash(TX_HASH)
        assert action.status == PendingActionStatus.CONFIRMED.value
        assert action.error_message is None
