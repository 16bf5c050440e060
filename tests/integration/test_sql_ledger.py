"""
Integration tests for SqlLedger on a temporary SQLite database.

Tests cover:
- Event recording and the (tx hash, kind) de-duplication key
- Pending action confirmation by the matching event kind
- Late confirmation of actions the timeout sweep failed
- Timeout sweep of stale pending actions
- Cursor persistence
"""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from memberchain.models import ChainEventRecord, PendingAction, PendingActionStatus, SyncCursor
from memberchain.repositories import ChainEventRepository, PendingActionRepository
from memberchain.services.event_sync.events import decode_log
from memberchain.services.ledger import SqlLedger
from tests.factories import MEMBER_WALLET, UPLINE_WALLET, make_log

TX_HASH = "0x" + "ab" * 32


@pytest.fixture
def ledger(session_maker):
    return SqlLedger(session_maker)


def registered_event(tx_hash=TX_HASH, block_number=10, log_index=0):
    return decode_log(
        make_log(
            "MemberRegistered",
            {"member": MEMBER_WALLET, "upline": UPLINE_WALLET, "planId": 1, "cycleNumber": 2},
            block_number,
            log_index,
            tx_hash=tx_hash,
        )
    )


def referral_event(tx_hash=TX_HASH, amount=2**200, log_index=1):
    return decode_log(
        make_log(
            "ReferralPaid",
            {"from": MEMBER_WALLET, "to": UPLINE_WALLET, "amount": amount},
            10,
            log_index,
            tx_hash=tx_hash,
        )
    )


async def record_register(ledger, tx_hash=TX_HASH):
    return await ledger.record_pending_action(
        tx_hash=tx_hash,
        wallet_address=MEMBER_WALLET,
        action_type="register",
        from_plan_id=0,
        to_plan_id=1,
        amount=10_000_000,
    )


async def backdate(session_maker, tx_hash, hours=1):
    async with session_maker() as session, session.begin():
        action = await PendingActionRepository(session).get_by_tx_hash(tx_hash)
        action.created_at = datetime.now(UTC) - timedelta(hours=hours)


class TestEvents:
    """Test event recording."""

    @pytest.mark.asyncio
    async def test_apply_event_records_row(self, ledger, session_maker):
        applied = await ledger.apply_event(registered_event())

        assert applied.recorded is True
        assert applied.pending_action is None
        assert await ledger.has_event(TX_HASH, "MemberRegistered")

        async with session_maker() as session:
            rows = (await session.execute(select(ChainEventRecord))).scalars().all()
        assert len(rows) == 1
        assert rows[0].member_address == MEMBER_WALLET.lower()
        assert rows[0].payload["plan_id"] == 1
        assert rows[0].pending_action_matched is False

    @pytest.mark.asyncio
    async def test_duplicate_event_not_recorded(self, ledger, session_maker):
        await ledger.apply_event(registered_event())

        applied = await ledger.apply_event(registered_event())

        assert applied.recorded is False
        async with session_maker() as session:
            assert await ChainEventRepository(session).count() == 1

    @pytest.mark.asyncio
    async def test_same_tx_different_kind_recorded(self, ledger):
        await ledger.apply_event(registered_event())

        applied = await ledger.apply_event(referral_event())

        assert applied.recorded is True
        assert await ledger.has_event(TX_HASH, "ReferralPaid")

    @pytest.mark.asyncio
    async def test_large_amount_payload_round_trips(self, ledger, session_maker):
        await ledger.apply_event(referral_event(amount=2**255))

        async with session_maker() as session:
            row = (await session.execute(select(ChainEventRecord))).scalar_one()
        assert int(row.payload["amount"]) == 2**255


class TestPendingActions:
    """Test pending action lifecycle."""

    @pytest.mark.asyncio
    async def test_event_confirms_pending_action(self, ledger, session_maker):
        await record_register(ledger)

        applied = await ledger.apply_event(registered_event(block_number=42))

        assert applied.pending_action is not None
        assert applied.pending_action.status == PendingActionStatus.CONFIRMED.value
        assert applied.pending_action.block_number == 42

        async with session_maker() as session:
            action = await PendingActionRepository(session).get_by_tx_hash(TX_HASH)
            record = (await session.execute(select(ChainEventRecord))).scalar_one()
        assert action.status == PendingActionStatus.CONFIRMED.value
        assert action.confirmed_at is not None
        assert record.pending_action_matched is True

    @pytest.mark.asyncio
    async def test_confirmed_action_not_reconfirmed(self, ledger):
        await record_register(ledger)
        await ledger.apply_event(registered_event())

        applied = await ledger.apply_event(referral_event())

        assert applied.recorded is True
        assert applied.pending_action is None

    @pytest.mark.asyncio
    async def test_referral_before_registration_does_not_confirm(self, ledger, session_maker):
        await record_register(ledger)

        referral = await ledger.apply_event(referral_event(log_index=0))
        registration = await ledger.apply_event(registered_event(log_index=1))

        assert referral.pending_action is None
        assert referral.action_found is True
        assert registration.pending_action is not None
        assert registration.pending_action.status == PendingActionStatus.CONFIRMED.value

        async with session_maker() as session:
            records = (await session.execute(select(ChainEventRecord))).scalars().all()
        assert all(record.pending_action_matched for record in records)

    @pytest.mark.asyncio
    async def test_upgrade_event_does_not_confirm_registration(self, ledger):
        await record_register(ledger)
        upgraded = decode_log(
            make_log(
                "PlanUpgraded",
                {"member": MEMBER_WALLET, "oldPlanId": 1, "newPlanId": 2, "cycleNumber": 1},
                10,
                0,
                tx_hash=TX_HASH,
            )
        )

        applied = await ledger.apply_event(upgraded)

        assert applied.pending_action is None
        assert applied.action_found is True

    @pytest.mark.asyncio
    async def test_late_event_confirms_timed_out_action(self, ledger, session_maker):
        await record_register(ledger)
        await backdate(session_maker, TX_HASH)
        await ledger.fail_stale_pending_actions(timedelta(minutes=30))

        applied = await ledger.apply_event(registered_event(block_number=77))

        assert applied.pending_action is not None
        async with session_maker() as session:
            action = await PendingActionRepository(session).get_by_tx_hash(TX_HASH)
        assert action.status == PendingActionStatus.CONFIRMED.value
        assert action.error_message is None
        assert action.block_number == 77

    @pytest.mark.asyncio
    async def test_reverted_action_stays_failed(self, ledger, session_maker):
        await record_register(ledger)
        await backdate(session_maker, TX_HASH)
        await ledger.fail_stale_pending_actions(timedelta(minutes=30), reason="reverted")

        applied = await ledger.apply_event(registered_event())

        assert applied.pending_action is None
        assert applied.action_found is True
        async with session_maker() as session:
            action = await PendingActionRepository(session).get_by_tx_hash(TX_HASH)
        assert action.status == PendingActionStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_stale_actions_failed(self, ledger, session_maker):
        await record_register(ledger)
        fresh_tx = "0x" + "cd" * 32
        await record_register(ledger, fresh_tx)

        await backdate(session_maker, TX_HASH)

        failed = await ledger.fail_stale_pending_actions(timedelta(minutes=30))

        assert [action.tx_hash for action in failed] == [TX_HASH]
        async with session_maker() as session:
            rows = {
                action.tx_hash: action
                for action in (await session.execute(select(PendingAction))).scalars()
            }
        assert rows[TX_HASH].status == PendingActionStatus.FAILED.value
        assert rows[TX_HASH].error_message == "timeout"
        assert rows[fresh_tx].status == PendingActionStatus.PENDING.value


class TestCursor:
    """Test sync cursor persistence."""

    @pytest.mark.asyncio
    async def test_cursor_round_trip(self, ledger):
        assert await ledger.load_cursor("membership_events") is None

        await ledger.save_cursor("membership_events", 100)
        await ledger.save_cursor("membership_events", 105)

        assert await ledger.load_cursor("membership_events") == 105
        assert await ledger.load_cursor("other_stream") is None

    @pytest.mark.asyncio
    async def test_record_error_cleared_on_save(self, ledger, session_maker):
        await ledger.save_cursor("membership_events", 100)
        await ledger.record_cursor_error("membership_events", "rate limited")

        async with session_maker() as session:
            cursor = (await session.execute(select(SyncCursor))).scalar_one()
        assert cursor.last_error == "rate limited"
        assert cursor.error_count == 1

        await ledger.save_cursor("membership_events", 101)
        async with session_maker() as session:
            cursor = (await session.execute(select(SyncCursor))).scalar_one()
        assert cursor.last_error is None
        assert cursor.last_block == 101
