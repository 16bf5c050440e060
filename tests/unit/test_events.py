"""Unit tests for contract event decoding."""

import pytest

from memberchain.services.event_sync.events import (
    MemberRegistered,
    PlanUpgraded,
    ReferralPaid,
    UnknownEvent,
    decode_log,
)
from tests.factories import MEMBER_WALLET, MEMBERSHIP_ADDRESS, UPLINE_WALLET, make_log


class TestDecodeLog:
    """Test decode_log variants."""

    def test_member_registered(self):
        log = make_log(
            "MemberRegistered",
            {"member": MEMBER_WALLET, "upline": UPLINE_WALLET, "planId": 1, "cycleNumber": 3},
            block_number=10,
            log_index=2,
        )

        event = decode_log(log)

        assert isinstance(event, MemberRegistered)
        assert event.kind == "MemberRegistered"
        assert event.member == MEMBER_WALLET.lower()
        assert event.upline == UPLINE_WALLET.lower()
        assert event.plan_id == 1
        assert event.sort_key == (10, 2)
        assert event.contract_address == MEMBERSHIP_ADDRESS.lower()
        assert event.involved_addresses() == (MEMBER_WALLET.lower(), UPLINE_WALLET.lower())

    def test_plan_upgraded(self):
        log = make_log(
            "PlanUpgraded",
            {"member": MEMBER_WALLET, "oldPlanId": 2, "newPlanId": 3, "cycleNumber": 1},
            block_number=11,
            log_index=0,
        )

        event = decode_log(log)

        assert isinstance(event, PlanUpgraded)
        assert (event.old_plan_id, event.new_plan_id) == (2, 3)
        assert event.member_address == MEMBER_WALLET.lower()

    def test_referral_paid_payload_is_json_safe(self):
        amount = 2**200
        log = make_log(
            "ReferralPaid",
            {"from": MEMBER_WALLET, "to": UPLINE_WALLET, "amount": amount},
            block_number=12,
            log_index=4,
        )

        event = decode_log(log)

        assert isinstance(event, ReferralPaid)
        assert event.member_address == UPLINE_WALLET.lower()
        assert event.payload()["amount"] == str(amount)

    def test_bytes_tx_hash_normalized(self):
        log = make_log("ReferralPaid", {"from": MEMBER_WALLET, "to": UPLINE_WALLET, "amount": 1}, 1, 0)
        log["transactionHash"] = bytes.fromhex("AB" * 32)

        event = decode_log(log)

        assert event.tx_hash == "0x" + "ab" * 32
        assert event.dedup_key == ("0x" + "ab" * 32, "ReferralPaid")

    def test_unknown_event_name(self):
        log = make_log("OwnershipTransferred", {"newOwner": UPLINE_WALLET, "ts": 5}, 13, 1)

        event = decode_log(log)

        assert isinstance(event, UnknownEvent)
        assert event.kind == "OwnershipTransferred"
        assert event.payload() == {"newOwner": UPLINE_WALLET, "ts": "5"}

    def test_malformed_args_become_unknown(self):
        log = make_log("MemberRegistered", {"member": MEMBER_WALLET}, 14, 0)

        event = decode_log(log)

        assert isinstance(event, UnknownEvent)
        assert event.kind == "MemberRegistered"

    def test_missing_location_raises(self):
        log = make_log("MemberRegistered", {}, 15, 0)
        del log["blockNumber"]

        with pytest.raises(ValueError):
            decode_log(log)
