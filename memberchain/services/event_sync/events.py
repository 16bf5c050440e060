"""
Contract event variants.

Raw web3 logs are decoded once, at the boundary, into a closed set of
typed events. Logs with an unrecognised name become UnknownEvent so new
contract events never break ingestion.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from web3 import Web3

from memberchain.models.pending_action import PendingActionType


class EventKind(StrEnum):
    """Known contract event names."""

    MEMBER_REGISTERED = "MemberRegistered"
    PLAN_UPGRADED = "PlanUpgraded"
    REFERRAL_PAID = "ReferralPaid"


@dataclass(frozen=True)
class ChainEvent:
    """Common fields of every decoded event."""

    KIND: ClassVar[str] = ""

    tx_hash: str
    block_number: int
    log_index: int
    contract_address: str

    @property
    def kind(self) -> str:
        return self.KIND

    @property
    def sort_key(self) -> tuple[int, int]:
        """Total application order: block, then log position."""
        return (self.block_number, self.log_index)

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.tx_hash, self.kind)

    @property
    def member_address(self) -> str | None:
        """Member primarily affected by the event."""
        return None

    def involved_addresses(self) -> tuple[str, ...]:
        """Addresses whose cached member info becomes stale."""
        return ()

    def payload(self) -> dict[str, Any]:
        """JSON-safe event arguments (uint256 values as strings)."""
        return {}


@dataclass(frozen=True)
class MemberRegistered(ChainEvent):
    KIND: ClassVar[str] = EventKind.MEMBER_REGISTERED.value

    member: str
    upline: str
    plan_id: int
    cycle_number: int

    @property
    def member_address(self) -> str:
        return self.member

    def involved_addresses(self) -> tuple[str, ...]:
        return (self.member, self.upline)

    def payload(self) -> dict[str, Any]:
        return {
            "member": self.member,
            "upline": self.upline,
            "plan_id": self.plan_id,
            "cycle_number": self.cycle_number,
        }


@dataclass(frozen=True)
class PlanUpgraded(ChainEvent):
    KIND: ClassVar[str] = EventKind.PLAN_UPGRADED.value

    member: str
    old_plan_id: int
    new_plan_id: int
    cycle_number: int

    @property
    def member_address(self) -> str:
        return self.member

    def involved_addresses(self) -> tuple[str, ...]:
        return (self.member,)

    def payload(self) -> dict[str, Any]:
        return {
            "member": self.member,
            "old_plan_id": self.old_plan_id,
            "new_plan_id": self.new_plan_id,
            "cycle_number": self.cycle_number,
        }


@dataclass(frozen=True)
class ReferralPaid(ChainEvent):
    KIND: ClassVar[str] = EventKind.REFERRAL_PAID.value

    from_address: str
    to_address: str
    amount: int

    @property
    def member_address(self) -> str:
        return self.to_address

    def involved_addresses(self) -> tuple[str, ...]:
        return (self.from_address, self.to_address)

    def payload(self) -> dict[str, Any]:
        return {
            "from": self.from_address,
            "to": self.to_address,
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class UnknownEvent(ChainEvent):
    """Event with a name this version does not model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return self.name

    def payload(self) -> dict[str, Any]:
        return {key: _json_safe(value) for key, value in self.args.items()}


# Event kind that confirms each pending action type
ACTION_EVENT_KINDS = {
    EventKind.MEMBER_REGISTERED.value: PendingActionType.REGISTER.value,
    EventKind.PLAN_UPGRADED.value: PendingActionType.UPGRADE.value,
}


def _json_safe(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if value is None or isinstance(value, str):
        return value
    return str(value)


def _address(value: Any) -> str:
    return str(value).lower()


def _hex(value: Any) -> str:
    if isinstance(value, str):
        text = value.lower()
        return text if text.startswith("0x") else f"0x{text}"
    return Web3.to_hex(value).lower()


def decode_log(log: Any) -> ChainEvent:
    """
    Decode a web3 event log into a typed event.

    Args:
        log: Processed log (AttributeDict or mapping) with event, args,
            transactionHash, blockNumber, logIndex and address

    Returns:
        Typed event variant, UnknownEvent for unmodelled names or
        argument shapes

    Raises:
        ValueError: If the log lacks its location fields
    """
    try:
        common = {
            "tx_hash": _hex(log["transactionHash"]),
            "block_number": int(log["blockNumber"]),
            "log_index": int(log["logIndex"]),
            "contract_address": _address(log["address"]),
        }
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed event log: {e}") from e

    name = log.get("event") or ""
    args = dict(log.get("args") or {})

    try:
        if name == EventKind.MEMBER_REGISTERED:
            return MemberRegistered(
                **common,
                member=_address(args["member"]),
                upline=_address(args["upline"]),
                plan_id=int(args["planId"]),
                cycle_number=int(args["cycleNumber"]),
            )
        if name == EventKind.PLAN_UPGRADED:
            return PlanUpgraded(
                **common,
                member=_address(args["member"]),
                old_plan_id=int(args["oldPlanId"]),
                new_plan_id=int(args["newPlanId"]),
                cycle_number=int(args["cycleNumber"]),
            )
        if name == EventKind.REFERRAL_PAID:
            return ReferralPaid(
                **common,
                from_address=_address(args["from"]),
                to_address=_address(args["to"]),
                amount=int(args["amount"]),
            )
    except (KeyError, TypeError, ValueError):
        return UnknownEvent(**common, name=name or "Unknown", args=args)

    return UnknownEvent(**common, name=name or "Unknown", args=args)
