"""
Chain read models.

Composite results assembled by the query service from one or more
contract reads. Amounts are kept both as raw minor units (for
precondition arithmetic) and as display Decimals.
"""

from dataclasses import dataclass
from decimal import Decimal

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class ProviderEndpoint:
    """RPC endpoint and its position in the failover pool."""

    url: str
    position: int


@dataclass(frozen=True)
class PlanInfo:
    """Membership plan as reported by the contract."""

    plan_id: int
    name: str
    price: int
    price_display: Decimal
    members_per_cycle: int
    is_active: bool
    image_uri: str
    current_cycle: int
    members_in_current_cycle: int


@dataclass(frozen=True)
class MemberInfo:
    """Member record plus NFT ownership."""

    address: str
    upline: str
    total_referrals: int
    total_earnings: int
    total_earnings_display: Decimal
    plan_id: int
    cycle_number: int
    registered_at: int
    has_nft: bool

    @property
    def is_registered(self) -> bool:
        """Registered members hold the NFT and have a plan."""
        return self.has_nft and self.plan_id > 0


@dataclass(frozen=True)
class SystemStats:
    """Contract-wide totals (display units)."""

    total_members: int
    total_revenue: Decimal
    total_commission: Decimal
    owner_funds: Decimal
    fee_funds: Decimal
    fund_funds: Decimal
