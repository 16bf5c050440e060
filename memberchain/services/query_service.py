"""
Query Service.

Cached, rate-limited read accessors over the membership contract and the
payment token. Every accessor returns None on failure and logs the cause;
read errors never propagate to presentation code.
"""

from collections.abc import Callable
from decimal import Decimal
from typing import TypeVar

from eth_utils import to_checksum_address
from loguru import logger
from web3 import Web3
from web3.exceptions import Web3Exception

from memberchain.config.constants import (
    CACHE_KEY_MEMBER,
    CACHE_KEY_PLAN,
    CACHE_KEY_PLAN_COUNT,
    CACHE_KEY_PLAN_CYCLE,
    CACHE_KEY_SYSTEM_STATS,
    CACHE_KEY_TOKEN_DECIMALS,
    CACHE_TTL_MEMBER_INFO,
    CACHE_TTL_PLAN_COUNT,
    CACHE_TTL_PLAN_CYCLE,
    CACHE_TTL_PLAN_INFO,
    CACHE_TTL_SYSTEM_STATS,
    CACHE_TTL_TOKEN_DECIMALS,
    DEFAULT_TOKEN_DECIMALS,
)
from memberchain.services.blockchain.chain_client import ChainClient
from memberchain.services.blockchain.contract_manager import ContractManager
from memberchain.services.blockchain.exceptions import BlockchainError
from memberchain.services.blockchain.types import MemberInfo, PlanInfo, SystemStats
from memberchain.services.cache.ttl_cache import TTLCache
from memberchain.utils.formatting import format_token_amount
from memberchain.utils.security import mask_address

T = TypeVar("T")

# Expected failures of a single read
READ_ERRORS = (BlockchainError, Web3Exception, ValueError)


class QueryService:
    """
    Cached chain reads.

    Cache TTLs:
    - plan static data: 1 hour
    - plan cycle counters: 5 minutes
    - member info: 5 minutes (invalidated on matching events)
    - system stats: 10 minutes
    - token decimals: 24 hours
    """

    def __init__(
        self,
        chain: ChainClient,
        contracts: ContractManager,
        cache: TTLCache,
    ) -> None:
        """
        Initialize query service.

        Args:
            chain: Rate-limited chain client
            contracts: Contract bindings
            cache: Shared TTL cache
        """
        self.chain = chain
        self.contracts = contracts
        self.cache = cache
        self.logger = logger.bind(service="QueryService")

    async def _read(self, read_fn: Callable[[Web3], T], operation_name: str) -> T | None:
        """Run one read, returning None on failure."""
        try:
            return await self.chain.call(read_fn, operation_name)
        except READ_ERRORS as e:
            self.logger.warning(f"[{operation_name}] Read failed: {e}")
            return None
        except Exception as e:
            self.logger.exception(f"[{operation_name}] Unexpected read error: {e}")
            return None

    async def get_token_decimals(self) -> int:
        """
        Get payment token decimals (cached for a day).

        Falls back to the default precision without caching it when the
        read fails.
        """
        cached = self.cache.get(CACHE_KEY_TOKEN_DECIMALS)
        if cached is not None:
            return cached

        decimals = await self._read(
            lambda w3: self.contracts.token(w3).functions.decimals().call(),
            "token_decimals",
        )
        if decimals is None:
            self.logger.warning(
                f"Token decimals unavailable, using default {DEFAULT_TOKEN_DECIMALS}"
            )
            return DEFAULT_TOKEN_DECIMALS

        decimals = int(decimals)
        self.cache.set(CACHE_KEY_TOKEN_DECIMALS, decimals, CACHE_TTL_TOKEN_DECIMALS)
        return decimals

    async def get_total_plan_count(self) -> int | None:
        """Get number of plans defined in the contract."""
        cached = self.cache.get(CACHE_KEY_PLAN_COUNT)
        if cached is not None:
            return cached

        count = await self._read(
            lambda w3: self.contracts.membership(w3).functions.getTotalPlanCount().call(),
            "total_plan_count",
        )
        if count is None:
            return None

        count = int(count)
        self.cache.set(CACHE_KEY_PLAN_COUNT, count, CACHE_TTL_PLAN_COUNT)
        return count

    async def get_plan_info(self, plan_id: int) -> PlanInfo | None:
        """
        Get plan details with current cycle counters.

        Static fields and cycle counters are cached separately so the
        counters can refresh more often.

        Args:
            plan_id: Plan identifier

        Returns:
            PlanInfo or None if unavailable
        """
        static_key = CACHE_KEY_PLAN.format(plan_id=plan_id)
        static = self.cache.get(static_key)
        if static is None:
            raw = await self._read(
                lambda w3: self.contracts.membership(w3).functions.getPlanInfo(plan_id).call(),
                "plan_info",
            )
            if raw is None:
                return None
            price, name, members_per_cycle, is_active, image_uri = raw
            static = {
                "price": int(price),
                "name": name,
                "members_per_cycle": int(members_per_cycle),
                "is_active": bool(is_active),
                "image_uri": image_uri,
            }
            self.cache.set(static_key, static, CACHE_TTL_PLAN_INFO)

        cycle_key = CACHE_KEY_PLAN_CYCLE.format(plan_id=plan_id)
        cycle = self.cache.get(cycle_key)
        if cycle is None:
            raw = await self._read(
                lambda w3: self.contracts.membership(w3).functions.getPlanCycleInfo(plan_id).call(),
                "plan_cycle_info",
            )
            if raw is None:
                return None
            current_cycle, members_in_cycle, _ = raw
            cycle = {
                "current_cycle": int(current_cycle),
                "members_in_current_cycle": int(members_in_cycle),
            }
            self.cache.set(cycle_key, cycle, CACHE_TTL_PLAN_CYCLE)

        decimals = await self.get_token_decimals()
        return PlanInfo(
            plan_id=plan_id,
            name=static["name"],
            price=static["price"],
            price_display=format_token_amount(static["price"], decimals),
            members_per_cycle=static["members_per_cycle"],
            is_active=static["is_active"],
            image_uri=static["image_uri"],
            current_cycle=cycle["current_cycle"],
            members_in_current_cycle=cycle["members_in_current_cycle"],
        )

    async def get_member_info(self, address: str) -> MemberInfo | None:
        """
        Get member record and NFT ownership.

        Args:
            address: Member wallet

        Returns:
            MemberInfo (plan_id 0 for unregistered wallets) or None on failure
        """
        try:
            checksum = to_checksum_address(address)
        except ValueError:
            self.logger.warning(f"Invalid member address: {address!r}")
            return None

        key = CACHE_KEY_MEMBER.format(address=checksum.lower())
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        raw = await self._read(
            lambda w3: self.contracts.membership(w3).functions.members(checksum).call(),
            "member_info",
        )
        if raw is None:
            return None

        nft_balance = await self._read(
            lambda w3: self.contracts.membership(w3).functions.balanceOf(checksum).call(),
            "member_nft_balance",
        )
        if nft_balance is None:
            return None

        upline, total_referrals, total_earnings, plan_id, cycle_number, registered_at = raw
        decimals = await self.get_token_decimals()

        member = MemberInfo(
            address=checksum.lower(),
            upline=str(upline).lower(),
            total_referrals=int(total_referrals),
            total_earnings=int(total_earnings),
            total_earnings_display=format_token_amount(total_earnings, decimals),
            plan_id=int(plan_id),
            cycle_number=int(cycle_number),
            registered_at=int(registered_at),
            has_nft=int(nft_balance) > 0,
        )
        self.cache.set(key, member, CACHE_TTL_MEMBER_INFO)
        return member

    async def get_system_stats(self) -> SystemStats | None:
        """Get contract-wide totals."""
        cached = self.cache.get(CACHE_KEY_SYSTEM_STATS)
        if cached is not None:
            return cached

        raw = await self._read(
            lambda w3: self.contracts.membership(w3).functions.getSystemStats().call(),
            "system_stats",
        )
        if raw is None:
            return None

        total_members, revenue, commission, owner_funds, fee_funds, fund_funds = raw
        decimals = await self.get_token_decimals()

        stats = SystemStats(
            total_members=int(total_members),
            total_revenue=format_token_amount(revenue, decimals),
            total_commission=format_token_amount(commission, decimals),
            owner_funds=format_token_amount(owner_funds, decimals),
            fee_funds=format_token_amount(fee_funds, decimals),
            fund_funds=format_token_amount(fund_funds, decimals),
        )
        self.cache.set(CACHE_KEY_SYSTEM_STATS, stats, CACHE_TTL_SYSTEM_STATS)
        return stats

    async def get_token_balance(self, address: str) -> int | None:
        """
        Get payment token balance in minor units (never cached).

        Args:
            address: Wallet address

        Returns:
            Balance or None on failure
        """
        try:
            checksum = to_checksum_address(address)
        except ValueError:
            return None

        balance = await self._read(
            lambda w3: self.contracts.token(w3).functions.balanceOf(checksum).call(),
            "token_balance",
        )
        return int(balance) if balance is not None else None

    async def get_allowance(self, owner: str) -> int | None:
        """
        Get allowance granted by owner to the membership contract (never cached).

        Args:
            owner: Token holder

        Returns:
            Allowance in minor units or None on failure
        """
        try:
            checksum = to_checksum_address(owner)
        except ValueError:
            return None

        spender = self.contracts.membership_address
        allowance = await self._read(
            lambda w3: self.contracts.token(w3).functions.allowance(checksum, spender).call(),
            "token_allowance",
        )
        return int(allowance) if allowance is not None else None

    async def get_display_amount(self, amount: int) -> Decimal:
        """Convert minor units to display form using token decimals."""
        return format_token_amount(amount, await self.get_token_decimals())

    def invalidate_member(self, address: str) -> bool:
        """
        Drop cached member info.

        Returns:
            True if an entry was removed
        """
        removed = self.cache.delete(CACHE_KEY_MEMBER.format(address=address.lower()))
        if removed:
            self.logger.debug(f"Invalidated member cache for {mask_address(address)}")
        return removed

    def invalidate_plans(self) -> int:
        """Drop all cached plan data (static and cycle counters)."""
        return self.cache.delete_by_pattern(r"^plan_")
