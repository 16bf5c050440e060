"""
Chain core - Main coordinator.

Wires the chain access components from settings and exposes them to the
presentation and notification layers:
- RateLimiter: admission control for outbound RPC calls
- TTLCache: shared cache for chain reads
- ChainClient: provider pool with failover
- QueryService: cached plan/member/stats reads
- TransactionOrchestrator: registration and upgrade submission
- EventSyncEngine: ordered, idempotent event ingestion
- PendingActionSweeper: timeout of unconfirmed actions
"""

from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from memberchain.config.settings import Settings
from memberchain.services.blockchain.chain_client import ChainClient
from memberchain.services.blockchain.contract_manager import ContractManager
from memberchain.services.blockchain.rate_limiter import RateLimiter
from memberchain.services.cache.ttl_cache import TTLCache
from memberchain.services.event_sync.engine import EventSyncEngine
from memberchain.services.ledger import Ledger, SqlLedger
from memberchain.services.pending_action_service import PendingActionSweeper
from memberchain.services.query_service import QueryService
from memberchain.services.transaction_orchestrator import TransactionOrchestrator
from memberchain.utils.security import mask_address


class ChainCore:
    """
    Coordinator owning one instance of every chain core component.

    Usage:
        core = ChainCore(settings, session_maker)
        await core.start()
        result = await core.orchestrator.register(1, wallet)
    """

    def __init__(
        self,
        settings: Settings,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        ledger: Ledger | None = None,
        chain: ChainClient | None = None,
    ) -> None:
        """
        Initialize chain core.

        Args:
            settings: Application settings
            session_maker: Session factory for the SQL ledger
            ledger: Ledger implementation (overrides session_maker)
            chain: Pre-built chain client
        """
        if ledger is None and session_maker is None:
            raise ValueError("Either ledger or session_maker must be provided")

        self.settings = settings
        self.ledger: Ledger = ledger or SqlLedger(session_maker)

        self.rate_limiter = RateLimiter(
            max_requests=settings.rpc_max_requests,
            window_seconds=settings.rpc_window_seconds,
            backoff_seconds=settings.rpc_backoff_seconds,
        )
        self.cache = TTLCache(
            max_size=settings.max_cache_size,
            default_ttl=settings.cache_default_ttl,
        )
        self.chain = chain or ChainClient(
            settings.get_rpc_urls(),
            self.rate_limiter,
            private_key=settings.wallet_private_key,
            expected_chain_id=settings.chain_id,
            request_timeout=settings.rpc_timeout,
            gas_limit_multiplier=settings.gas_limit_multiplier,
            use_poa=settings.use_poa_middleware,
        )
        self.contracts = ContractManager(
            settings.nft_contract_address,
            settings.usdt_contract_address,
        )
        self.query = QueryService(self.chain, self.contracts, self.cache)
        self.orchestrator = TransactionOrchestrator(
            self.chain,
            self.contracts,
            self.query,
            self.ledger,
            default_upline=settings.owner_wallet_address,
        )
        self.sync_engine = EventSyncEngine(
            self.chain,
            self.contracts,
            self.ledger,
            self.cache,
            block_window=settings.event_block_window,
            filter_delay=settings.event_filter_delay,
            apply_delay=settings.event_apply_delay,
            rate_limit_cooldown=settings.rate_limit_cooldown,
            start_block=settings.event_start_block,
        )
        self.sweeper = PendingActionSweeper(
            self.ledger,
            timeout_minutes=settings.pending_action_timeout_minutes,
        )

        logger.info(
            f"ChainCore initialized (contract={mask_address(settings.nft_contract_address)})"
        )

    async def start(self) -> None:
        """
        Connect to a provider and warm long-lived caches.

        Raises:
            NoProviderAvailableError: If no endpoint is reachable
        """
        await self.chain.connect()
        decimals = await self.query.get_token_decimals()
        plan_count = await self.query.get_total_plan_count()
        logger.success(
            f"ChainCore started (token decimals={decimals}, plans={plan_count})"
        )

    def close(self) -> None:
        """Release executor threads and drop cached data."""
        self.chain.close()
        self.cache.clear()

    def get_status(self) -> dict[str, Any]:
        """
        Get combined status of all components.

        Returns:
            Dict with chain, cache and sync engine status
        """
        return {
            "chain": self.chain.get_status(),
            "cache": self.cache.get_stats(),
            "cache_top_keys": self.cache.get_top_keys(5),
            "event_sync": self.sync_engine.get_status(),
        }


_chain_core: ChainCore | None = None


def get_chain_core() -> ChainCore:
    """
    Get the process-wide chain core.

    Raises:
        RuntimeError: If init_chain_core() has not been called
    """
    if _chain_core is None:
        raise RuntimeError("ChainCore not initialized")
    return _chain_core


def init_chain_core(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
) -> ChainCore:
    """Create the process-wide chain core."""
    global _chain_core
    _chain_core = ChainCore(settings, session_maker)
    return _chain_core


def reset_chain_core() -> None:
    """Drop the process-wide chain core (shutdown and tests)."""
    global _chain_core
    if _chain_core is not None:
        _chain_core.close()
    _chain_core = None
