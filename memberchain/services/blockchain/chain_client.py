"""
Chain Client - RPC access with provider failover.

Keeps exactly one live connection chosen from an ordered pool of RPC
endpoints. Every read and write is admitted through the RateLimiter and
executed in a thread pool (web3 HTTP calls are blocking). Connection
failures advance to the next endpoint in pool order, wrapping around;
when the whole pool fails a NoProviderAvailableError is raised.
"""

import asyncio
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, TypeVar

from eth_account import Account
from eth_account.signers.local import LocalAccount
from loguru import logger
from web3 import Web3
from web3.contract.contract import ContractFunction
from web3.middleware import ExtraDataToPOAMiddleware

from memberchain.config.constants import (
    BLOCKCHAIN_EXECUTOR_TIMEOUT,
    BLOCKCHAIN_EXECUTOR_WORKERS,
    BLOCKCHAIN_RPC_TIMEOUT,
    GAS_LIMIT_MULTIPLIER,
    RATE_SCOPE_GLOBAL,
)
from memberchain.services.blockchain.exceptions import (
    BlockchainError,
    BlockchainTimeoutError,
    NoProviderAvailableError,
    ProviderConnectionError,
    RateLimitedError,
    SignerNotConfiguredError,
    is_rate_limit_error,
)
from memberchain.services.blockchain.rate_limiter import RateLimiter
from memberchain.services.blockchain.types import ProviderEndpoint
from memberchain.utils.security import mask_tx_hash, mask_url

T = TypeVar("T")


@dataclass(frozen=True)
class ChainConnection:
    """Active binding to one endpoint. Replaced wholesale on failover."""

    web3: Web3
    endpoint: ProviderEndpoint
    chain_id: int
    account: LocalAccount | None = None


def build_web3(url: str, timeout: int = BLOCKCHAIN_RPC_TIMEOUT, use_poa: bool = True) -> Web3:
    """
    Create an HTTP Web3 instance for url.

    Args:
        url: RPC endpoint
        timeout: HTTP request timeout in seconds
        use_poa: Inject the POA extraData middleware (required on BSC)

    Returns:
        Web3 instance (not yet checked for liveness)
    """
    w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
    if use_poa:
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return w3


class ChainClient:
    """
    Rate-limited RPC client with ordered provider failover.

    Usage:
        client = ChainClient(urls, RateLimiter(), private_key=key)
        await client.connect()
        block = await client.call(lambda w3: w3.eth.block_number, "block_number")
    """

    def __init__(
        self,
        rpc_urls: list[str],
        rate_limiter: RateLimiter,
        private_key: str | None = None,
        expected_chain_id: int | None = None,
        request_timeout: int = BLOCKCHAIN_RPC_TIMEOUT,
        call_timeout: float = BLOCKCHAIN_EXECUTOR_TIMEOUT,
        gas_limit_multiplier: float = GAS_LIMIT_MULTIPLIER,
        use_poa: bool = True,
        web3_factory: Callable[[str], Web3] | None = None,
        max_workers: int = BLOCKCHAIN_EXECUTOR_WORKERS,
    ) -> None:
        """
        Initialize chain client.

        Args:
            rpc_urls: Endpoint URLs in failover order
            rate_limiter: Admission control for outbound calls
            private_key: Signing key for write calls (reads only when None)
            expected_chain_id: Reject endpoints reporting another chain
            request_timeout: HTTP timeout per RPC request
            call_timeout: Max time for one executor call
            gas_limit_multiplier: Safety buffer applied to gas estimates
            use_poa: Inject POA middleware into created Web3 instances
            web3_factory: Builds a Web3 instance from a URL
            max_workers: Thread pool size for blocking web3 calls
        """
        if not rpc_urls:
            raise ValueError("At least one RPC endpoint must be specified")

        self.endpoints = [
            ProviderEndpoint(url=url, position=index)
            for index, url in enumerate(rpc_urls)
        ]
        self.rate_limiter = rate_limiter
        self.expected_chain_id = expected_chain_id
        self.call_timeout = call_timeout
        self.gas_limit_multiplier = gas_limit_multiplier

        self._web3_factory = web3_factory or (
            lambda url: build_web3(url, timeout=request_timeout, use_poa=use_poa)
        )
        self._account: LocalAccount | None = (
            Account.from_key(private_key) if private_key else None
        )

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="chain"
        )
        self._connection: ChainConnection | None = None
        self._current_index = 0
        self._connect_lock = asyncio.Lock()
        self._submit_lock = asyncio.Lock()
        self._stats_lock = threading.Lock()

        self._failover_count = 0
        self._call_count = 0
        self._error_count = 0

        logger.info(
            f"ChainClient initialized with {len(self.endpoints)} endpoints "
            f"(signer={'yes' if self._account else 'no'})"
        )

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @property
    def connection(self) -> ChainConnection | None:
        return self._connection

    @property
    def signer_address(self) -> str | None:
        return self._account.address if self._account else None

    async def connect(self) -> ChainConnection:
        """
        Bind to the first live endpoint, starting from the current one.

        Candidates are tried in pool order, wrapping around, at most once
        each.

        Returns:
            Active connection

        Raises:
            NoProviderAvailableError: If every endpoint fails
        """
        async with self._connect_lock:
            return await self._connect_locked()

    async def _connect_locked(self) -> ChainConnection:
        last_error: Exception | None = None

        for _ in range(len(self.endpoints)):
            endpoint = self.endpoints[self._current_index]
            try:
                connection = await self._run(
                    lambda: self._dial(endpoint), f"connect[{endpoint.position}]"
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    f"❌ [ChainClient] Endpoint #{endpoint.position} "
                    f"{mask_url(endpoint.url)} unavailable: {e}"
                )
                self._advance()
                continue

            self._connection = connection
            logger.success(
                f"✅ [ChainClient] Connected to endpoint #{endpoint.position} "
                f"{mask_url(endpoint.url)} (chain_id={connection.chain_id})"
            )
            return connection

        self._connection = None
        message = (
            f"All {len(self.endpoints)} RPC providers failed. Last error: {last_error}"
        )
        logger.critical(f"[ChainClient] {message}")
        raise NoProviderAvailableError(message) from last_error

    def _dial(self, endpoint: ProviderEndpoint) -> ChainConnection:
        """Create and liveness-check a connection (runs in executor)."""
        w3 = self._web3_factory(endpoint.url)
        if not w3.is_connected():
            raise ProviderConnectionError("liveness check failed")

        chain_id = int(w3.eth.chain_id)
        if self.expected_chain_id is not None and chain_id != self.expected_chain_id:
            raise ProviderConnectionError(
                f"unexpected chain id {chain_id}, expected {self.expected_chain_id}"
            )

        return ChainConnection(
            web3=w3, endpoint=endpoint, chain_id=chain_id, account=self._account
        )

    def _advance(self) -> None:
        self._current_index = (self._current_index + 1) % len(self.endpoints)

    async def _ensure_connection(self) -> ChainConnection:
        connection = self._connection
        if connection is not None:
            return connection
        async with self._connect_lock:
            if self._connection is not None:
                return self._connection
            return await self._connect_locked()

    async def _drop_connection(self, failed: ChainConnection, error: Exception) -> None:
        """Discard a failed connection and move to the next endpoint."""
        async with self._connect_lock:
            if self._connection is not failed:
                # Another task already failed over
                return
            self._connection = None
            self._advance()
            with self._stats_lock:
                self._failover_count += 1
            logger.warning(
                f"[ChainClient] Failing over from endpoint #{failed.endpoint.position} "
                f"to #{self._current_index}: {error}"
            )

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def call(
        self,
        read_fn: Callable[[Web3], T],
        operation_name: str = "call",
        scope: str = RATE_SCOPE_GLOBAL,
    ) -> T:
        """
        Execute a read against the active connection.

        Connection-class failures trigger failover and the read is retried
        on the next endpoint, up to pool size attempts.

        Args:
            read_fn: Blocking function receiving the Web3 instance
            operation_name: Name used in logs
            scope: Rate limiter scope

        Returns:
            read_fn result

        Raises:
            RateLimitedError: Provider refused the call because of its limits
            NoProviderAvailableError: No endpoint could serve the call
            Exception: Non-transport errors from read_fn (e.g. contract reverts)
        """
        last_error: Exception | None = None

        for attempt in range(1, len(self.endpoints) + 1):
            connection = await self._ensure_connection()
            await self.rate_limiter.admit(scope)

            try:
                return await self._execute(lambda: read_fn(connection.web3), operation_name)
            except (ProviderConnectionError, BlockchainTimeoutError) as e:
                last_error = e
                logger.warning(
                    f"[{operation_name}] Attempt {attempt}/{len(self.endpoints)} "
                    f"failed on endpoint #{connection.endpoint.position}: {e}"
                )
                await self._drop_connection(connection, e)

        message = (
            f"Operation '{operation_name}' failed on {len(self.endpoints)} endpoints. "
            f"Last error: {last_error}"
        )
        logger.critical(f"[ChainClient] {message}")
        raise NoProviderAvailableError(message) from last_error

    async def submit(
        self,
        write_fn: Callable[[Web3, LocalAccount], Any],
        operation_name: str = "submit",
        scope: str = RATE_SCOPE_GLOBAL,
    ) -> str:
        """
        Execute a signed write against the active connection.

        Writes are never retried on another endpoint: once the raw
        transaction may have reached a node, resending could double-spend.
        A connection failure still rotates the pool for later calls.

        Args:
            write_fn: Blocking function receiving (Web3, signer) and
                returning the transaction hash
            operation_name: Name used in logs
            scope: Rate limiter scope

        Returns:
            Transaction hash as 0x-prefixed lowercase hex

        Raises:
            SignerNotConfiguredError: No private key configured
            BlockchainError: Transport failures
        """
        if self._account is None:
            raise SignerNotConfiguredError("Signing credential is not configured")

        connection = await self._ensure_connection()
        await self.rate_limiter.admit(scope)

        async with self._submit_lock:
            try:
                tx_hash = await self._execute(
                    lambda: write_fn(connection.web3, self._account), operation_name
                )
            except (ProviderConnectionError, BlockchainTimeoutError) as e:
                await self._drop_connection(connection, e)
                raise

        normalized = Web3.to_hex(tx_hash) if not isinstance(tx_hash, str) else tx_hash
        normalized = normalized.lower()
        if not normalized.startswith("0x"):
            normalized = f"0x{normalized}"

        logger.info(f"📤 [{operation_name}] Transaction sent: {mask_tx_hash(normalized)}")
        return normalized

    async def send_contract_transaction(
        self,
        build_fn: Callable[[Web3], ContractFunction],
        gas_limit: int,
        gas_price: int,
        operation_name: str = "send_transaction",
    ) -> str:
        """
        Build, sign and broadcast a contract call.

        Args:
            build_fn: Returns the bound contract function for a Web3 instance
            gas_limit: Gas limit (already buffered)
            gas_price: Gas price in wei

        Returns:
            Transaction hash
        """

        def _send(w3: Web3, account: LocalAccount) -> Any:
            nonce = w3.eth.get_transaction_count(account.address, "pending")
            tx = build_fn(w3).build_transaction(
                {
                    "from": account.address,
                    "nonce": nonce,
                    "gas": gas_limit,
                    "gasPrice": gas_price,
                    "chainId": w3.eth.chain_id,
                }
            )
            signed = account.sign_transaction(tx)
            return w3.eth.send_raw_transaction(signed.raw_transaction)

        return await self.submit(_send, operation_name)

    async def estimate_gas_limit(
        self,
        build_fn: Callable[[Web3], ContractFunction],
        sender: str | None = None,
        operation_name: str = "estimate_gas",
    ) -> int:
        """
        Estimate gas for a contract call with the safety buffer applied.

        Args:
            build_fn: Returns the bound contract function for a Web3 instance
            sender: From address (defaults to the signer)

        Returns:
            Buffered gas limit
        """
        sender = sender or self.signer_address
        params = {"from": sender} if sender else {}
        estimate = await self.call(
            lambda w3: build_fn(w3).estimate_gas(params), operation_name
        )
        return int(estimate * self.gas_limit_multiplier)

    async def get_gas_price(self) -> int:
        """Get current gas price in wei."""
        return int(await self.call(lambda w3: w3.eth.gas_price, "gas_price"))

    async def get_block_number(self) -> int:
        """Get current chain head."""
        return int(await self.call(lambda w3: w3.eth.block_number, "block_number"))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(self, fn: Callable[[], T], operation_name: str) -> T:
        """Run fn in the executor and classify transport errors."""
        with self._stats_lock:
            self._call_count += 1
        try:
            return await self._run(fn, operation_name)
        except asyncio.CancelledError:
            raise
        except BlockchainError:
            with self._stats_lock:
                self._error_count += 1
            raise
        except Exception as e:
            with self._stats_lock:
                self._error_count += 1
            classified = self._classify(e)
            if classified is None:
                raise
            raise classified from e

    async def _run(self, fn: Callable[[], T], operation_name: str) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, fn),
                timeout=self.call_timeout,
            )
        except TimeoutError as e:
            raise BlockchainTimeoutError(
                f"{operation_name} timed out after {self.call_timeout}s"
            ) from e

    @staticmethod
    def _classify(error: Exception) -> BlockchainError | None:
        """Map transport exceptions onto the blockchain error taxonomy."""
        if is_rate_limit_error(error):
            return RateLimitedError(str(error))
        if isinstance(error, TimeoutError):
            return BlockchainTimeoutError(str(error))
        # requests' ConnectionError/Timeout derive from OSError
        if isinstance(error, OSError):
            return ProviderConnectionError(str(error))
        return None

    # ------------------------------------------------------------------
    # Diagnostics / lifecycle
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        """
        Get client status for diagnostics.

        Returns:
            Dict with connection state, endpoint and counters
        """
        connection = self._connection
        with self._stats_lock:
            return {
                "connected": connection is not None,
                "endpoint": mask_url(connection.endpoint.url) if connection else None,
                "endpoint_position": connection.endpoint.position if connection else None,
                "chain_id": connection.chain_id if connection else None,
                "endpoints_total": len(self.endpoints),
                "signer_configured": self._account is not None,
                "calls": self._call_count,
                "errors": self._error_count,
                "failovers": self._failover_count,
                "rate_limiter": self.rate_limiter.get_stats(),
            }

    def close(self) -> None:
        """Shut down the executor."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._connection = None
        logger.info("ChainClient closed")
