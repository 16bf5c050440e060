"""
Blockchain access package.

Rate-limited RPC client with provider failover, contract bindings and the
chain error taxonomy.
"""

from memberchain.services.blockchain.chain_client import ChainClient, ChainConnection
from memberchain.services.blockchain.contract_manager import ContractManager
from memberchain.services.blockchain.exceptions import (
    BlockchainError,
    BlockchainTimeoutError,
    NoProviderAvailableError,
    ProviderConnectionError,
    RateLimitedError,
    SignerNotConfiguredError,
)
from memberchain.services.blockchain.rate_limiter import RateLimiter


__all__ = [
    "BlockchainError",
    "BlockchainTimeoutError",
    "ChainClient",
    "ChainConnection",
    "ContractManager",
    "NoProviderAvailableError",
    "ProviderConnectionError",
    "RateLimitedError",
    "RateLimiter",
    "SignerNotConfiguredError",
]
