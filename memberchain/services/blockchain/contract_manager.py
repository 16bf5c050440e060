"""
Contract manager.

Builds contract objects for a given Web3 instance. Contracts are bound to
the Web3 instance that created them, so after a failover new objects are
created lazily for the new connection.
"""

import threading
import weakref

from eth_utils import to_checksum_address
from web3 import Web3
from web3.contract import Contract

from memberchain.services.blockchain.abi import MEMBERSHIP_ABI, TOKEN_ABI


class ContractManager:
    """
    Per-connection cache of contract objects.

    Usage:
        contracts = ContractManager(nft_address, usdt_address)
        await client.call(lambda w3: contracts.membership(w3).functions.getTotalPlanCount().call())
    """

    def __init__(self, membership_address: str, token_address: str) -> None:
        """
        Initialize contract manager.

        Args:
            membership_address: Membership NFT contract address
            token_address: Payment token (USDT) contract address
        """
        self.membership_address = to_checksum_address(membership_address)
        self.token_address = to_checksum_address(token_address)
        self._contracts: weakref.WeakKeyDictionary[Web3, dict[str, Contract]] = (
            weakref.WeakKeyDictionary()
        )
        self._lock = threading.Lock()

    def membership(self, w3: Web3) -> Contract:
        """Get membership contract bound to w3."""
        return self._get(w3, "membership", self.membership_address, MEMBERSHIP_ABI)

    def token(self, w3: Web3) -> Contract:
        """Get payment token contract bound to w3."""
        return self._get(w3, "token", self.token_address, TOKEN_ABI)

    def _get(self, w3: Web3, name: str, address: str, abi: list) -> Contract:
        with self._lock:
            bound = self._contracts.setdefault(w3, {})
            contract = bound.get(name)
            if contract is None:
                contract = w3.eth.contract(address=address, abi=abi)
                bound[name] = contract
            return contract
