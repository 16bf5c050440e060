"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for Settings validation
os.environ.setdefault("NFT_CONTRACT_ADDRESS", "0x1111111111111111111111111111111111111111")
os.environ.setdefault("USDT_CONTRACT_ADDRESS", "0x2222222222222222222222222222222222222222")
os.environ.setdefault("OWNER_WALLET_ADDRESS", "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB")
os.environ.setdefault("RPC_URLS", "https://rpc-1.test,https://rpc-2.test,https://rpc-3.test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_memberchain.db")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.factories import MEMBERSHIP_ADDRESS, TOKEN_ADDRESS, FakeClock


@pytest.fixture
def clock():
    """Fake clock whose sleep advances time instead of waiting."""
    return FakeClock()


@pytest.fixture
def mock_ledger():
    """Mock Ledger with empty storage."""
    ledger = AsyncMock()
    ledger.has_event = AsyncMock(return_value=False)
    ledger.load_cursor = AsyncMock(return_value=None)
    ledger.save_cursor = AsyncMock()
    ledger.record_cursor_error = AsyncMock()
    ledger.record_pending_action = AsyncMock()
    ledger.fail_stale_pending_actions = AsyncMock(return_value=[])
    return ledger


@pytest.fixture
def mock_contracts():
    """Mock ContractManager."""
    contracts = MagicMock()
    contracts.membership_address = MEMBERSHIP_ADDRESS
    contracts.token_address = TOKEN_ADDRESS
    return contracts
