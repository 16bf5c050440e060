"""
Application constants.

Timeouts, cache TTLs, cache key prefixes and plan bounds shared across
the chain access layer.
"""

# Blockchain timeouts (seconds)
BLOCKCHAIN_EXECUTOR_TIMEOUT = 20.0  # Max time for a single executor call
BLOCKCHAIN_RPC_TIMEOUT = 30  # HTTP provider request timeout
BLOCKCHAIN_EXECUTOR_WORKERS = 8

# Default BSC testnet endpoints, in failover order
DEFAULT_RPC_URLS = (
    "https://data-seed-prebsc-1-s1.binance.org:8545/",
    "https://data-seed-prebsc-2-s1.binance.org:8545/",
    "https://data-seed-prebsc-1-s2.binance.org:8545/",
    "https://data-seed-prebsc-1-s3.binance.org:8545/",
)

# Gas
GAS_LIMIT_MULTIPLIER = 1.2  # 20% safety buffer over estimate

# Membership plans
REGISTRATION_PLAN_ID = 1
MAX_PLAN_ID = 16

# Payment token
DEFAULT_TOKEN_DECIMALS = 6

# Cache TTLs (seconds)
CACHE_TTL_DEFAULT = 3600
CACHE_TTL_PLAN_INFO = 3600
CACHE_TTL_PLAN_CYCLE = 300
CACHE_TTL_MEMBER_INFO = 300
CACHE_TTL_SYSTEM_STATS = 600
CACHE_TTL_TOKEN_DECIMALS = 86400
CACHE_TTL_PLAN_COUNT = 3600

# Cache keys
CACHE_KEY_PLAN = "plan_{plan_id}"
CACHE_KEY_PLAN_CYCLE = "plan_cycle_{plan_id}"
CACHE_KEY_MEMBER = "member_{address}"
CACHE_KEY_SYSTEM_STATS = "system_stats"
CACHE_KEY_TOKEN_DECIMALS = "usdt_decimals"
CACHE_KEY_PLAN_COUNT = "total_plan_count"

# Sync cursor name in the ledger
SYNC_CURSOR_NAME = "membership_events"

# Rate limiter scope shared by all outbound RPC calls
RATE_SCOPE_GLOBAL = "global"
