"""
Blockchain error taxonomy.

Transient errors (connection, timeout, provider rate limit) are retried
via failover or deferred to the next sync cycle. NoProviderAvailableError
is systemic: the current operation fails and the error is logged loudly.
"""

RATE_LIMIT_MARKERS = (
    "rate limit",
    "too many requests",
    "request limit",
)


class BlockchainError(Exception):
    """Base class for chain access errors."""


class ProviderConnectionError(BlockchainError):
    """Provider is unreachable or failed its liveness check."""


class BlockchainTimeoutError(BlockchainError):
    """RPC call exceeded its timeout."""


class RateLimitedError(BlockchainError):
    """Provider rejected the call because of its own rate limit."""


class NoProviderAvailableError(BlockchainError):
    """Every configured provider failed."""


class SignerNotConfiguredError(BlockchainError):
    """Write call requested without a signing credential."""


def is_rate_limit_error(error: BaseException) -> bool:
    """
    Check if an error is a provider-side rate limit.

    Args:
        error: Raised exception

    Returns:
        True for RateLimitedError or errors whose message carries a known
        rate limit marker
    """
    if isinstance(error, RateLimitedError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)
