"""
Log masking helpers.

Keep wallet addresses, transaction hashes and provider credentials out of
log files in full.
"""

from urllib.parse import urlsplit


def mask_address(address: str | None) -> str:
    """
    Mask wallet address for logging.

    Examples:
        >>> mask_address("0x1234567890abcdef1234567890abcdef12345678")
        '0x1234...5678'
        >>> mask_address(None)
        '***'
    """
    if not address or len(address) < 10:
        return "***"
    return f"{address[:6]}...{address[-4:]}"


def mask_tx_hash(tx_hash: str | None) -> str:
    """
    Mask transaction hash for logging (first 10, last 6 characters).
    """
    if not tx_hash or len(tx_hash) < 16:
        return "***"
    return f"{tx_hash[:10]}...{tx_hash[-6:]}"


def mask_url(url: str | None) -> str:
    """
    Reduce an RPC endpoint URL to scheme and host.

    Paid providers embed API keys in the path, so only the host is kept.

    Examples:
        >>> mask_url("https://bsc.nodereal.io/v1/secretkey")
        'https://bsc.nodereal.io/***'
        >>> mask_url("https://data-seed-prebsc-1-s1.binance.org:8545/")
        'https://data-seed-prebsc-1-s1.binance.org:8545'
    """
    if not url:
        return "***"
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return "***"
    host = parts.netloc.rsplit("@", 1)[-1]
    base = f"{parts.scheme}://{host}"
    if parts.path.strip("/") or parts.query:
        return f"{base}/***"
    return base
