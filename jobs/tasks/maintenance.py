"""
Maintenance Background Tasks.

- cache sweep: purges expired cache entries (every 5 minutes)
- rate window cleanup: drops stale limiter timestamps (every minute)
- pending action sweep: fails unconfirmed actions past their timeout
"""

from loguru import logger

from memberchain.services.chain_core import get_chain_core


async def run_cache_sweep() -> int:
    """
    Purge expired cache entries.

    Returns:
        Number of removed entries
    """
    core = get_chain_core()
    removed = core.cache.cleanup()
    if removed:
        stats = core.cache.get_stats()
        logger.debug(
            f"[Cache Sweep] Removed {removed} entries "
            f"(size={stats['size']}, hit_rate={stats['hit_rate']}%)"
        )
    return removed


async def run_rate_window_cleanup() -> int:
    """Drop idle rate limiter scopes."""
    return get_chain_core().rate_limiter.cleanup()


async def run_pending_action_sweep() -> dict:
    """
    Fail pending actions past their timeout.

    Returns:
        Dict with failed count or error
    """
    try:
        failed = await get_chain_core().sweeper.sweep()
    except Exception as e:
        logger.exception(f"[Pending Sweep] Failed: {e}")
        return {"success": False, "failed": 0, "error": str(e)}

    return {"success": True, "failed": len(failed)}
