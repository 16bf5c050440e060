"""
Event Sync Background Task.

Runs one event synchronization cycle. Scheduled every
EVENT_POLL_INTERVAL seconds; overlapping triggers are dropped by the
engine's single-flight guard.
"""

from loguru import logger

from memberchain.services.chain_core import get_chain_core


async def run_event_sync() -> dict:
    """
    Run one sync cycle.

    Never raises: a failed cycle is logged and retried on the next tick.

    Returns:
        Dict with cycle results
    """
    try:
        engine = get_chain_core().sync_engine
        result = await engine.run_cycle()
    except Exception as e:
        logger.exception(f"[EventSync Task] Unexpected error: {e}")
        return {"success": False, "errors": [str(e)]}

    if result.get("errors"):
        logger.warning(f"[EventSync Task] Cycle finished with errors: {result['errors']}")
    elif result.get("applied"):
        logger.info(
            f"[EventSync Task] Applied {result['applied']} events "
            f"(blocks {result['from_block']}-{result['to_block']})"
        )
    return result
