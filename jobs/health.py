"""
Health check server for the sync worker.

Endpoints:
- /health: scheduler jobs plus chain, cache and event sync status
- /readiness: ready once the scheduler runs and a provider is connected
- /liveness: process is alive
"""

import asyncio
import functools
import json

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from memberchain.services.chain_core import ChainCore

SCHEDULER_KEY = web.AppKey("scheduler", AsyncIOScheduler)
CORE_KEY = web.AppKey("chain_core", ChainCore)


def _job_info(scheduler: AsyncIOScheduler) -> list[dict]:
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
        }
        for job in scheduler.get_jobs()
    ]


async def health_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Returns:
        JSON response with scheduler and chain core status
    """
    scheduler = request.app[SCHEDULER_KEY]
    core = request.app[CORE_KEY]

    status = core.get_status()
    healthy = scheduler.running and status["chain"]["connected"]

    return web.json_response(
        {
            "status": "healthy" if healthy else "degraded",
            "scheduler_running": scheduler.running,
            "jobs": _job_info(scheduler),
            **status,
        },
        status=200 if healthy else 503,
        dumps=functools.partial(json.dumps, default=str),
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """Readiness check endpoint."""
    scheduler = request.app[SCHEDULER_KEY]
    core = request.app[CORE_KEY]

    ready = scheduler.running and core.chain.connection is not None
    return web.json_response(
        {"status": "ready" if ready else "not_ready", "ready": ready},
        status=200 if ready else 503,
    )


async def liveness_handler(request: web.Request) -> web.Response:
    """Liveness check endpoint."""
    return web.json_response({"status": "alive", "alive": True})


def create_health_app(scheduler: AsyncIOScheduler, core: ChainCore) -> web.Application:
    """Build the health check application."""
    app = web.Application()
    app[SCHEDULER_KEY] = scheduler
    app[CORE_KEY] = core
    app.router.add_get("/health", health_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/liveness", liveness_handler)
    return app


async def start_health_server(
    scheduler: AsyncIOScheduler,
    core: ChainCore,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """
    Start health check server.

    Returns:
        AppRunner for cleanup
    """
    runner = web.AppRunner(create_health_app(scheduler, core))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health check server started on {host}:{port}")
    return runner


async def stop_health_server(runner: web.AppRunner, timeout: int = 5) -> None:
    """Stop health check server gracefully."""
    logger.info("Stopping health check server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
