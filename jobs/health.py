"""
Health endpoints of the scheduler process.

/health lists scheduled jobs, /readiness also checks the database,
/liveness only proves the event loop answers.
"""

import asyncio

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from sqlalchemy import text

from app.config.database import async_engine

_scheduler: AsyncIOScheduler | None = None


def set_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Register the scheduler reported by the health endpoints."""
    global _scheduler
    _scheduler = scheduler
    logger.info("Scheduler registered for health checks")


async def database_ready() -> bool:
    """Run a trivial query against the configured database."""
    try:
        async with async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database readiness check failed: {e}")
        return False


async def health_handler(request: web.Request) -> web.Response:
    """Scheduler state and next run time of every job."""
    if _scheduler is None:
        return web.json_response(
            {"status": "unhealthy", "error": "Scheduler not initialized"},
            status=503,
        )

    jobs = _scheduler.get_jobs()
    return web.json_response(
        {
            "status": "healthy" if _scheduler.running else "stopped",
            "scheduler_running": _scheduler.running,
            "jobs_count": len(jobs),
            "jobs": [
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": (
                        job.next_run_time.isoformat() if job.next_run_time else None
                    ),
                }
                for job in jobs
            ],
        }
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """Ready when the scheduler runs and the database answers."""
    scheduler_ok = _scheduler is not None and _scheduler.running
    db_ok = await database_ready()
    ready = scheduler_ok and db_ok
    return web.json_response(
        {
            "status": "ready" if ready else "not_ready",
            "ready": ready,
            "scheduler": scheduler_ok,
            "database": db_ok,
        },
        status=200 if ready else 503,
    )


async def liveness_handler(request: web.Request) -> web.Response:
    """Process is alive."""
    return web.json_response({"status": "alive", "alive": True})


def create_health_app() -> web.Application:
    """aiohttp application with the three health routes."""
    app = web.Application()
    app.router.add_get("/health", health_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/liveness", liveness_handler)
    return app


async def start_health_server(
    host: str = "0.0.0.0",
    port: int = 8081,
) -> tuple[web.AppRunner, web.TCPSite]:
    """
    Start the health server.

    Args:
        host: Host to bind to
        port: Port to bind to

    Returns:
        Tuple of (AppRunner, TCPSite) for cleanup
    """
    runner = web.AppRunner(create_health_app())
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health check server started on {host}:{port}")
    return runner, site


async def stop_health_server(runner: web.AppRunner, timeout: int = 5) -> None:
    """
    Stop the health server.

    Args:
        runner: AppRunner to clean up
        timeout: Seconds to wait for cleanup
    """
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
