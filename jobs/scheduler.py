"""
Periodic job scheduler.

Sends the daily multiplier recompute and the daily, weekly and monthly
budget runs to the dramatiq queues, and serves health endpoints.

Run with: python -m jobs.scheduler
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from app.config.logging import setup_logging
from app.config.settings import settings
from jobs.health import set_scheduler, start_health_server, stop_health_server
from jobs.tasks import distribute_budget_pool, recalculate_all_multipliers


def send_multiplier_recompute() -> None:
    """Enqueue the daily multiplier recompute."""
    recalculate_all_multipliers.send()
    logger.info("Multiplier recompute enqueued")


def send_budget_run(period_type: str) -> None:
    """Enqueue a budget run for the default organization."""
    distribute_budget_pool.send(period_type, settings.default_organization_id)
    logger.info("Budget run enqueued", extra={"period_type": period_type})


def create_scheduler() -> AsyncIOScheduler:
    """
    Build the scheduler with all periodic jobs (UTC).

    Returns:
        Configured, not yet started AsyncIOScheduler
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        send_multiplier_recompute,
        CronTrigger(hour=settings.multiplier_recalc_hour, minute=0, timezone="UTC"),
        id="multiplier_recompute",
        name="Daily multiplier recompute",
        coalesce=True,
        max_instances=1,
    )

    budget_triggers = {
        "daily": CronTrigger(hour=settings.budget_run_hour, minute=0, timezone="UTC"),
        "weekly": CronTrigger(
            day_of_week="sun", hour=settings.budget_run_hour, minute=30, timezone="UTC"
        ),
        "monthly": CronTrigger(
            day="last", hour=settings.budget_run_hour, minute=45, timezone="UTC"
        ),
    }
    for period_type, trigger in budget_triggers.items():
        scheduler.add_job(
            send_budget_run,
            trigger,
            args=[period_type],
            id=f"budget_{period_type}",
            name=f"{period_type.capitalize()} budget run",
            coalesce=True,
            max_instances=1,
        )

    return scheduler


async def main() -> None:
    """Run the scheduler until SIGINT or SIGTERM."""
    setup_logging()

    scheduler = create_scheduler()
    scheduler.start()
    set_scheduler(scheduler)
    runner, _ = await start_health_server(port=settings.scheduler_health_port)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("Scheduler started", extra={"jobs": len(scheduler.get_jobs())})
    try:
        await stop.wait()
    finally:
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    asyncio.run(main())
