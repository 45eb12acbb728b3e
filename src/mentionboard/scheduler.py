"""Timer facility: periodic ingestion cycles and price refreshes."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mentionboard import config
from mentionboard.ingest import Ingestor
from mentionboard.price import PriceTicker

logger = logging.getLogger(__name__)

INGEST_JOB_ID = "ingest_cycle"
PRICE_JOB_ID = "price_refresh"


def build_scheduler(
    ingestor: Ingestor,
    ticker: PriceTicker | None = None,
    *,
    interval_minutes: int = config.REFRESH_INTERVAL_MINUTES,
    startup_delay_seconds: int = config.STARTUP_DELAY_SECONDS,
    price_interval_seconds: int = config.PRICE_INTERVAL_SECONDS,
) -> BlockingScheduler:
    """Register the ingestion job (first run shortly after start) and the price job."""
    scheduler = BlockingScheduler(timezone="UTC")
    now = datetime.now().astimezone()

    scheduler.add_job(
        ingestor.run_cycle,
        IntervalTrigger(minutes=interval_minutes),
        id=INGEST_JOB_ID,
        name="Ingestion cycle (rollover + search + refresh)",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        next_run_time=now + timedelta(seconds=startup_delay_seconds),
    )

    if ticker is not None:
        scheduler.add_job(
            ticker.refresh,
            IntervalTrigger(seconds=price_interval_seconds),
            id=PRICE_JOB_ID,
            name="Price refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=now,
        )

    for job in scheduler.get_jobs():
        logger.info("Scheduled job %s: %s", job.name, job.trigger)
    return scheduler


def run_forever(ingestor: Ingestor, ticker: PriceTicker | None = None) -> None:
    """Block running scheduled jobs until interrupted."""
    scheduler = build_scheduler(ingestor, ticker)
    logger.info("Scheduler started - Press Ctrl+C to stop")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
