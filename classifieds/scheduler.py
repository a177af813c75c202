# classifieds/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler

from .db import AppContext
from .store import EntityStore
from .utils import logger


def expire_listings_job(ctx: AppContext) -> int:
    try:
        return EntityStore(ctx).expire_stale_listings()
    except Exception:
        logger.exception("Listing expiry sweep failed")
        return 0


def start_scheduler(ctx: AppContext) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        expire_listings_job,
        "interval",
        hours=ctx.settings.expiry_sweep_hours,
        args=[ctx],
        id="expire-listings",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduler started (expiry sweep every %sh)", ctx.settings.expiry_sweep_hours)
    return scheduler
