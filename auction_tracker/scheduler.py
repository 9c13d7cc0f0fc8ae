# auction_tracker/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler
from .utils import logger


def start_scheduler(job, interval_hours=6):
    # max_instances=1: a slow run is skipped over, never overlapped
    scheduler = BackgroundScheduler()
    scheduler.add_job(job, 'interval', hours=interval_hours, max_instances=1, coalesce=True, id="pipeline")
    scheduler.start()
    logger.info("Scheduler started (every %sh)", interval_hours)
    return scheduler
