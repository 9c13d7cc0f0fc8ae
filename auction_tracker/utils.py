# auction_tracker/utils.py
"""Shared utilities: logging, retry decorator and UTC time helpers."""
import os
import logging
import time
from datetime import datetime, timezone
from functools import wraps
from dotenv import load_dotenv

load_dotenv()


def get_logger(name=__name__):
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        level=getattr(logging, level, logging.INFO)
    )
    # request libraries are chatty at INFO/DEBUG
    for noisy in ("urllib3", "httpx", "httpcore", "apscheduler.executors.default"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return logging.getLogger(name)

logger = get_logger("auction-tracker")


def retry(exceptions, tries=3, delay=1, backoff=2, logger=logger, sleep=time.sleep):
    def deco_retry(f):
        @wraps(f)
        def f_retry(*args, **kwargs):
            mtries, mdelay = tries, delay
            while mtries > 1:
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    logger.warning("Retryable error: %s, retrying in %s sec", e, mdelay)
                    sleep(mdelay)
                    mtries -= 1
                    mdelay *= backoff
            return f(*args, **kwargs)
        return f_retry
    return deco_retry


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """Attach UTC to naive datetimes (SQLite hands them back without tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
