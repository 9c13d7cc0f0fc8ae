# auction_tracker/backfill/historical.py
"""Historical sold-auction backfill from the Bring a Trailer results search."""
import calendar
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from .. import crud
from ..errors import BackfillError
from ..parsing import make_soup
from ..platforms.bring_a_trailer import HISTORICAL_CARD_SELECTOR, parse_historical_card, search_url
from ..steps import StepResult
from ..utils import logger, utcnow

MAX_PAGES = 10
PAGE_DELAY = 2.5


def months_ago(now: datetime, months: int) -> datetime:
    """Same wall-clock time `months` calendar months earlier, clamped to month end."""
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


@dataclass
class HistoricalScrapeResult:
    auctions: List = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    total_found: int = 0


class HistoricalScraper:
    def __init__(self, fetcher, tracker, clock=utcnow, timeout=30.0,
                 max_pages=MAX_PAGES, page_delay=PAGE_DELAY):
        self.fetcher = fetcher
        self.tracker = tracker
        self.clock = clock
        self.timeout = timeout
        self.max_pages = max_pages
        self.page_delay = page_delay

    def fetch_historical_auctions(self, make, model, months=12) -> HistoricalScrapeResult:
        """Walk sold results newest first until the cutoff, an empty page or the page budget.

        Raises BackfillError when the first page cannot be fetched.
        """
        now = self.clock()
        cutoff = months_ago(now, months)
        found = {}
        result = HistoricalScrapeResult()
        logger.info("[Historical] Starting backfill for %s/%s (%d months)", make, model, months)

        for page in range(1, self.max_pages + 1):
            url = search_url(make, model, page)
            try:
                html = self.fetcher.fetch(url, timeout=self.timeout)
            except Exception as e:
                if page == 1:
                    raise BackfillError(f"First page failed for {make} {model}: {e}") from e
                logger.warning("[Historical] Page %d failed for %s/%s: %s", page, make, model, e)
                result.errors.append(f"Page {page} failed: {e}")
                break

            cards = make_soup(html).select(HISTORICAL_CARD_SELECTOR)
            if not cards:
                logger.info("[Historical] No more listings on page %d", page)
                break

            reached_cutoff = False
            for card in cards:
                try:
                    record = parse_historical_card(card, make, model, now)
                except Exception as e:
                    result.errors.append(f"Parse error on page {page}: {e}")
                    continue
                if record is None:
                    continue
                if record.auction_date is not None and record.auction_date < cutoff:
                    logger.info("[Historical] Reached cutoff date at %s", record.auction_date.date())
                    reached_cutoff = True
                    break
                result.total_found += 1
                previous = found.get(record.external_id)
                if previous is None or (record.price or 0) > (previous.price or 0):
                    found[record.external_id] = record

            if reached_cutoff:
                break
            if page < self.max_pages:
                self.fetcher.pause(self.page_delay, 0)

        result.auctions = list(found.values())
        logger.info("[Historical] %s/%s: %d auctions, %d errors", make, model,
                    len(result.auctions), len(result.errors))
        return result

    def store_historical_auctions(self, db: Session, auctions) -> int:
        """Insert auctions not stored yet, each with one price point. Returns rows created."""
        existing = crud.existing_external_ids(db, [a.external_id for a in auctions])
        stored = 0
        for record in auctions:
            if record.external_id in existing:
                continue
            try:
                obj = crud.create_historical_auction(db, record)
                db.commit()
                if record.price is not None:
                    crud.record_price_point(db, obj.id, record.price, record.observed_at)
            except Exception as e:
                db.rollback()
                logger.warning("[Historical] Failed to store %s: %s", record.external_id, e)
                continue
            existing.add(record.external_id)
            stored += 1
        return stored

    def backfill_model(self, db: Session, make, model, months=12) -> StepResult:
        try:
            scraped = self.fetch_historical_auctions(make, model, months)
            stored = self.store_historical_auctions(db, scraped.auctions)
        except Exception as e:
            db.rollback()
            logger.warning("[Historical] Backfill failed for %s/%s: %s", make, model, e)
            self.tracker.mark_failed(make, model, str(e))
            return StepResult(0, [f"Backfill failed for {make} {model}: {e}"])
        self.tracker.mark_backfilled(make, model, stored)
        logger.info("[Historical] Backfilled %s/%s with %d auctions", make, model, stored)
        return StepResult(stored, scraped.errors)
