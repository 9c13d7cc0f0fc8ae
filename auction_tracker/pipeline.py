# auction_tracker/pipeline.py
"""One ingestion run: refresh, scrape, store, track models, backfill, aggregate, close.

Every step returns a StepResult. A failing row, model or step is reported in
the run's error list and never stops the remaining steps.
"""
from datetime import timedelta

from sqlalchemy.orm import Session

from . import crud
from .backfill import HistoricalScraper, ModelBackfillTracker
from .cache import ResultCache
from .config import settings as default_settings
from .fetcher import Fetcher
from .schemas import BackfillSummary, CronData
from .scraper import AuctionScraper
from .secondary import build_secondary_store
from .services import ingest_listing
from .steps import Deadline, StepResult
from .utils import logger, utcnow

# parsed detail pages live for the whole process, across scheduled runs
_shared_cache = None


def shared_cache(ttl_hours):
    global _shared_cache
    if _shared_cache is None:
        _shared_cache = ResultCache(ttl=timedelta(hours=ttl_hours))
    return _shared_cache


class Pipeline:
    def __init__(self, db: Session, scraper: AuctionScraper, tracker: ModelBackfillTracker,
                 historical: HistoricalScraper, secondary=None, settings=default_settings, clock=utcnow):
        self.db = db
        self.scraper = scraper
        self.tracker = tracker
        self.historical = historical
        self.secondary = secondary
        self.settings = settings
        self.clock = clock

    def _step(self, name, fn, default):
        try:
            return fn()
        except Exception as e:
            logger.exception("Step %s failed", name)
            self.db.rollback()
            return StepResult(default, [f"{name} failed: {e}"])

    # -- steps ---------------------------------------------------------------

    def refresh_open_auctions(self, deadline: Deadline) -> StepResult:
        """Close what has expired, then re-check open rows that never showed an end time."""
        closed = crud.close_expired(self.db, self.clock())
        refreshed, errors = 0, []
        for auction in crud.open_auctions_without_end(self.db, self.settings.refresh_limit):
            if deadline.expired:
                break
            try:
                detail = self.scraper.fetch_detail(auction.url)
                crud.apply_refresh(self.db, auction, detail, self.clock())
                refreshed += 1
            except Exception as e:
                self.db.rollback()
                logger.warning("Refresh failed for %s: %s", auction.external_id, e)
                errors.append(f"Refresh failed for {auction.external_id}: {e}")
        return StepResult({"refreshed": refreshed, "closed": closed}, errors)

    def scrape(self) -> StepResult:
        s = self.settings
        return self.scraper.scrape_all(
            max_pages=s.scrape_max_pages,
            scrape_details=s.scrape_details,
            max_details=s.scrape_max_details,
        )

    def store(self, listings) -> StepResult:
        now = self.clock()
        stored, errors = [], []
        for listing in listings:
            record = listing.resolve_status(now)
            auction_id, errs = ingest_listing(self.db, record, self.secondary)
            errors.extend(errs)
            if auction_id is not None:
                stored.append((auction_id, record))
        return StepResult(stored, errors)

    def record_prices(self, stored) -> StepResult:
        now = self.clock()
        written, errors = 0, []
        for auction_id, record in stored:
            if record.current_bid is None:
                continue
            try:
                if crud.record_price_point(self.db, auction_id, record.current_bid, now):
                    written += 1
            except Exception as e:
                self.db.rollback()
                errors.append(f"Price history failed for {record.external_id}: {e}")
        return StepResult(written, errors)

    def identify_models(self, listings) -> StepResult:
        return StepResult(self.tracker.identify_and_mark_new_models(listings))

    def backfill(self, deadline: Deadline) -> StepResult:
        s = self.settings
        summary = BackfillSummary()
        errors = []
        if not deadline.has_at_least(s.backfill_min_seconds):
            logger.info("Skipping backfill, %.0fs left", deadline.remaining())
            return StepResult(summary)
        for ident in self.tracker.pending_models(limit=s.backfill_max_models):
            if not deadline.has_at_least(s.backfill_min_seconds):
                logger.info("Backfill stopped by deadline after %d models", summary.models_processed)
                break
            result = self.historical.backfill_model(self.db, ident.make, ident.model, s.backfill_months)
            summary.models_processed += 1
            summary.auctions_added += result.value or 0
            errors.extend(result.errors)
        return StepResult(summary, errors)

    def aggregate(self) -> StepResult:
        return StepResult(crud.recompute_market_data(self.db))

    def close_expired(self) -> StepResult:
        return StepResult(crud.close_expired(self.db, self.clock()))

    # -- run -----------------------------------------------------------------

    def run(self, deadline: Deadline = None) -> CronData:
        started = self.clock()
        if deadline is None:
            deadline = Deadline.after(self.settings.pipeline_max_seconds, self.clock)
        data = CronData()
        errors = []

        refresh = self._step("Refresh", lambda: self.refresh_open_auctions(deadline), {"refreshed": 0, "closed": 0})
        data.refreshed = refresh.value["refreshed"]
        data.closed += refresh.value["closed"]
        errors.extend(refresh.errors)

        scraped = self._step("Scraping", self.scrape, None)
        errors.extend(scraped.errors)
        listings = scraped.value.listings if scraped.value else []
        data.discovered = len(listings)
        data.by_platform = scraped.value.by_platform if scraped.value else {}

        stored = self._step("Store", lambda: self.store(listings), [])
        data.written = len(stored.value)
        errors.extend(stored.errors)

        prices = self._step("Price history", lambda: self.record_prices(stored.value), 0)
        data.price_points = prices.value
        errors.extend(prices.errors)

        models = self._step("Model tracking", lambda: self.identify_models(listings), [])
        data.new_models = len(models.value)
        errors.extend(models.errors)

        backfill = self._step("Backfill", lambda: self.backfill(deadline), BackfillSummary())
        data.backfill = backfill.value
        errors.extend(backfill.errors)

        aggregated = self._step("Market data update", self.aggregate, 0)
        data.aggregations = aggregated.value
        errors.extend(aggregated.errors)

        closed = self._step("Close expired", self.close_expired, 0)
        data.closed += closed.value
        errors.extend(closed.errors)

        data.errors = errors
        data.duration_ms = int((self.clock() - started).total_seconds() * 1000)
        logger.info("Pipeline run: %d discovered, %d written, %d errors, %dms",
                    data.discovered, data.written, len(errors), data.duration_ms)
        return data


def build_pipeline(db: Session, settings=default_settings, clock=utcnow) -> Pipeline:
    fetcher = Fetcher(timeout=settings.fetch_timeout, request_delay=settings.request_delay)
    scraper = AuctionScraper(fetcher, shared_cache(settings.cache_ttl_hours), clock=clock)
    tracker = ModelBackfillTracker(db, clock=clock)
    historical = HistoricalScraper(fetcher, tracker, clock=clock, timeout=settings.historical_fetch_timeout)
    return Pipeline(db, scraper, tracker, historical,
                    secondary=build_secondary_store(settings), settings=settings, clock=clock)


def run_once(settings=default_settings) -> CronData:
    """Run the pipeline with a fresh session; used by the scheduler and the CLI."""
    from .db import SessionLocal
    db = SessionLocal()
    try:
        return build_pipeline(db, settings).run()
    finally:
        db.close()
