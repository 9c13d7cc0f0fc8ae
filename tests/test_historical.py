# tests/test_historical.py
from datetime import datetime, timezone

import pytest

from auction_tracker import crud
from auction_tracker.backfill import HistoricalScraper, ModelBackfillTracker, months_ago
from auction_tracker.errors import BackfillError, FetchError
from auction_tracker.platforms.bring_a_trailer import search_url
from auction_tracker.schemas import BackfillStatus

import pages
from conftest import FakeFetcher


def url(page):
    return search_url("Porsche", "911", page)


@pytest.fixture
def tracker(db, clock):
    return ModelBackfillTracker(db, clock=clock)


def scraper(tracker, clock, pages_by_url, **kwargs):
    fetcher = FakeFetcher(pages_by_url)
    return HistoricalScraper(fetcher, tracker, clock=clock, **kwargs), fetcher


def test_months_ago_clamps_to_month_end():
    assert months_ago(datetime(2025, 3, 31, 8, 30), 1) == datetime(2025, 2, 28, 8, 30)
    assert months_ago(datetime(2025, 6, 15, tzinfo=timezone.utc), 12) == datetime(2024, 6, 15, tzinfo=timezone.utc)
    assert months_ago(datetime(2025, 1, 10), 2) == datetime(2024, 11, 10)


def test_walk_stops_at_cutoff(tracker, clock):
    recent = pages.historical_card("2020-porsche-911-1", "2020 Porsche 911 Carrera S", 120000, "2025-05-15")
    old = pages.historical_card("2020-porsche-911-2", "2020 Porsche 911 Carrera", 99000, "2024-04-15")
    hist, fetcher = scraper(tracker, clock, {url(1): pages.page(recent, old)})
    result = hist.fetch_historical_auctions("Porsche", "911", months=12)
    assert [a.external_id for a in result.auctions] == ["bat-2020-porsche-911-1"]
    assert result.auctions[0].price == 120000.0
    assert result.auctions[0].year == 2020
    assert fetcher.calls == [url(1)]
    assert result.errors == []


def test_dedupe_keeps_higher_price_and_stops_on_empty_page(tracker, clock):
    first = pages.historical_card("1995-porsche-911-7", "1995 Porsche 911 Carrera", 60000, "2025-05-01")
    higher = pages.historical_card("1995-porsche-911-7", "1995 Porsche 911 Carrera", 65000, "2025-05-01")
    other = pages.historical_card("1997-porsche-911-8", "1997 Porsche 911 Turbo", 180000, "2025-04-20")
    hist, fetcher = scraper(tracker, clock, {
        url(1): pages.page(first),
        url(2): pages.page(higher, other),
        url(3): pages.EMPTY_PAGE,
    })
    result = hist.fetch_historical_auctions("Porsche", "911")
    prices = {a.external_id: a.price for a in result.auctions}
    assert prices == {"bat-1995-porsche-911-7": 65000.0, "bat-1997-porsche-911-8": 180000.0}
    assert result.total_found == 3
    assert fetcher.calls == [url(1), url(2), url(3)]
    assert fetcher.pauses == [2.5, 2.5]


def test_first_page_failure_raises(tracker, clock):
    hist, _ = scraper(tracker, clock, {url(1): FetchError(url(1), "HTTP 503", status=503)})
    with pytest.raises(BackfillError):
        hist.fetch_historical_auctions("Porsche", "911")


def test_later_page_failure_keeps_earlier_pages(tracker, clock):
    card = pages.historical_card("1995-porsche-911-7", "1995 Porsche 911 Carrera", 60000, "2025-05-01")
    hist, _ = scraper(tracker, clock, {url(1): pages.page(card)})
    result = hist.fetch_historical_auctions("Porsche", "911")
    assert len(result.auctions) == 1
    assert result.errors[0].startswith("Page 2 failed")


def test_page_budget(tracker, clock):
    card = pages.historical_card("1995-porsche-911-7", "1995 Porsche 911 Carrera", 60000, "2025-05-01")
    hist, fetcher = scraper(tracker, clock, {url(1): pages.page(card), url(2): pages.page(card)}, max_pages=2)
    hist.fetch_historical_auctions("Porsche", "911")
    assert fetcher.calls == [url(1), url(2)]


def test_store_is_idempotent(db, tracker, clock):
    card = pages.historical_card("1995-porsche-911-7", "1995 Porsche 911 Carrera", 60000, "2025-05-01")
    hist, _ = scraper(tracker, clock, {url(1): pages.page(card), url(2): pages.EMPTY_PAGE})
    auctions = hist.fetch_historical_auctions("Porsche", "911").auctions

    assert hist.store_historical_auctions(db, auctions) == 1
    assert hist.store_historical_auctions(db, auctions) == 0

    stored = crud.get_auction(db, "bat-1995-porsche-911-7")
    assert stored.status == "SOLD"
    assert float(stored.final_price) == 60000.0
    points = crud.price_history(db, stored.id)
    assert [float(p.bid) for p in points] == [60000.0]


def test_backfill_model_marks_tracker(db, tracker, clock):
    card = pages.historical_card("1995-porsche-911-7", "1995 Porsche 911 Carrera", 60000, "2025-05-01")
    tracker.mark_pending("Porsche", "911")
    hist, _ = scraper(tracker, clock, {url(1): pages.page(card), url(2): pages.EMPTY_PAGE})
    result = hist.backfill_model(db, "Porsche", "911")
    assert result.value == 1
    assert result.ok
    state = tracker.get_state("Porsche", "911")
    assert state.status == BackfillStatus.BACKFILLED
    assert state.auction_count == 1


def test_backfill_model_failure_marks_failed(db, tracker, clock):
    tracker.mark_pending("Porsche", "911")
    hist, _ = scraper(tracker, clock, {})
    result = hist.backfill_model(db, "Porsche", "911")
    assert result.value == 0
    assert "Backfill failed for Porsche 911" in result.errors[0]
    state = tracker.get_state("Porsche", "911")
    assert state.status == BackfillStatus.FAILED
    assert "First page failed" in state.error_message
