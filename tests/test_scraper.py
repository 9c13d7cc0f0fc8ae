# tests/test_scraper.py
from auction_tracker.cache import ResultCache
from auction_tracker.platforms.bring_a_trailer import PARSER as BAT
from auction_tracker.scraper import AuctionScraper

import pages
from conftest import FakeClock, FakeFetcher

BAT_PAGE_1 = "https://bringatrailer.com/auctions"
BAT_PAGE_2 = "https://bringatrailer.com/auctions/?page=2"
DETAIL_URL = "https://bringatrailer.com/listing/1995-porsche-911-carrera-42/"


def make_scraper(pages_by_url):
    clock = FakeClock()
    fetcher = FakeFetcher(pages_by_url)
    return AuctionScraper(fetcher, ResultCache(clock=clock), clock=clock), fetcher


def test_listing_page_only():
    scraper, fetcher = make_scraper({BAT_PAGE_1: pages.BAT_LISTINGS})
    result = scraper.scrape_platform(BAT, max_pages=1, scrape_details=False)
    assert result.ok
    assert len(result.value) == 2
    assert all(r.description is None for r in result.value)
    assert fetcher.calls == [BAT_PAGE_1]
    assert fetcher.pauses == []


def test_detail_enrichment_is_capped():
    scraper, fetcher = make_scraper({BAT_PAGE_1: pages.BAT_LISTINGS, DETAIL_URL: pages.BAT_DETAIL})
    result = scraper.scrape_platform(BAT, max_pages=1, scrape_details=True, max_details=1)
    first, second = result.value
    assert fetcher.calls == [BAT_PAGE_1, DETAIL_URL]
    assert first.vin == "WP0AA2998SS320001"
    assert first.current_bid == 52000.0
    assert first.description.startswith("This 911 Carrera")
    assert (first.mileage, first.mileage_unit) == (33000, "miles")
    assert first.end_time.month == 6
    assert second.description is None
    assert second.vin is None


def test_first_page_failure_skips_platform():
    scraper, fetcher = make_scraper({})
    result = scraper.scrape_listings(BAT, max_pages=2)
    assert result.value == []
    assert fetcher.calls == [BAT_PAGE_1]
    assert len(result.errors) == 1
    assert result.errors[0].startswith("[BRING_A_TRAILER] Error scraping page 1")


def test_later_page_failure_keeps_earlier_results():
    scraper, fetcher = make_scraper({BAT_PAGE_1: pages.BAT_LISTINGS})
    result = scraper.scrape_listings(BAT, max_pages=2)
    assert len(result.value) == 2
    assert fetcher.calls == [BAT_PAGE_1, BAT_PAGE_2]
    assert len(fetcher.pauses) == 1
    assert "page 2" in result.errors[0]


def test_duplicates_across_pages_are_dropped():
    scraper, _ = make_scraper({BAT_PAGE_1: pages.BAT_LISTINGS, BAT_PAGE_2: pages.BAT_LISTINGS})
    result = scraper.scrape_listings(BAT, max_pages=2)
    assert [r.external_id for r in result.value] == [
        "bat-1995-porsche-911-carrera-42",
        "bat-10k-mile-2003-ferrari-360-modena",
    ]


def test_empty_first_page_is_reported():
    scraper, _ = make_scraper({BAT_PAGE_1: pages.EMPTY_PAGE})
    result = scraper.scrape_listings(BAT, max_pages=2)
    assert result.value == []
    assert "No auction cards found" in result.errors[0]


def test_scrape_all_isolates_platforms():
    scraper, _ = make_scraper({BAT_PAGE_1: pages.BAT_LISTINGS})
    result = scraper.scrape_all(max_pages=1)
    assert result.value.by_platform == {
        "BRING_A_TRAILER": 2,
        "CARS_AND_BIDS": 0,
        "COLLECTING_CARS": 0,
    }
    assert len(result.value.listings) == 2
    assert len(result.errors) == 2
    assert result.errors[0].startswith("[CARS_AND_BIDS]")


def test_detail_cache_and_forced_refresh():
    scraper, fetcher = make_scraper({DETAIL_URL: pages.BAT_DETAIL})
    first = scraper.fetch_detail(DETAIL_URL)
    again = scraper.fetch_detail(DETAIL_URL)
    assert first == again
    assert fetcher.calls == [DETAIL_URL]
    scraper.fetch_detail(DETAIL_URL, force_refresh=True)
    assert fetcher.calls == [DETAIL_URL, DETAIL_URL]
