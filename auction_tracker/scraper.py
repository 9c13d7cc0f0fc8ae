# auction_tracker/scraper.py
"""Listing-page scraping across the supported platforms."""
from dataclasses import dataclass, field
from typing import Dict, List

from .cache import ResultCache
from .enricher import DetailEnricher
from .parsing import make_soup
from .platforms import all_parsers, parser_for_url
from .steps import StepResult
from .utils import logger, utcnow


@dataclass
class ScrapeAllResult:
    listings: List = field(default_factory=list)
    by_platform: Dict[str, int] = field(default_factory=dict)


class AuctionScraper:
    def __init__(self, fetcher, cache=None, clock=utcnow):
        self.fetcher = fetcher
        self.cache = cache if cache is not None else ResultCache(clock=clock)
        self.clock = clock

    def fetch_detail(self, url, force_refresh=False) -> dict:
        """Parsed detail page for a listing URL, served from the cache when fresh."""
        if not force_refresh:
            cached = self.cache.get(url)
            if cached is not None:
                return cached
        parser = parser_for_url(url)
        html = self.fetcher.fetch(url)
        data = parser.parse_detail(html)
        if not force_refresh:
            self.cache.put(url, data)
        return data

    def scrape_listings(self, parser, max_pages=2) -> StepResult:
        listings, errors, seen = [], [], set()
        tag = f"[{parser.name}]"
        for page in range(1, max_pages + 1):
            url = parser.page_url(page)
            logger.info("%s Scraping listings page %d: %s", tag, page, url)
            try:
                html = self.fetcher.fetch(url)
            except Exception as e:
                errors.append(f"{tag} Error scraping page {page}: {e}")
                if page == 1:
                    logger.error("%s First page failed, skipping platform: %s", tag, e)
                    break
                logger.warning("%s Page %d failed: %s", tag, page, e)
                continue

            cards = parser.find_cards(make_soup(html))
            if not cards:
                if page == 1:
                    errors.append(f"{tag} No auction cards found on page 1. Site structure may have changed.")
                break

            now = self.clock()
            for card in cards:
                try:
                    record = parser.parse_card(card, now)
                except Exception as e:
                    errors.append(f"{tag} Failed to parse auction card: {e}")
                    continue
                if record is None or record.external_id in seen:
                    continue
                seen.add(record.external_id)
                listings.append(record)
            logger.info("%s Found %d auctions so far (page %d)", tag, len(listings), page)

            if page < max_pages:
                self.fetcher.pause()
        return StepResult(listings, errors)

    def scrape_platform(self, parser, max_pages=2, scrape_details=False, max_details=10) -> StepResult:
        start = self.clock()
        result = self.scrape_listings(parser, max_pages)
        listings, errors = result.value, list(result.errors)
        if scrape_details and listings:
            logger.info("[%s] Scraping %d detail pages", parser.name, min(max_details, len(listings)))
            enriched = DetailEnricher(self.fetch_detail, pause=self.fetcher.pause).enrich(listings, max_details)
            listings = enriched.value
            errors.extend(enriched.errors)
        elapsed = (self.clock() - start).total_seconds()
        logger.info("[%s] Scrape complete: %d auctions, %d errors, %.1fs",
                    parser.name, len(listings), len(errors), elapsed)
        return StepResult(listings, errors)

    def scrape_all(self, max_pages=2, scrape_details=False, max_details=10, parsers=None) -> StepResult:
        """Scrape every platform in turn; one platform failing never stops the others."""
        out = ScrapeAllResult()
        errors = []
        for parser in parsers or all_parsers():
            try:
                result = self.scrape_platform(parser, max_pages, scrape_details, max_details)
            except Exception as e:
                logger.exception("[%s] Platform scrape crashed", parser.name)
                errors.append(f"[{parser.name}] Scrape failed: {e}")
                out.by_platform[parser.name] = 0
                continue
            out.listings.extend(result.value)
            out.by_platform[parser.name] = len(result.value)
            errors.extend(result.errors)
        return StepResult(out, errors)
