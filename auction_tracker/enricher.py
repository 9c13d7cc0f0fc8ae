# auction_tracker/enricher.py
"""Overlay detail-page fields onto listing-page summaries."""
from .schemas import ListingRecord
from .steps import StepResult
from .utils import logger

# bids only move up; a lower number on the detail page is a stale render
MONOTONIC_FIELDS = ("current_bid", "bid_count")


def merge_detail(listing: ListingRecord, detail: dict) -> ListingRecord:
    """Non-destructive merge: missing detail values never erase summary values."""
    updates = {}
    for key, value in detail.items():
        if value is None or key not in ListingRecord.model_fields:
            continue
        if key in MONOTONIC_FIELDS:
            current = getattr(listing, key)
            if current is not None and value < current:
                continue
        elif key == "images" and not value:
            continue
        updates[key] = value
    if not updates:
        return listing
    data = listing.model_dump()
    data.update(updates)
    return ListingRecord.model_validate(data)


class DetailEnricher:
    def __init__(self, fetch_detail, pause=None):
        self.fetch_detail = fetch_detail
        self.pause = pause

    def enrich(self, listings, max_details) -> StepResult:
        """Enrich the first `max_details` listings; the rest pass through untouched."""
        result = list(listings)
        errors = []
        for i, listing in enumerate(result[:max(0, max_details)]):
            if i and self.pause is not None:
                self.pause()
            try:
                detail = self.fetch_detail(listing.url)
                result[i] = merge_detail(listing, detail)
            except Exception as e:
                logger.warning("Detail scrape failed for %s: %s", listing.url, e)
                errors.append(f"[{listing.platform.value}] Detail scrape failed for {listing.url}: {e}")
        return StepResult(result, errors)
