# tests/test_secondary.py
from datetime import datetime, timezone

from auction_tracker.secondary import listing_to_row
from auction_tracker.schemas import ListingRecord, Platform

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def record(**overrides):
    data = dict(
        external_id="cc-1990-porsche-944-s2",
        platform=Platform.COLLECTING_CARS,
        url="https://collectingcars.com/cars/1990-porsche-944-s2",
        title="1990 Porsche 944 S2",
        make="Porsche",
        model="944 S2",
        year=1990,
        current_bid=20000,
        currency="GBP",
        mileage=45000,
        mileage_unit="km",
        scraped_at=NOW,
    )
    data.update(overrides)
    return ListingRecord(**data)


def test_row_carries_listing_currency():
    row = listing_to_row(record())
    assert row["source"] == "CollectingCars"
    assert row["hammer_price"] == 20000.0
    assert row["original_currency"] == "GBP"


def test_row_currency_unknown_or_without_price():
    assert listing_to_row(record(currency=None))["original_currency"] is None
    assert listing_to_row(record(current_bid=None))["original_currency"] is None


def test_row_mileage_is_canonical_km():
    row = listing_to_row(record())
    assert (row["mileage"], row["mileage_unit"]) == (45000, "km")
    miles = listing_to_row(record(mileage=10000, mileage_unit="miles"))
    assert miles["mileage"] == 16093
