# auction_tracker/secondary.py
"""Writes listings to the hosted Supabase `listings` table.

The hosted store is a mirror for the public site; it is keyed by
``(source, source_id)`` and never takes part in the relational transaction.
"""
from supabase import create_client

from .schemas import ListingRecord
from .utils import logger, retry

TABLE = "listings"
SOURCE_NAMES = {
    "BRING_A_TRAILER": "BaT",
    "CARS_AND_BIDS": "CarsAndBids",
    "COLLECTING_CARS": "CollectingCars",
}


def listing_to_row(record: ListingRecord) -> dict:
    return {
        "source": SOURCE_NAMES.get(record.platform.value, record.platform.value),
        "source_id": record.external_id,
        "source_url": record.url,
        "year": record.year,
        "make": record.make,
        "model": record.model,
        "trim": record.trim,
        "body_style": record.body_style,
        "color_exterior": record.exterior_color,
        "color_interior": record.interior_color,
        "mileage": record.mileage_km,
        "mileage_unit": "km" if record.mileage is not None else None,
        "vin": record.vin,
        "hammer_price": record.current_bid,
        "original_currency": record.currency if record.current_bid is not None else None,
        "status": record.status.value if record.status else None,
        "reserve_met": (record.reserve_status in ("RESERVE_MET", "NO_RESERVE")) if record.reserve_status else None,
        "auction_date": record.end_time.isoformat() if record.end_time else None,
        "photos_count": len(record.images),
        "description_text": record.description,
        "scrape_timestamp": record.scraped_at.isoformat(),
        "updated_at": record.scraped_at.isoformat(),
    }


class SecondaryStore:
    def __init__(self, client, table=TABLE):
        self.client = client
        self.table = table

    @retry(Exception, tries=2, delay=1, backoff=2)
    def upsert_listing(self, record: ListingRecord):
        """Upsert one listing and return the hosted row id."""
        row = listing_to_row(record)
        result = self.client.table(self.table).upsert([row], on_conflict="source,source_id").execute()
        if result.data:
            return result.data[0].get("id")
        found = (
            self.client.table(self.table)
            .select("id")
            .eq("source", row["source"])
            .eq("source_id", row["source_id"])
            .limit(1)
            .execute()
        )
        if not found.data:
            raise RuntimeError(f"Supabase upsert returned no id for {record.external_id}")
        return found.data[0]["id"]


def build_secondary_store(settings):
    """Client for the hosted store, or None when it is not configured."""
    if not settings.secondary_store_configured:
        logger.info("Supabase not configured; secondary store writes disabled")
        return None
    if not settings.supabase_service_role:
        logger.warning("SUPABASE_SERVICE_ROLE_KEY not set, using anon key (writes may be blocked by RLS)")
    return SecondaryStore(create_client(settings.supabase_url, settings.supabase_key))
