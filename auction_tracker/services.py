# auction_tracker/services.py
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from . import crud
from .schemas import ListingRecord
from .utils import logger


def ingest_listing(db: Session, record: ListingRecord, secondary=None) -> Tuple[Optional[int], List[str]]:
    """Write one listing to the relational store, then mirror it to the hosted store.

    A failed mirror write is reported but never undoes the relational write.
    """
    errors = []
    try:
        auction_id = crud.upsert_auction(db, record)
    except Exception as e:
        db.rollback()
        logger.warning("Upsert failed for %s: %s", record.external_id, e)
        return None, [f"Upsert failed for {record.external_id}: {e}"]
    logger.debug("Ingested auction %s (id=%s)", record.external_id, auction_id)

    if secondary is not None:
        try:
            secondary.upsert_listing(record)
        except Exception as e:
            logger.warning("Supabase upsert failed for %s: %s", record.external_id, e)
            errors.append(f"Supabase upsert failed for {record.external_id}: {e}")
    return auction_id, errors
