# auction_tracker/crud.py
"""CRUD operations for auctions, price history and market aggregates.

Keyed writes go through dialect ``INSERT ... ON CONFLICT`` statements so a
re-scrape of the same listing is a single atomic upsert.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import Auction, MarketData, PriceHistory
from .schemas import OPEN_STATUSES, AuctionStatus, HistoricalAuctionRecord, ListingRecord
from .utils import utcnow

# written on create only; later scrapes never overwrite them
CREATE_ONLY = ("platform", "vin", "seller_notes")
# refreshed on every scrape, even to null
ALWAYS_UPDATE = ("title", "make", "model", "year", "current_bid", "bid_count",
                 "status", "end_time", "url", "scraped_at")


def insert_for(db: Session, table):
    """Dialect-specific insert so ``on_conflict_do_update`` is available."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)


def listing_row(record: ListingRecord) -> Dict[str, Any]:
    status = record.status.value if record.status else AuctionStatus.ACTIVE.value
    return {
        "external_id": record.external_id,
        "platform": record.platform.value,
        "title": record.title,
        "make": record.make,
        "model": record.model,
        "year": record.year,
        "trim": record.trim,
        "vin": record.vin,
        "mileage": record.mileage,
        "mileage_unit": record.mileage_unit,
        "transmission": record.transmission,
        "engine": record.engine,
        "exterior_color": record.exterior_color,
        "interior_color": record.interior_color,
        "body_style": record.body_style,
        "location": record.location,
        "current_bid": record.current_bid,
        "final_price": record.current_bid if status == AuctionStatus.SOLD.value else None,
        "bid_count": record.bid_count,
        "status": status,
        "reserve_status": record.reserve_status,
        "end_time": record.end_time,
        "url": record.url,
        "images": record.images,
        "description": record.description,
        "seller_notes": record.seller_notes,
        "scraped_at": record.scraped_at,
    }


def upsert_auction(db: Session, record: ListingRecord) -> int:
    """Create or update the auction row for `record` and return its id."""
    table = Auction.__table__
    data = listing_row(record)
    stmt = insert_for(db, table).values(**data)
    updates = {}
    for name in data:
        if name in CREATE_ONLY or name == "external_id":
            continue
        if name in ALWAYS_UPDATE:
            updates[name] = stmt.excluded[name]
        elif name == "mileage_unit":
            # the unit belongs to whichever reading is kept
            updates[name] = case(
                (stmt.excluded.mileage.is_not(None), stmt.excluded.mileage_unit),
                else_=table.c.mileage_unit,
            )
        else:
            # enrichment-only fields: a plain listing-page scrape must not blank them
            updates[name] = func.coalesce(stmt.excluded[name], table.c[name])
    updates["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=["external_id"], set_=updates)
    db.execute(stmt)
    db.commit()
    return db.execute(
        select(Auction.id).where(Auction.external_id == record.external_id)
    ).scalar_one()


def get_auction(db: Session, external_id: str):
    return db.query(Auction).filter(Auction.external_id == external_id).first()


def list_auctions(db: Session, skip: int = 0, limit: int = 50, filters: Dict = None):
    q = db.query(Auction)
    if filters:
        conds = []
        if filters.get("platform"):
            conds.append(Auction.platform == filters["platform"])
        if filters.get("make"):
            conds.append(Auction.make.ilike(filters["make"]))
        if filters.get("model"):
            conds.append(Auction.model.ilike(f"%{filters['model']}%"))
        if filters.get("status"):
            conds.append(Auction.status == filters["status"])
        if filters.get("min_price") is not None:
            conds.append(Auction.current_bid >= filters["min_price"])
        if filters.get("max_price") is not None:
            conds.append(Auction.current_bid <= filters["max_price"])
        if filters.get("min_year") is not None:
            conds.append(Auction.year >= filters["min_year"])
        if filters.get("max_year") is not None:
            conds.append(Auction.year <= filters["max_year"])
        if conds:
            q = q.filter(and_(*conds))
    total = q.count()
    items = q.order_by(Auction.end_time.desc(), Auction.id.desc()).offset(skip).limit(limit).all()
    return {"total": total, "items": items}


def minute_bucket(at: datetime) -> datetime:
    return at.replace(second=0, microsecond=0)


def record_price_point(db: Session, auction_id: int, bid: float, at: Optional[datetime] = None) -> bool:
    """One price point per auction and minute. Returns False when the minute is taken."""
    bucket = minute_bucket(at or utcnow())
    exists = db.query(PriceHistory.id).filter(
        PriceHistory.auction_id == auction_id, PriceHistory.timestamp == bucket
    ).first()
    if exists:
        return False
    db.add(PriceHistory(auction_id=auction_id, bid=bid, timestamp=bucket))
    try:
        db.commit()
    except IntegrityError:
        # a concurrent writer got the same minute first
        db.rollback()
        return False
    return True


def price_history(db: Session, auction_id: int):
    return (
        db.query(PriceHistory)
        .filter(PriceHistory.auction_id == auction_id)
        .order_by(PriceHistory.timestamp.asc())
        .all()
    )


def close_expired(db: Session, now: datetime) -> int:
    """Mark open auctions whose end time has passed as ENDED."""
    result = db.execute(
        update(Auction)
        .where(Auction.status.in_(OPEN_STATUSES), Auction.end_time.is_not(None), Auction.end_time < now)
        .values(status=AuctionStatus.ENDED.value, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount or 0


def open_auctions_without_end(db: Session, limit: int):
    return (
        db.query(Auction)
        .filter(Auction.status.in_(OPEN_STATUSES), Auction.end_time.is_(None))
        .order_by(Auction.scraped_at.asc())
        .limit(limit)
        .all()
    )


def apply_refresh(db: Session, auction: Auction, detail: Dict[str, Any], now: datetime) -> bool:
    """Apply status/bid/end time observed on a detail page. Returns True when anything changed."""
    changed = False
    bid = detail.get("current_bid")
    if bid is not None and (auction.current_bid is None or bid >= float(auction.current_bid)):
        if auction.current_bid is None or float(auction.current_bid) != bid:
            auction.current_bid = bid
            changed = True
    bid_count = detail.get("bid_count")
    if bid_count is not None and bid_count > (auction.bid_count or 0):
        auction.bid_count = bid_count
        changed = True
    end_time = detail.get("end_time")
    if end_time is not None and auction.end_time is None:
        auction.end_time = end_time
        changed = True

    status = detail.get("status")
    if status is None and end_time is not None and end_time <= now:
        status = AuctionStatus.ENDED
    if status is not None:
        value = status.value if isinstance(status, AuctionStatus) else str(status)
        if value != auction.status:
            auction.status = value
            if value == AuctionStatus.SOLD.value and auction.current_bid is not None:
                auction.final_price = auction.current_bid
            changed = True
    auction.scraped_at = now
    db.commit()
    return changed


def recompute_market_data(db: Session) -> int:
    """Aggregate current bids per make/model into market_data. Returns rows written."""
    groups = db.execute(
        select(
            Auction.make,
            Auction.model,
            func.avg(Auction.current_bid),
            func.min(Auction.current_bid),
            func.max(Auction.current_bid),
            func.count(Auction.id),
        )
        .where(Auction.current_bid.is_not(None), Auction.make != "")
        .group_by(Auction.make, Auction.model)
    ).all()

    table = MarketData.__table__
    written = 0
    for make, model, avg_price, low, high, count in groups:
        stmt = insert_for(db, table).values(
            make=make, model=model, year_start=0, year_end=0,
            avg_price=avg_price, low_price=low, high_price=high, total_sales=count,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["make", "model", "year_start", "year_end"],
            set_={
                "avg_price": stmt.excluded.avg_price,
                "low_price": stmt.excluded.low_price,
                "high_price": stmt.excluded.high_price,
                "total_sales": stmt.excluded.total_sales,
                "last_updated": func.now(),
            },
        )
        db.execute(stmt)
        written += 1
    db.commit()
    return written


def get_market_data(db: Session, make: str, model: str):
    return db.query(MarketData).filter(
        MarketData.make == make, MarketData.model == model,
        MarketData.year_start == 0, MarketData.year_end == 0,
    ).first()


def existing_external_ids(db: Session, external_ids):
    if not external_ids:
        return set()
    rows = db.execute(select(Auction.external_id).where(Auction.external_id.in_(list(external_ids))))
    return {r[0] for r in rows}


def create_historical_auction(db: Session, record: HistoricalAuctionRecord) -> Auction:
    obj = Auction(
        external_id=record.external_id,
        platform=record.platform.value,
        title=record.title,
        make=record.make,
        model=record.model,
        year=record.year,
        mileage=record.mileage,
        mileage_unit=record.mileage_unit,
        current_bid=record.price,
        final_price=record.price,
        bid_count=0,
        status=AuctionStatus.SOLD.value,
        end_time=record.auction_date,
        url=record.url,
        images=[record.image_url] if record.image_url else [],
        scraped_at=record.scraped_at,
    )
    db.add(obj)
    db.flush()
    return obj
