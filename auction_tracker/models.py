# auction_tracker/models.py
"""SQLAlchemy ORM models for persisted entities.

`Auction` holds one row per listing (live or historical), keyed by the
platform-prefixed `external_id`. `PriceHistory` stores bid observations,
`ModelBackfillState` drives the historical backfill and `MarketData` keeps the
per make/model aggregates.
"""
from sqlalchemy import (
    Column, Integer, Text, Numeric, TIMESTAMP, JSON, ForeignKey,
    UniqueConstraint, func, Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from .db import Base

JSONType = JSON().with_variant(JSONB, "postgresql")


class Auction(Base):
    __tablename__ = "auctions"
    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Text, nullable=False, unique=True, index=True)
    platform = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    make = Column(Text, nullable=False, default="")
    model = Column(Text, nullable=False, default="")
    year = Column(Integer)
    trim = Column(Text)
    vin = Column(Text)
    mileage = Column(Integer)
    mileage_unit = Column(Text, nullable=False, default="miles")
    transmission = Column(Text)
    engine = Column(Text)
    exterior_color = Column(Text)
    interior_color = Column(Text)
    body_style = Column(Text)
    location = Column(Text)
    current_bid = Column(Numeric)
    final_price = Column(Numeric)
    bid_count = Column(Integer, nullable=False, default=0)
    status = Column(Text, nullable=False, default="ACTIVE")
    reserve_status = Column(Text)
    end_time = Column(TIMESTAMP(timezone=True))
    url = Column(Text, nullable=False)
    images = Column(JSONType)
    description = Column(Text)
    seller_notes = Column(Text)
    scraped_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())


class PriceHistory(Base):
    __tablename__ = "price_history"
    __table_args__ = (UniqueConstraint("auction_id", "timestamp", name="uq_price_history_auction_ts"),)
    id = Column(Integer, primary_key=True)
    auction_id = Column(Integer, ForeignKey("auctions.id", ondelete="CASCADE"), nullable=False, index=True)
    bid = Column(Numeric, nullable=False)
    timestamp = Column(TIMESTAMP(timezone=True), nullable=False)


class ModelBackfillState(Base):
    __tablename__ = "model_backfill_state"
    __table_args__ = (UniqueConstraint("make", "model", name="uq_backfill_make_model"),)
    id = Column(Integer, primary_key=True)
    make = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")
    backfilled_at = Column(TIMESTAMP(timezone=True))
    auction_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())


class MarketData(Base):
    __tablename__ = "market_data"
    __table_args__ = (
        UniqueConstraint("make", "model", "year_start", "year_end", name="uq_market_make_model_years"),
    )
    id = Column(Integer, primary_key=True)
    make = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    year_start = Column(Integer, nullable=False, default=0)
    year_end = Column(Integer, nullable=False, default=0)
    avg_price = Column(Numeric)
    low_price = Column(Numeric)
    high_price = Column(Numeric)
    total_sales = Column(Integer, nullable=False, default=0)
    last_updated = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

Index("idx_auctions_make_model", Auction.make, Auction.model)
Index("idx_auctions_status_end", Auction.status, Auction.end_time)
