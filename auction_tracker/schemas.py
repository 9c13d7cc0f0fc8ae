# auction_tracker/schemas.py
from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta
from .utils import as_utc

MILES_TO_KM = 1.609344
ENDING_SOON_WINDOW = timedelta(hours=24)


class Platform(str, Enum):
    BRING_A_TRAILER = "BRING_A_TRAILER"
    CARS_AND_BIDS = "CARS_AND_BIDS"
    COLLECTING_CARS = "COLLECTING_CARS"


class AuctionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ENDING_SOON = "ENDING_SOON"
    ENDED = "ENDED"
    SOLD = "SOLD"
    NO_SALE = "NO_SALE"


OPEN_STATUSES = (AuctionStatus.ACTIVE.value, AuctionStatus.ENDING_SOON.value)


class BackfillStatus(str, Enum):
    PENDING = "PENDING"
    BACKFILLED = "BACKFILLED"
    FAILED = "FAILED"


def normalize_mileage_to_km(mileage, unit) -> Optional[int]:
    if mileage is None:
        return None
    if unit and unit.lower() in ("km", "kms", "kilometer", "kilometers", "kilometres"):
        return int(round(mileage))
    return int(round(mileage * MILES_TO_KM))


def normalize_vin(vin, year) -> Optional[str]:
    if not vin:
        return None
    cleaned = "".join(vin.split()).upper()
    if not cleaned:
        return None
    # 17-character VINs were only standardised for 1981 model year onwards
    if year and year >= 1981 and len(cleaned) != 17:
        return None
    return cleaned


class ListingRecord(BaseModel):
    external_id: str = Field(..., min_length=1)
    platform: Platform
    url: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    make: str = ""
    model: str = ""
    year: Optional[int] = None
    trim: Optional[str] = None
    vin: Optional[str] = None
    mileage: Optional[int] = Field(None, ge=0)
    mileage_unit: str = "miles"
    transmission: Optional[str] = None
    engine: Optional[str] = None
    exterior_color: Optional[str] = None
    interior_color: Optional[str] = None
    body_style: Optional[str] = None
    location: Optional[str] = None
    current_bid: Optional[float] = None
    currency: Optional[str] = None
    bid_count: int = Field(0, ge=0)
    status: Optional[AuctionStatus] = None
    reserve_status: Optional[str] = None
    end_time: Optional[datetime] = None
    images: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    seller_notes: Optional[str] = None
    scraped_at: datetime

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("title must not be empty")
        return v

    @field_validator("end_time", "scraped_at")
    @classmethod
    def _utc(cls, v):
        return as_utc(v)

    @field_validator("current_bid")
    @classmethod
    def _positive_bid(cls, v):
        if v is None or v <= 0:
            return None
        return v

    @field_validator("images")
    @classmethod
    def _dedupe_images(cls, v):
        seen = []
        for src in v:
            if src and src not in seen:
                seen.append(src)
        return seen

    @model_validator(mode="after")
    def _check_vin(self):
        vin = normalize_vin(self.vin, self.year)
        if vin != self.vin:
            self.vin = vin
        return self

    @property
    def mileage_km(self) -> Optional[int]:
        return normalize_mileage_to_km(self.mileage, self.mileage_unit)

    def resolve_status(self, now: datetime) -> "ListingRecord":
        """Fill in or sharpen the status by comparing end_time to `now`."""
        status = self.status
        if status is None:
            if self.end_time is None:
                status = AuctionStatus.ACTIVE
            elif self.end_time <= now:
                status = AuctionStatus.ENDED
            else:
                status = AuctionStatus.ACTIVE
        if status == AuctionStatus.ACTIVE and self.end_time is not None:
            if self.end_time <= now:
                status = AuctionStatus.ENDED
            elif self.end_time - now <= ENDING_SOON_WINDOW:
                status = AuctionStatus.ENDING_SOON
        if status == self.status:
            return self
        return self.model_copy(update={"status": status})


class HistoricalAuctionRecord(BaseModel):
    external_id: str
    platform: Platform = Platform.BRING_A_TRAILER
    status: AuctionStatus = AuctionStatus.SOLD
    title: str
    make: str
    model: str
    year: Optional[int] = None
    price: Optional[float] = None
    currency: str = "USD"
    mileage: Optional[int] = Field(None, ge=0)
    mileage_unit: str = "miles"
    url: str
    image_url: Optional[str] = None
    auction_date: Optional[datetime] = None
    scraped_at: datetime

    @property
    def observed_at(self) -> datetime:
        return self.auction_date or self.scraped_at

    @field_validator("auction_date", "scraped_at")
    @classmethod
    def _utc(cls, v):
        return as_utc(v)

    @field_validator("status")
    @classmethod
    def _always_sold(cls, v):
        if v != AuctionStatus.SOLD:
            raise ValueError("historical auctions are always SOLD")
        return v


class ModelIdentifier(BaseModel):
    make: str
    model: str

    @property
    def key(self):
        return (self.make, self.model)


class BackfillState(BaseModel):
    make: str
    model: str
    status: BackfillStatus
    backfilled_at: Optional[datetime] = None
    auction_count: int = 0
    error_message: Optional[str] = None
    class Config:
        from_attributes = True


class BackfillStats(BaseModel):
    pending: int = 0
    backfilled: int = 0
    failed: int = 0
    total: int = 0


class AuctionOut(BaseModel):
    id: int
    external_id: str
    platform: str
    title: str
    make: str
    model: str
    year: Optional[int]
    mileage: Optional[int]
    mileage_unit: Optional[str]
    current_bid: Optional[float]
    final_price: Optional[float]
    bid_count: int
    status: str
    end_time: Optional[datetime]
    url: str
    images: Optional[List[str]]
    vin: Optional[str]
    transmission: Optional[str]
    engine: Optional[str]
    exterior_color: Optional[str]
    interior_color: Optional[str]
    location: Optional[str]
    description: Optional[str]
    scraped_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    class Config:
        from_attributes = True


class PricePointOut(BaseModel):
    bid: float
    timestamp: datetime
    class Config:
        from_attributes = True


class BackfillSummary(BaseModel):
    models_processed: int = 0
    auctions_added: int = 0


class CronData(BaseModel):
    discovered: int = 0
    written: int = 0
    refreshed: int = 0
    price_points: int = 0
    new_models: int = 0
    backfill: BackfillSummary = Field(default_factory=BackfillSummary)
    aggregations: int = 0
    closed: int = 0
    by_platform: Dict[str, int] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    duration_ms: int = 0


class CronResponse(BaseModel):
    success: bool
    data: Optional[CronData] = None
    error: Optional[str] = None


class ListingFilter(BaseModel):
    platform: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    status: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
