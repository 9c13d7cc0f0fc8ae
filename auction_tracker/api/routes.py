# auction_tracker/api/routes.py
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List, Optional
from .. import crud, schemas
from ..backfill import ModelBackfillTracker
from ..config import settings as app_settings
from ..db import get_db
from ..pipeline import build_pipeline
from ..utils import logger

router = APIRouter()


def get_settings():
    return app_settings


def get_pipeline(db: Session = Depends(get_db), settings=Depends(get_settings)):
    return build_pipeline(db, settings)


def require_cron_secret(authorization: Optional[str] = Header(None), settings=Depends(get_settings)):
    secret = settings.cron_secret
    if not secret or authorization != f"Bearer {secret}":
        logger.warning("Rejected cron call without a valid secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/api/cron", response_model=schemas.CronResponse, dependencies=[Depends(require_cron_secret)])
def cron(pipeline=Depends(get_pipeline)):
    try:
        data = pipeline.run()
    except Exception as e:
        logger.exception("Cron run failed: %s", e)
        body = schemas.CronResponse(success=False, error=str(e))
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))
    return schemas.CronResponse(success=True, data=data)


@router.get("/listings", response_model=List[schemas.AuctionOut])
def listings(
    skip: int = 0,
    limit: int = Query(20, le=200),
    platform: Optional[str] = Query(None),
    make: Optional[str] = Query(None),
    model: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None),
    max_price: Optional[float] = Query(None),
    min_year: Optional[int] = Query(None),
    max_year: Optional[int] = Query(None),
    db: Session = Depends(get_db)
):
    filters = schemas.ListingFilter(
        platform=platform, make=make, model=model, status=status,
        min_price=min_price, max_price=max_price, min_year=min_year, max_year=max_year,
    )
    res = crud.list_auctions(db, skip=skip, limit=limit, filters=filters.as_dict())
    return res["items"]


@router.get("/listings/{external_id}", response_model=schemas.AuctionOut)
def get_listing(external_id: str, db: Session = Depends(get_db)):
    obj = crud.get_auction(db, external_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Listing not found")
    return obj


@router.get("/listings/{external_id}/price-history", response_model=List[schemas.PricePointOut])
def get_price_history(external_id: str, db: Session = Depends(get_db)):
    obj = crud.get_auction(db, external_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Listing not found")
    return crud.price_history(db, obj.id)


@router.get("/backfill/stats", response_model=schemas.BackfillStats)
def backfill_stats(db: Session = Depends(get_db)):
    return ModelBackfillTracker(db).stats()
