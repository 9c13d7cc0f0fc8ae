# tests/test_crud.py
from datetime import datetime, timedelta, timezone

from auction_tracker import crud
from auction_tracker.schemas import AuctionStatus, ListingRecord, Platform

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def record(external_id="bat-test-1", **overrides):
    data = dict(
        external_id=external_id,
        platform=Platform.BRING_A_TRAILER,
        url=f"https://bringatrailer.com/listing/{external_id}/",
        title="1995 Porsche 911 Carrera",
        make="Porsche",
        model="911 Carrera",
        year=1995,
        current_bid=1000,
        bid_count=3,
        status=AuctionStatus.ACTIVE,
        scraped_at=NOW,
    )
    data.update(overrides)
    return ListingRecord(**data)


def test_upsert_and_get(db):
    auction_id = crud.upsert_auction(db, record())
    obj = crud.get_auction(db, "bat-test-1")
    assert obj is not None
    assert obj.id == auction_id
    assert obj.title == "1995 Porsche 911 Carrera"
    assert obj.platform == "BRING_A_TRAILER"


def test_upsert_updates_in_place(db):
    first = crud.upsert_auction(db, record(
        vin="WP0AA2998SS320001", description="One owner.", current_bid=1000,
    ))
    second = crud.upsert_auction(db, record(
        vin="WP0AA2998SS399999", description=None, current_bid=1500, bid_count=5,
        title="1995 Porsche 911 Carrera Coupe",
    ))
    assert first == second
    db.expire_all()
    obj = crud.get_auction(db, "bat-test-1")
    assert obj.vin == "WP0AA2998SS320001"
    assert obj.description == "One owner."
    assert float(obj.current_bid) == 1500.0
    assert obj.bid_count == 5
    assert obj.title == "1995 Porsche 911 Carrera Coupe"


def test_sold_listing_sets_final_price(db):
    crud.upsert_auction(db, record(status=AuctionStatus.SOLD, current_bid=42000))
    obj = crud.get_auction(db, "bat-test-1")
    assert float(obj.final_price) == 42000.0


def test_price_points_are_bucketed_by_minute(db):
    auction_id = crud.upsert_auction(db, record())
    assert crud.record_price_point(db, auction_id, 1000, NOW + timedelta(seconds=5))
    assert not crud.record_price_point(db, auction_id, 1100, NOW + timedelta(seconds=40))
    assert crud.record_price_point(db, auction_id, 1200, NOW + timedelta(minutes=1))
    points = crud.price_history(db, auction_id)
    assert [float(p.bid) for p in points] == [1000.0, 1200.0]


def test_close_expired(db):
    crud.upsert_auction(db, record("bat-ended", end_time=NOW - timedelta(hours=1)))
    crud.upsert_auction(db, record("bat-live", end_time=NOW + timedelta(hours=1)))
    crud.upsert_auction(db, record("bat-open"))
    crud.upsert_auction(db, record("bat-sold", status=AuctionStatus.SOLD, end_time=NOW - timedelta(days=1)))

    assert crud.close_expired(db, NOW) == 1
    db.expire_all()
    assert crud.get_auction(db, "bat-ended").status == "ENDED"
    assert crud.get_auction(db, "bat-live").status == "ACTIVE"
    assert crud.get_auction(db, "bat-sold").status == "SOLD"
    assert [a.external_id for a in crud.open_auctions_without_end(db, 10)] == ["bat-open"]


def test_apply_refresh_moves_bids_up_only(db):
    crud.upsert_auction(db, record())
    obj = crud.get_auction(db, "bat-test-1")
    assert not crud.apply_refresh(db, obj, {"current_bid": 900.0, "bid_count": 1}, NOW)
    assert crud.apply_refresh(db, obj, {"current_bid": 1800.0, "status": AuctionStatus.SOLD}, NOW)
    assert obj.status == "SOLD"
    assert float(obj.final_price) == 1800.0


def test_recompute_market_data(db):
    crud.upsert_auction(db, record("bat-a", current_bid=100))
    crud.upsert_auction(db, record("bat-b", current_bid=200))
    crud.upsert_auction(db, record("bat-c", current_bid=None))
    crud.upsert_auction(db, record("bat-d", make="", model="", current_bid=500))

    assert crud.recompute_market_data(db) == 1
    assert crud.recompute_market_data(db) == 1
    row = crud.get_market_data(db, "Porsche", "911 Carrera")
    assert float(row.avg_price) == 150.0
    assert float(row.low_price) == 100.0
    assert float(row.high_price) == 200.0
    assert row.total_sales == 2


def test_list_auctions_filters(db):
    crud.upsert_auction(db, record("bat-a", current_bid=50000, year=1995))
    crud.upsert_auction(db, record("bat-b", current_bid=90000, year=2003, make="Ferrari", model="360 Modena"))
    crud.upsert_auction(db, record("cab-c", platform=Platform.CARS_AND_BIDS, current_bid=70000, year=2021))

    assert crud.list_auctions(db)["total"] == 3
    assert [a.external_id for a in crud.list_auctions(db, filters={"make": "ferrari"})["items"]] == ["bat-b"]
    assert crud.list_auctions(db, filters={"platform": "CARS_AND_BIDS"})["total"] == 1
    assert crud.list_auctions(db, filters={"min_price": 60000, "max_price": 80000})["total"] == 1
    assert crud.list_auctions(db, filters={"min_year": 2000})["total"] == 2
    assert crud.list_auctions(db, filters={"model": "modena"})["total"] == 1
    assert len(crud.list_auctions(db, skip=1, limit=1)["items"]) == 1


def test_mileage_unit_follows_the_kept_reading(db):
    crud.upsert_auction(db, record("cc-1990-porsche-944-s2", platform=Platform.COLLECTING_CARS))
    crud.upsert_auction(db, record("cc-1990-porsche-944-s2", platform=Platform.COLLECTING_CARS,
                                   mileage=45000, mileage_unit="km"))
    db.expire_all()
    obj = crud.get_auction(db, "cc-1990-porsche-944-s2")
    assert (obj.mileage, obj.mileage_unit) == (45000, "km")

    # a later card without a reading keeps both halves
    crud.upsert_auction(db, record("cc-1990-porsche-944-s2", platform=Platform.COLLECTING_CARS))
    db.expire_all()
    obj = crud.get_auction(db, "cc-1990-porsche-944-s2")
    assert (obj.mileage, obj.mileage_unit) == (45000, "km")
