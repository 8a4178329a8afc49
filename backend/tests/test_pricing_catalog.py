from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker

from app.models import AreaRate, ItemCatalogEntry
from app.models.base import BaseModel
from app.db_utils import ensure_booking_geo_columns, seed_reference_data
from app.services.pricing_catalog import (
    DEFAULT_AREA_RATES,
    DEFAULT_ITEMS,
    PricingCatalog,
    detect_area,
    load_catalog,
)


def make_engine():
    engine = create_engine("sqlite://")
    BaseModel.metadata.create_all(engine)
    return engine


def test_seed_and_load_catalog():
    engine = make_engine()
    seed_reference_data(engine)
    db = sessionmaker(bind=engine)()
    catalog = load_catalog(db)
    assert len(catalog.areas) == len(DEFAULT_AREA_RATES)
    assert len(catalog.items) == len(DEFAULT_ITEMS)
    assert catalog.area("강남구").price3 == 113000
    assert catalog.ladder_tier("10층 이상").price_for_hours(2) == 320000
    assert catalog.item("가구", "소파").unit_price == 30000
    db.close()


def test_seed_leaves_operator_rows_alone():
    engine = make_engine()
    db = sessionmaker(bind=engine)()
    db.add(AreaRate(area_name="강남구", price1=1, price2=2, price3=3))
    db.commit()
    seed_reference_data(engine)
    seed_reference_data(engine)
    assert db.query(AreaRate).count() == 1
    assert db.query(ItemCatalogEntry).count() == len(DEFAULT_ITEMS)
    db.close()


def test_inactive_rows_are_not_priced():
    engine = make_engine()
    seed_reference_data(engine)
    db = sessionmaker(bind=engine)()
    db.query(ItemCatalogEntry).filter(ItemCatalogEntry.name == "소파").update({"active": False})
    db.commit()
    assert load_catalog(db).item("가구", "소파") is None
    db.close()


def test_ensure_booking_geo_columns_adds_missing_columns():
    engine = create_engine("sqlite://")
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE bookings (id VARCHAR(36) PRIMARY KEY)"))
    ensure_booking_geo_columns(engine)
    ensure_booking_geo_columns(engine)
    columns = {col["name"] for col in inspect(engine).get_columns("bookings")}
    assert {"latitude", "longitude"} <= columns


def test_detect_area():
    catalog = PricingCatalog.defaults()
    assert detect_area("강남구", "서울", catalog).area_name == "강남구"
    assert detect_area("고양시 덕양구", "경기", catalog).area_name == "고양"
    assert detect_area("수원시", "경기도", catalog).area_name == "수원"
    assert detect_area("연수구", "인천광역시", catalog).area_name == "인천"
    assert detect_area("해운대구", "부산", catalog) is None


def test_ladder_tier_lookup():
    catalog = PricingCatalog.defaults()
    tier = catalog.ladder_tier("10층 미만")
    assert tier.durations[0] == ("1시간 미만(기본요금)", 130000)
    assert catalog.ladder_tier(None) is None
    assert catalog.ladder_tier("") is None
