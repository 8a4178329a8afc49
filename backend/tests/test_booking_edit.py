from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.models import Booking, BookingStatus
from app.models.base import BaseModel
from app.api.auth import create_booking_token
from app.api.dependencies import get_db
from app.db_utils import seed_reference_data
from app.schemas.booking import BookingEdit
from app.services import booking_lifecycle
from app.services.booking_lifecycle import KST, Actor
from app.services.pricing_catalog import PricingCatalog
from app.utils.errors import EditNotAllowed


def setup_app():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    BaseModel.metadata.create_all(engine)
    seed_reference_data(engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False)

    def override_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    return Session


def _pickup_date(days_ahead=10):
    return (datetime.now(KST).date() + timedelta(days=days_ahead)).isoformat()


def _booking_payload(**overrides):
    payload = {
        "date": _pickup_date(),
        "time_slot": "오전 (9시~12시)",
        "area": "강남구",
        "items": [
            {"category": "가구", "name": "소파", "quantity": 2},
            {"category": "장롱", "name": "장롱 3자", "quantity": 1},
        ],
        "need_ladder": True,
        "ladder_type": "10층 미만",
        "ladder_hours": 1,
        "customer_name": "김철수",
        "phone": "010-1234-5678",
        "address": "서울 강남구 테헤란로 1",
    }
    payload.update(overrides)
    return payload


def submit(client, **overrides):
    res = client.post("/api/v1/bookings", json=_booking_payload(**overrides))
    assert res.status_code == 201
    body = res.json()
    return body["booking"]["id"], {"X-Booking-Token": body["booking_token"]}


def test_edit_reprices_from_catalog():
    setup_app()
    client = TestClient(app)
    booking_id, headers = submit(client)

    res = client.put(
        f"/api/v1/bookings/{booking_id}",
        json={
            "items": [{"category": "가구", "name": "소파", "quantity": 1, "price": 1}],
            "need_ladder": False,
            "memo": "엘리베이터 있음",
        },
        headers=headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["total_price"] == 80000
    assert body["ladder_price"] == 0
    assert body["ladder_type"] is None
    assert body["items"][0]["price"] == 30000
    assert body["memo"] == "엘리베이터 있음"
    assert body["status"] == "pending"


def test_edit_without_items_keeps_stored_lines():
    Session = setup_app()
    client = TestClient(app)
    booking_id, headers = submit(client)

    res = client.put(
        f"/api/v1/bookings/{booking_id}", json={"address_detail": "202호"}, headers=headers
    )
    assert res.status_code == 200
    assert res.json()["total_price"] == 120000 + 50000 + 210000
    db = Session()
    assert db.get(Booking, booking_id).total_loading_cube == pytest.approx(4.4)
    db.close()


def test_edit_rejected_once_quote_confirmed():
    Session = setup_app()
    client = TestClient(app)
    booking_id, headers = submit(client)
    db = Session()
    db.get(Booking, booking_id).status = BookingStatus.QUOTE_CONFIRMED
    db.commit()
    db.close()

    res = client.put(f"/api/v1/bookings/{booking_id}", json={"memo": "변경"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"]["field_errors"] == {"status": "quote_confirmed"}


def test_edit_into_taken_slot_conflicts():
    setup_app()
    client = TestClient(app)
    submit(client, time_slot="오후 (13시~17시)")
    booking_id, headers = submit(client)

    res = client.put(
        f"/api/v1/bookings/{booking_id}", json={"time_slot": "오후 (13시~17시)"}, headers=headers
    )
    assert res.status_code == 409

    # Keeping its own slot is not a conflict
    res = client.put(
        f"/api/v1/bookings/{booking_id}", json={"time_slot": "오전 (9시~12시)"}, headers=headers
    )
    assert res.status_code == 200


def test_edit_requires_matching_token_and_changes():
    setup_app()
    client = TestClient(app)
    booking_id, headers = submit(client)

    res = client.put(f"/api/v1/bookings/{booking_id}", json={}, headers=headers)
    assert res.status_code == 400

    other = {"X-Booking-Token": create_booking_token("someone-else")}
    res = client.put(f"/api/v1/bookings/{booking_id}", json={"memo": "x"}, headers=other)
    assert res.status_code == 403

    res = client.put(f"/api/v1/bookings/{booking_id}", json={"memo": "x"})
    assert res.status_code == 401


def test_edit_deadline_is_ten_pm_kst_the_day_before():
    assert booking_lifecycle.edit_deadline("2026-11-02") == datetime(2026, 11, 1, 22, 0, tzinfo=KST)


def test_edit_closes_at_deadline():
    Session = setup_app()
    client = TestClient(app)
    booking_id, _ = submit(client, date="2026-11-02")
    catalog = PricingCatalog.defaults()
    actor = Actor.customer(booking_id)

    db = Session()
    just_before = datetime(2026, 11, 1, 12, 59, tzinfo=timezone.utc)
    booking = booking_lifecycle.edit_pending_booking(
        db, booking_id, actor, BookingEdit(memo="문 앞"), catalog, now=just_before
    )
    assert booking.memo == "문 앞"

    at_deadline = datetime(2026, 11, 1, 13, 0, tzinfo=timezone.utc)
    with pytest.raises(EditNotAllowed) as exc:
        booking_lifecycle.edit_pending_booking(
            db, booking_id, actor, BookingEdit(memo="늦음"), catalog, now=at_deadline
        )
    assert exc.value.field_errors == {"date": "2026-11-02 edit_deadline_passed"}
    db.close()


def test_moving_pickup_inside_deadline_is_rejected():
    Session = setup_app()
    client = TestClient(app)
    booking_id, _ = submit(client, date="2026-11-20")

    db = Session()
    with pytest.raises(EditNotAllowed):
        booking_lifecycle.edit_pending_booking(
            db,
            booking_id,
            Actor.customer(booking_id),
            BookingEdit(date="2026-11-02"),
            PricingCatalog.defaults(),
            now=datetime(2026, 11, 1, 14, 0, tzinfo=timezone.utc),
        )
    db.close()
