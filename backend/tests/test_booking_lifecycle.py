from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.models import AdminUser, Booking, BookingStatus
from app.models.base import BaseModel
from app.api.auth import create_admin_token, create_booking_token, create_driver_token
from app.api.dependencies import get_db
from app.crud import crud_booking
from app.services import booking_lifecycle
from app.services.booking_lifecycle import Actor
from app.utils.errors import BookingConflict, OwnershipMismatch, TransitionNotAllowed

KST = timezone(timedelta(hours=9))


def setup_app(url=None):
    if url:
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    BaseModel.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)

    def override_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    return Session


def create_booking(Session, status=BookingStatus.QUOTE_CONFIRMED, driver_id="drv-1", **fields):
    db = Session()
    booking = Booking(
        date=fields.pop("date", datetime.now(KST).date().isoformat()),
        time_slot="오전 (9시~12시)",
        area="강남구",
        items=[],
        total_price=80000,
        customer_name="김철수",
        phone="010-1234-5678",
        address="서울 강남구 테헤란로 1",
        status=status,
        driver_id=driver_id,
        driver_name="박기사" if driver_id else None,
        **fields,
    )
    db.add(booking)
    db.commit()
    booking_id = booking.id
    db.close()
    return booking_id


def create_admin(Session, email, role):
    db = Session()
    db.add(AdminUser(email=email, role=role))
    db.commit()
    db.close()
    return {"Authorization": f"Bearer {create_admin_token(email)}"}


def driver_headers(driver_id="drv-1"):
    return {"Authorization": f"Bearer {create_driver_token(driver_id, '박기사')}"}


def test_driver_advances_own_booking(patch_status_notifications):
    Session = setup_app()
    booking_id = create_booking(Session)
    client = TestClient(app)

    res = client.put(
        f"/api/v1/driver/bookings/{booking_id}",
        json={"status": "in_progress"},
        headers=driver_headers(),
    )
    assert res.status_code == 200
    assert res.json() == {"id": booking_id, "status": "in_progress"}
    patch_status_notifications.assert_called_once_with(
        "010-1234-5678", "in_progress", booking_id, None
    )

    res = client.put(
        f"/api/v1/driver/bookings/{booking_id}",
        json={"status": "completed"},
        headers=driver_headers(),
    )
    assert res.status_code == 200
    assert res.json()["status"] == "completed"


def test_driver_cannot_touch_other_drivers_booking():
    Session = setup_app()
    booking_id = create_booking(Session, driver_id="drv-2")
    client = TestClient(app)
    res = client.put(
        f"/api/v1/driver/bookings/{booking_id}",
        json={"status": "in_progress"},
        headers=driver_headers(),
    )
    assert res.status_code == 403

    db = Session()
    assert crud_booking.get_booking(db, booking_id).status == BookingStatus.QUOTE_CONFIRMED
    db.close()


def test_driver_illegal_edge_is_conflict(patch_status_notifications):
    Session = setup_app()
    booking_id = create_booking(Session)
    client = TestClient(app)
    # Skipping in_progress is not allowed
    res = client.put(
        f"/api/v1/driver/bookings/{booking_id}",
        json={"status": "completed"},
        headers=driver_headers(),
    )
    assert res.status_code == 409
    assert not patch_status_notifications.called


def test_driver_unknown_booking_is_404():
    setup_app()
    client = TestClient(app)
    res = client.put(
        "/api/v1/driver/bookings/missing",
        json={"status": "in_progress"},
        headers=driver_headers(),
    )
    assert res.status_code == 404


def test_driver_requires_driver_token():
    Session = setup_app()
    booking_id = create_booking(Session)
    client = TestClient(app)
    res = client.put(f"/api/v1/driver/bookings/{booking_id}", json={"status": "in_progress"})
    assert res.status_code == 401
    res = client.put(
        f"/api/v1/driver/bookings/{booking_id}",
        json={"status": "in_progress"},
        headers={"Authorization": f"Bearer {create_booking_token(booking_id)}"},
    )
    assert res.status_code == 401


def test_concurrent_change_reports_conflict(monkeypatch, patch_status_notifications, tmp_path):
    Session = setup_app(f"sqlite:///{tmp_path / 'race.db'}")
    booking_id = create_booking(Session)
    original_get = crud_booking.get_booking

    def get_then_reassign(db, bid):
        booking = original_get(db, bid)
        # Another operator reassigns the stop between the read and the write
        other = Session()
        other.query(Booking).filter(Booking.id == bid).update({"driver_id": "drv-2"})
        other.commit()
        other.close()
        return booking

    monkeypatch.setattr(crud_booking, "get_booking", get_then_reassign)
    db = Session()
    with pytest.raises(BookingConflict):
        booking_lifecycle.transition(
            db, booking_id, Actor.driver("drv-1"), BookingStatus.IN_PROGRESS
        )
    db.close()
    monkeypatch.setattr(crud_booking, "get_booking", original_get)

    db = Session()
    stored = crud_booking.get_booking(db, booking_id)
    assert stored.status == BookingStatus.QUOTE_CONFIRMED
    assert stored.driver_id == "drv-2"
    db.close()
    assert not patch_status_notifications.called


def test_second_identical_request_loses():
    Session = setup_app()
    booking_id = create_booking(Session)
    db = Session()
    booking_lifecycle.transition(db, booking_id, Actor.driver("drv-1"), BookingStatus.IN_PROGRESS)
    # The repeated request now sees in_progress, whose successor is completed
    with pytest.raises(TransitionNotAllowed) as exc_info:
        booking_lifecycle.transition(
            db, booking_id, Actor.driver("drv-1"), BookingStatus.IN_PROGRESS
        )
    assert exc_info.value.status_code == 409
    db.close()


def test_compare_and_swap_requires_expected_values():
    Session = setup_app()
    booking_id = create_booking(Session)
    db = Session()
    assert not crud_booking.compare_and_swap(
        db, booking_id, {"status": BookingStatus.PENDING}, {"status": BookingStatus.CANCELLED}
    )
    assert crud_booking.compare_and_swap(
        db,
        booking_id,
        {"status": BookingStatus.QUOTE_CONFIRMED, "driver_id": "drv-1"},
        {"status": BookingStatus.CANCELLED},
    )
    assert crud_booking.get_booking(db, booking_id).status == BookingStatus.CANCELLED
    db.close()


def test_update_fields_rejects_status():
    Session = setup_app()
    booking_id = create_booking(Session)
    db = Session()
    with pytest.raises(ValueError):
        crud_booking.update_fields(db, booking_id, {"status": BookingStatus.CANCELLED})
    db.close()


def test_terminal_booking_cannot_move():
    Session = setup_app()
    booking_id = create_booking(Session, status=BookingStatus.CANCELLED)
    headers = create_admin(Session, "admin@test.com", "admin")
    client = TestClient(app)
    res = client.put(
        f"/api/v1/admin/bookings/{booking_id}",
        json={"status": "pending"},
        headers=headers,
    )
    assert res.status_code == 409


def test_staff_illegal_edge_is_unprocessable():
    Session = setup_app()
    booking_id = create_booking(Session, status=BookingStatus.PENDING, driver_id=None)
    headers = create_admin(Session, "admin@test.com", "admin")
    client = TestClient(app)
    res = client.put(
        f"/api/v1/admin/bookings/{booking_id}",
        json={"status": "completed"},
        headers=headers,
    )
    assert res.status_code == 422


def test_operator_cannot_confirm_payment_or_set_price():
    Session = setup_app()
    booking_id = create_booking(Session, status=BookingStatus.PAYMENT_REQUESTED)
    headers = create_admin(Session, "ops@test.com", "operator")
    client = TestClient(app)

    res = client.put(
        f"/api/v1/admin/bookings/{booking_id}",
        json={"status": "payment_completed"},
        headers=headers,
    )
    assert res.status_code == 403

    res = client.put(
        f"/api/v1/admin/bookings/{booking_id}",
        json={"final_price": 90000},
        headers=headers,
    )
    assert res.status_code == 403

    res = client.put(
        f"/api/v1/admin/bookings/{booking_id}",
        json={"admin_memo": "계단 좁음"},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.json()["admin_memo"] == "계단 좁음"


def test_admin_confirms_quote_with_price(patch_status_notifications):
    Session = setup_app()
    booking_id = create_booking(Session, status=BookingStatus.PENDING, driver_id=None)
    headers = create_admin(Session, "Admin@Test.com", "admin")
    client = TestClient(app)
    res = client.put(
        f"/api/v1/admin/bookings/{booking_id}",
        json={"status": "quote_confirmed", "final_price": 95000, "admin_memo": "사다리 필요"},
        headers=headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "quote_confirmed"
    assert body["final_price"] == 95000
    assert body["admin_memo"] == "사다리 필요"
    patch_status_notifications.assert_called_once_with(
        "010-1234-5678", "quote_confirmed", booking_id, 95000
    )


def test_admin_update_with_stale_version_conflicts():
    Session = setup_app()
    booking_id = create_booking(Session, status=BookingStatus.PENDING, driver_id=None)
    headers = create_admin(Session, "admin@test.com", "admin")
    client = TestClient(app)
    stale = (datetime.utcnow() - timedelta(hours=1)).isoformat()
    res = client.put(
        f"/api/v1/admin/bookings/{booking_id}",
        json={"final_price": 70000, "expected_updated_at": stale},
        headers=headers,
    )
    assert res.status_code == 409

    current = client.get("/api/v1/admin/bookings", headers=headers).json()[0]
    res = client.put(
        f"/api/v1/admin/bookings/{booking_id}",
        json={"final_price": 70000, "expected_updated_at": current["updated_at"]},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.json()["final_price"] == 70000


def test_admin_update_without_changes_is_rejected():
    Session = setup_app()
    booking_id = create_booking(Session)
    headers = create_admin(Session, "admin@test.com", "admin")
    client = TestClient(app)
    res = client.put(f"/api/v1/admin/bookings/{booking_id}", json={}, headers=headers)
    assert res.status_code == 400


def test_delete_is_a_cancellation_for_admins_only():
    Session = setup_app()
    booking_id = create_booking(Session)
    operator = create_admin(Session, "ops@test.com", "operator")
    admin = create_admin(Session, "admin@test.com", "admin")
    client = TestClient(app)

    assert client.delete(f"/api/v1/admin/bookings/{booking_id}", headers=operator).status_code == 403
    res = client.delete(f"/api/v1/admin/bookings/{booking_id}", headers=admin)
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"

    db = Session()
    assert db.query(Booking).count() == 1
    db.close()


def test_customer_confirms_quote():
    Session = setup_app()
    booking_id = create_booking(Session, driver_id=None)
    client = TestClient(app)
    headers = {"X-Booking-Token": create_booking_token(booking_id)}
    res = client.put(
        f"/api/v1/bookings/{booking_id}/status", json={"status": "user_confirmed"}, headers=headers
    )
    assert res.status_code == 200
    assert res.json()["status"] == "user_confirmed"

    # Customers cannot cancel or complete on their own
    res = client.put(
        f"/api/v1/bookings/{booking_id}/status", json={"status": "completed"}, headers=headers
    )
    assert res.status_code == 422


def test_customer_actor_bound_to_booking():
    Session = setup_app()
    booking_id = create_booking(Session, status=BookingStatus.PENDING, driver_id=None)
    db = Session()
    with pytest.raises(OwnershipMismatch):
        booking_lifecycle.transition(
            db, booking_id, Actor.customer("other"), BookingStatus.CHANGE_REQUESTED
        )
    db.close()


def test_driver_sees_todays_assigned_stops_in_route_order():
    Session = setup_app()
    today = datetime.now(KST).date()
    second = create_booking(Session, route_order=2)
    first = create_booking(Session, route_order=1)
    create_booking(Session, driver_id="drv-2")
    create_booking(Session, status=BookingStatus.PENDING)
    create_booking(Session, date=(today + timedelta(days=5)).isoformat())
    client = TestClient(app)

    res = client.get("/api/v1/driver/bookings", headers=driver_headers())
    assert res.status_code == 200
    body = res.json()
    assert [b["id"] for b in body] == [first, second]
    assert "final_price" not in body[0]
    assert "admin_memo" not in body[0]


def test_allowed_targets_tables():
    staff = Actor.staff("a@test.com", "admin")
    driver = Actor.driver("drv-1")
    customer = Actor.customer("b-1")
    assert BookingStatus.PAYMENT_REQUESTED in booking_lifecycle.allowed_targets(
        staff, BookingStatus.COMPLETED
    )
    assert booking_lifecycle.allowed_targets(driver, BookingStatus.PENDING) == frozenset()
    assert booking_lifecycle.allowed_targets(driver, BookingStatus.IN_PROGRESS) == {
        BookingStatus.COMPLETED
    }
    assert booking_lifecycle.allowed_targets(customer, BookingStatus.IN_PROGRESS) == frozenset()
    for terminal in (BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.PAYMENT_COMPLETED):
        assert booking_lifecycle.allowed_targets(staff, terminal) == frozenset()


def test_admin_update_accepts_version_with_offset():
    Session = setup_app()
    booking_id = create_booking(Session, status=BookingStatus.PENDING, driver_id=None)
    headers = create_admin(Session, "admin@test.com", "admin")
    db = Session()
    stored = db.get(Booking, booking_id).updated_at
    db.close()
    # Same instant, sent back in Korea time
    in_kst = stored.replace(tzinfo=timezone.utc).astimezone(KST).isoformat()
    client = TestClient(app)
    res = client.put(
        f"/api/v1/admin/bookings/{booking_id}",
        json={"final_price": 70000, "expected_updated_at": in_kst},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.json()["final_price"] == 70000


def test_quote_confirmation_records_timestamp():
    Session = setup_app()
    booking_id = create_booking(Session, status=BookingStatus.PENDING, driver_id=None)
    db = Session()
    booking = booking_lifecycle.transition(
        db, booking_id, Actor.staff("op@test.com", "operator"), BookingStatus.QUOTE_CONFIRMED
    )
    assert booking.quote_confirmed_at is not None
    assert abs(booking.quote_confirmed_at - datetime.utcnow()) < timedelta(minutes=1)
    db.close()
