import json

import httpx
import pytest

from app.utils import background_worker, notifications
from app.utils.notifications import notify_status_change as queue_status_sms


@pytest.fixture
def sms_configured(monkeypatch):
    monkeypatch.setattr(notifications.settings, "SMS_API_KEY", "key-123")
    monkeypatch.setattr(notifications.settings, "SMS_PROJECT_ID", "proj-1")
    monkeypatch.setattr(notifications.settings, "SMS_API_BASE", "https://sms.example.com/v1")


def mock_gateway(monkeypatch, handler):
    real_client = httpx.Client
    monkeypatch.setattr(
        notifications.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


@pytest.mark.parametrize(
    "phone,expected",
    [
        ("010-1234-5678", "+821012345678"),
        ("01012345678", "+821012345678"),
        ("+82 10 1234 5678", "+821012345678"),
    ],
)
def test_to_e164(phone, expected):
    assert notifications.to_e164(phone) == expected


def test_render_status_message():
    body = notifications.render_status_message("quote_confirmed", 95000)
    assert body.startswith(notifications.SMS_PREFIX)
    assert "최종 견적: 95,000원" in body
    assert body.endswith(f"조회: {notifications.settings.BOOKING_MANAGE_URL}")

    assert "접수" in notifications.render_status_message("pending")
    assert "결제 링크: https://pay.example.com/1" in notifications.render_status_message(
        "payment_requested", payment_url="https://pay.example.com/1"
    )
    assert notifications.render_status_message("user_confirmed") is None
    assert notifications.render_status_message("payment_completed") is None


def test_send_skips_when_unconfigured(monkeypatch):
    monkeypatch.setattr(notifications.settings, "SMS_API_KEY", "")

    def handler(request):
        raise AssertionError("gateway must not be called")

    mock_gateway(monkeypatch, handler)
    assert notifications.send_status_sms("010-1234-5678", "completed", "b-1") is False


def test_send_posts_to_gateway(monkeypatch, sms_configured):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    mock_gateway(monkeypatch, handler)
    assert notifications.send_status_sms("010-1234-5678", "in_progress", "b-1") is True
    assert seen["url"] == "https://sms.example.com/v1/projects/proj-1/sms"
    assert seen["auth"] == "Bearer key-123"
    assert seen["body"]["targetIds"] == ["+821012345678"]
    assert seen["body"]["targetType"] == "phoneNumber"
    assert "출발" in seen["body"]["body"]


def test_send_raises_on_gateway_error(monkeypatch, sms_configured):
    mock_gateway(monkeypatch, lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(httpx.HTTPStatusError):
        notifications.send_status_sms("010-1234-5678", "completed", "b-1")


def test_notify_queues_send(monkeypatch):
    calls = []

    def fake_enqueue(func, *args, **kwargs):
        calls.append((func, args, kwargs))
        return "task-1"

    monkeypatch.setattr(background_worker, "enqueue", fake_enqueue)
    assert queue_status_sms("010-1234-5678", "completed", "b-1") == "task-1"
    func, args, kwargs = calls[0]
    assert func is notifications.send_status_sms
    assert args == ("010-1234-5678", "completed", "b-1", None)
    assert kwargs == {"retries": 2}

    # Silent statuses queue nothing
    assert queue_status_sms("010-1234-5678", "user_confirmed", "b-1") is None
    assert len(calls) == 1
