"""Customer SMS notifications for booking status changes.

Delivery goes through the FlareLane SMS API. Sends are queued on the
background worker so a slow or failing gateway never affects the request
that changed the booking.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, Optional

import httpx

from ..core.config import settings
from . import background_worker

logger = logging.getLogger(__name__)

SMS_PREFIX = "[커버링 방문수거]"

# Booking status -> template key. "dispatched" is an event, not a status.
STATUS_ALIAS: Dict[str, str] = {"pending": "received"}


def format_price(amount: int) -> str:
    return f"{amount:,}원"


def _received(final_price: Optional[int], payment_url: Optional[str]) -> str:
    return (
        f"{SMS_PREFIX} 수거 신청이 접수되었어요!\n\n"
        "담당자가 견적을 검토 중이에요. 빠르게 연락드릴게요.\n"
        "신청 내역은 아래 링크에서 확인하세요."
    )


def _quote_confirmed(final_price: Optional[int], payment_url: Optional[str]) -> str:
    price = format_price(final_price) if final_price is not None else "미정"
    return (
        f"{SMS_PREFIX} 안녕하세요! 견적이 확정되었어요.\n\n"
        f"최종 견적: {price}\n\n"
        "견적이 맞지 않으시면 수거 전날까지 변경·취소가 가능해요.\n"
        "아래 링크에서 상세 내용을 확인해 주세요."
    )


def _in_progress(final_price: Optional[int], payment_url: Optional[str]) -> str:
    return (
        f"{SMS_PREFIX} 수거 팀이 출발했어요!\n\n"
        "도착 예정 시간에 맞춰 문 앞에 품목을 준비해 주시면 더 빠르게 진행돼요.\n"
        "감사합니다!"
    )


def _completed(final_price: Optional[int], payment_url: Optional[str]) -> str:
    return (
        f"{SMS_PREFIX} 수거가 완료되었어요!\n\n"
        "이용해 주셔서 감사합니다.\n"
        "다음에도 필요하시면 편하게 신청해 주세요."
    )


def _payment_requested(final_price: Optional[int], payment_url: Optional[str]) -> str:
    text = f"{SMS_PREFIX} 정산 안내드려요."
    if payment_url:
        text += f"\n\n아래 링크에서 결제를 진행해 주세요.\n결제 링크: {payment_url}"
    return text + "\n\n결제 완료 후 정산이 확정돼요.\n문의사항은 카카오톡 채널로 연락 주세요!"


def _dispatched(final_price: Optional[int], payment_url: Optional[str]) -> str:
    return (
        f"{SMS_PREFIX} 안녕하세요! 수거 담당 기사가 배정되었어요.\n\n"
        "수거 당일 기사 출발 시 다시 안내드릴게요. 감사합니다!"
    )


def _cancelled(final_price: Optional[int], payment_url: Optional[str]) -> str:
    return (
        f"{SMS_PREFIX} 수거 신청이 취소되었어요.\n\n"
        "새로운 수거가 필요하시면 언제든 편하게 신청해 주세요!\n"
        "감사합니다."
    )


def _rejected(final_price: Optional[int], payment_url: Optional[str]) -> str:
    return (
        f"{SMS_PREFIX} 죄송합니다. 해당 건은 수거가 어려운 상황이에요.\n\n"
        "자세한 사유가 궁금하시면 카카오톡 채널로 문의해 주세요.\n"
        "불편을 드려 죄송합니다."
    )


def _quote_expired(final_price: Optional[int], payment_url: Optional[str]) -> str:
    return (
        f"{SMS_PREFIX} 견적 확인 기간이 지나 수거 신청이 자동 취소되었어요.\n\n"
        "다시 필요하시면 언제든 편하게 신청해 주세요!\n"
        "감사합니다."
    )


STATUS_TEMPLATES: Dict[str, Callable[[Optional[int], Optional[str]], str]] = {
    "received": _received,
    "quote_confirmed": _quote_confirmed,
    "in_progress": _in_progress,
    "completed": _completed,
    "payment_requested": _payment_requested,
    "dispatched": _dispatched,
    "cancelled": _cancelled,
    "rejected": _rejected,
    "quote_expired": _quote_expired,
}


def to_e164(phone: str) -> str:
    """Convert a Korean number ("010-1234-5678") to E.164 ("+821012345678")."""
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("0"):
        return "+82" + digits[1:]
    return "+" + digits


def render_status_message(
    status: str, final_price: Optional[int] = None, payment_url: Optional[str] = None
) -> Optional[str]:
    """Return the SMS body for ``status`` or None when the status is silent."""
    template = STATUS_TEMPLATES.get(STATUS_ALIAS.get(status, status))
    if template is None:
        return None
    return template(final_price, payment_url) + f"\n조회: {settings.BOOKING_MANAGE_URL}"


def send_status_sms(
    phone: str,
    status: str,
    booking_id: str,
    final_price: Optional[int] = None,
    payment_url: Optional[str] = None,
) -> bool:
    """Deliver one status SMS. Returns False when skipped.

    Raises ``httpx.HTTPError`` on delivery failure so the worker can retry.
    """
    if not settings.SMS_API_KEY or not settings.SMS_PROJECT_ID:
        logger.info("SMS gateway not configured; skipping", extra={"booking_id": booking_id})
        return False
    body = render_status_message(status, final_price, payment_url)
    if body is None:
        return False

    url = f"{settings.SMS_API_BASE}/projects/{settings.SMS_PROJECT_ID}/sms"
    payload = {
        "targetType": "phoneNumber",
        "targetIds": [to_e164(phone)],
        "isAdvertisement": False,
        "body": body,
    }
    headers = {"Authorization": f"Bearer {settings.SMS_API_KEY}"}
    with httpx.Client(timeout=settings.SMS_TIMEOUT) as client:
        response = client.post(url, json=payload, headers=headers)
    if response.status_code >= 400:
        logger.warning(
            "SMS delivery failed booking=%s status=%s: %s",
            booking_id,
            response.status_code,
            response.text[:200],
        )
        response.raise_for_status()
    return True


def notify_status_change(
    phone: str,
    status: str,
    booking_id: str,
    final_price: Optional[int] = None,
) -> Optional[str]:
    """Queue a status SMS and return the task id; never waits for delivery."""
    if STATUS_ALIAS.get(status, status) not in STATUS_TEMPLATES:
        return None
    return background_worker.enqueue(
        send_status_sms, phone, status, booking_id, final_price, retries=2
    )
