import logging
from typing import Optional

logger = logging.getLogger(__name__)


def log_status_change(
    booking_id: str,
    old_status: object,
    new_status: object,
    actor: Optional[str] = None,
) -> None:
    """Record one committed booking status transition."""
    logger.info(
        "Booking id=%s status changed from %s to %s",
        booking_id,
        getattr(old_status, "value", old_status),
        getattr(new_status, "value", new_status),
        extra={"booking_id": booking_id, "actor": actor},
    )
