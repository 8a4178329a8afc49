import enum


class BookingStatus(str, enum.Enum):
    """Central booking status enumeration used across the application."""
    PENDING = "pending"
    QUOTE_CONFIRMED = "quote_confirmed"
    USER_CONFIRMED = "user_confirmed"
    CHANGE_REQUESTED = "change_requested"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PAYMENT_REQUESTED = "payment_requested"
    PAYMENT_COMPLETED = "payment_completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.PAYMENT_COMPLETED}
)
