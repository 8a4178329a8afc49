from . import crud_booking
from . import crud_driver

# Usage: ``crud.crud_booking.get_booking(db, booking_id)``
