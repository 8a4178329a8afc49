from .booking import Booking
from .booking_status import BookingStatus, TERMINAL_STATUSES
from .catalog import ItemCatalogEntry, AreaRate, LadderPrice
from .driver import Driver, Vehicle, DriverVehicleAssignment
from .admin_user import AdminUser

__all__ = [
    "Booking",
    "BookingStatus",
    "TERMINAL_STATUSES",
    "ItemCatalogEntry",
    "AreaRate",
    "LadderPrice",
    "Driver",
    "Vehicle",
    "DriverVehicleAssignment",
    "AdminUser",
]
