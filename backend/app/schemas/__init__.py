from .quote import QuoteItemIn, QuoteRequest, QuoteResponse, BreakdownRowResponse
from .booking import (
    BookingCreate,
    BookingResponse,
    CustomerBookingResponse,
    BookingCreatedResponse,
    DriverBookingResponse,
    StatusUpdate,
    StatusUpdateResponse,
    AdminBookingUpdate,
    BookingEdit,
    QuoteExpiryResponse,
)
from .dispatch import (
    BatchAssignRequest,
    BatchAssignResponse,
    RouteOrderUpdate,
    RouteOrderRequest,
    RouteOrderResponse,
    BookingsRouteOrderItem,
    BookingsRouteOrderResponse,
    OptimizeRouteRequest,
    OptimizeRouteResponse,
    DriverResponse,
    DriverLoad,
    DispatchBoard,
    DriverMonthlyStats,
)
from .assignment import AssignmentCreate, AssignmentResponse
