
from app.schemas.common import PaginatedResponse, ApprovalQueueResponse, ErrorResponse, MarkedReadResponse
from app.schemas.user import User, UserCreate, StaffCreate, UserUpdate, Token, TokenPayload
from app.schemas.facility import (
    Facility, FacilityCreate, FacilityUpdate, FacilitySummary,
    FacilityRoute, FacilityRouteUpdate, FacilityAvailability, BusyInterval,
)
from app.schemas.reservation import (
    BookingCreate, BookingResponse, Reservation, PaymentApproval,
    StatusUpdate, CancelRequest,
    ReservationTransitionResponse, PaymentApprovalTransitionResponse,
)
from app.schemas.notification import Notification
from app.schemas.transaction import TransactionRecord
