from typing import Optional, List
from pydantic import BaseModel, EmailStr, UUID4, field_validator
from decimal import Decimal
from datetime import datetime

from app.models.facility import ApprovalRoute
from app.models.reservation import ReservationStatus, PaymentApprovalStatus, PromotionState
from app.schemas.facility import FacilitySummary
from app.utils.time import ensure_utc


# Booking: Create (POST /bookings)
class BookingCreate(BaseModel):
    facility_id: UUID4
    start_time: datetime
    end_time: datetime
    # Contact snapshot; omitted fields default to the booker's profile
    booker_name: Optional[str] = None
    booker_email: Optional[EmailStr] = None
    booker_phone: Optional[str] = None
    purpose: Optional[str] = None
    number_of_attendees: Optional[int] = None
    special_requests: Optional[str] = None
    # URL issued by the receipt storage service; required for priced facilities
    receipt_image_url: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)

    @field_validator("booker_name", "booker_email", "booker_phone", "receipt_image_url", mode="before")
    @classmethod
    def parse_empty_str_to_none(cls, v):
        if isinstance(v, str) and v.strip() == "":
            return None
        return v


# Fields shared by reservation and payment approval responses
class BookingBase(BaseModel):
    id: UUID4
    facility_id: UUID4
    user_id: UUID4
    booker_name: str
    booker_email: str
    booker_phone: str
    start_time: datetime
    end_time: datetime
    purpose: Optional[str] = None
    number_of_attendees: Optional[int] = None
    special_requests: Optional[str] = None
    receipt_image_url: Optional[str] = None
    total_price: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    facility: Optional[FacilitySummary] = None
    acknowledged_by: List[str] = []

    @field_validator("start_time", "end_time", "created_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)


class Reservation(BookingBase):
    status: ReservationStatus
    approval_route: ApprovalRoute
    payment_approval_id: Optional[UUID4] = None
    cancellation_reason: Optional[str] = None
    admin_action_by: Optional[UUID4] = None
    admin_action_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentApproval(BookingBase):
    status: PaymentApprovalStatus
    promotion_state: Optional[PromotionState] = None
    action_by: Optional[UUID4] = None
    action_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Status change (PATCH .../{id}/status)
class StatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = None


# Booker cancellation (PATCH /bookings/{id}/cancel)
class CancelRequest(BaseModel):
    reason: str


# POST /bookings response: exactly one of reservation / payment_approval is set
class BookingResponse(BaseModel):
    kind: str  # "reservation" | "payment_approval"
    route: ApprovalRoute
    reservation: Optional[Reservation] = None
    payment_approval: Optional[PaymentApproval] = None
    warnings: List[str] = []


class ReservationTransitionResponse(BaseModel):
    reservation: Reservation
    previous_status: str
    warnings: List[str] = []


class PaymentApprovalTransitionResponse(BaseModel):
    payment_approval: PaymentApproval
    previous_status: str
    promoted_reservation: Optional[Reservation] = None
    promotion_conflict: bool = False
    promotion_failed: bool = False
    warnings: List[str] = []
