"""
Booking intake: validate a booking request, guard the slot, and create the
first workflow record.

Priced facilities start as a PaymentApproval for the payment collectors;
free facilities become a pending Reservation routed to the MDRR staff or the
admin. The facility row is locked for the check-and-insert so that two
submissions for the same facility are handled one after the other.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import DependencyFailure, NotFound, SlotConflict, ValidationError, WorkflowError
from app.models.facility import ApprovalRoute, Facility
from app.models.reservation import (
    PaymentApproval,
    PaymentApprovalStatus,
    Reservation,
    ReservationStatus,
)
from app.models.user import User
from app.schemas.reservation import BookingCreate
from app.services.actors import Actor
from app.services.audit import record_safely
from app.services.conflicts import describe_conflict, has_overlap, lock_facility
from app.services.notifications import notify_booking_created
from app.services.routing import route_for_facility
from app.utils.time import ensure_utc, total_price, utcnow

logger = logging.getLogger(__name__)


@dataclass
class BookingOutcome:
    record: Union[Reservation, PaymentApproval]
    route: ApprovalRoute
    warnings: List[str] = field(default_factory=list)

    @property
    def kind(self) -> str:
        return "reservation" if isinstance(self.record, Reservation) else "payment_approval"


def validate_booking(data: BookingCreate, facility: Facility, now: datetime) -> None:
    """Raise ValidationError naming the first precondition that fails."""
    if not facility.is_active:
        raise ValidationError("Facility is not available for booking")

    start, end = ensure_utc(data.start_time), ensure_utc(data.end_time)
    if end <= start:
        raise ValidationError("end_time must be after start_time")
    if start <= now:
        raise ValidationError("start_time must be in the future")

    if data.number_of_attendees is not None:
        if data.number_of_attendees < 0:
            raise ValidationError("number_of_attendees cannot be negative")
        if data.number_of_attendees > facility.capacity:
            raise ValidationError(
                f"number_of_attendees ({data.number_of_attendees}) exceeds facility capacity ({facility.capacity})"
            )

    if facility.is_priced and not data.receipt_image_url:
        raise ValidationError("A payment receipt is required for priced facilities")


def _booker_snapshot(data: BookingCreate, user: User) -> dict:
    snapshot = {
        "booker_name": data.booker_name or user.full_name,
        "booker_email": data.booker_email or user.email,
        "booker_phone": data.booker_phone or user.phone,
    }
    for key, value in snapshot.items():
        if not value:
            raise ValidationError(f"{key} is required")
    return snapshot


def create_booking(
    db: Session,
    data: BookingCreate,
    user: User,
    now: Optional[datetime] = None,
) -> BookingOutcome:
    """
    Create a PaymentApproval (priced facility) or Reservation (free facility).

    Either a row is created and committed, or nothing is written and a
    ValidationError / SlotConflict / DependencyFailure is raised.
    """
    now = ensure_utc(now) if now else utcnow()

    try:
        facility = lock_facility(db, data.facility_id)
        if not facility:
            raise NotFound("Facility not found")
        validate_booking(data, facility, now)
        contact = _booker_snapshot(data, user)

        start, end = ensure_utc(data.start_time), ensure_utc(data.end_time)
        if has_overlap(db, facility.id, start, end):
            raise SlotConflict(describe_conflict(db, facility.id, start, end))

        fields = dict(
            facility_id=facility.id,
            user_id=user.id,
            start_time=start,
            end_time=end,
            purpose=data.purpose,
            number_of_attendees=data.number_of_attendees,
            special_requests=data.special_requests,
            receipt_image_url=data.receipt_image_url,
            total_price=total_price(start, end, facility.price_per_hour),
            **contact,
        )
        route = route_for_facility(db, facility)
        if route == ApprovalRoute.PAYMENT_COLLECTOR:
            booking = PaymentApproval(status=PaymentApprovalStatus.PENDING, **fields)
        else:
            booking = Reservation(status=ReservationStatus.PENDING, approval_route=route, **fields)
        db.add(booking)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Booking for facility %s could not be stored.", data.facility_id)
        raise DependencyFailure("Booking could not be saved; please try again") from exc

    db.refresh(booking)
    logger.info(
        "Booking %s created for facility %s (%s route) by user %s.",
        booking.id, facility.id, route.value, user.id,
    )

    outcome = BookingOutcome(record=booking, route=route)
    outcome.warnings.extend(notify_booking_created(db, booking, route))
    warning = record_safely(db, "booking_created", Actor.from_user(user), booking)
    if warning:
        outcome.warnings.append(warning)
    return outcome
