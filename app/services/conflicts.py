"""
Conflict checking for the facility/interval space.

Two intervals ``[s, e)`` and ``[s', e')`` overlap iff ``s < e'`` and ``e > s'``.
Only active claims block a slot:

- reservations in ``pending`` or ``approved``;
- payment approvals that are ``pending``, or ``approved`` but not yet promoted
  into a reservation.

This is a read-before-write guard, not a lock. Callers serialize creation per
facility with ``lock_facility`` before checking.
"""

import logging
from datetime import datetime
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.facility import Facility
from app.models.reservation import (
    Reservation,
    ReservationStatus,
    PaymentApproval,
    PaymentApprovalStatus,
    PromotionState,
)

logger = logging.getLogger(__name__)

BLOCKING_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.APPROVED)


def lock_facility(db: Session, facility_id: UUID) -> Optional[Facility]:
    """Load the facility row with ``FOR UPDATE`` so concurrent bookings queue behind us."""
    return (
        db.query(Facility)
        .filter(Facility.id == facility_id)
        .with_for_update()
        .first()
    )


def find_conflict(
    db: Session,
    facility_id: UUID,
    start_time: datetime,
    end_time: datetime,
    exclude_reservation_id: Optional[UUID] = None,
    exclude_payment_approval_id: Optional[UUID] = None,
) -> Optional[Union[Reservation, PaymentApproval]]:
    """Return the first active claim overlapping ``[start_time, end_time)``, if any."""
    filters = [
        Reservation.facility_id == facility_id,
        Reservation.status.in_(BLOCKING_RESERVATION_STATUSES),
        Reservation.start_time < end_time,
        Reservation.end_time > start_time,
    ]
    if exclude_reservation_id:
        filters.append(Reservation.id != exclude_reservation_id)

    conflict = db.query(Reservation).filter(*filters).order_by(Reservation.start_time).first()
    if conflict:
        return conflict

    filters = [
        PaymentApproval.facility_id == facility_id,
        or_(
            PaymentApproval.status == PaymentApprovalStatus.PENDING,
            and_(
                PaymentApproval.status == PaymentApprovalStatus.APPROVED,
                # promoted approvals are represented by their reservation
                or_(
                    PaymentApproval.promotion_state == None,  # noqa: E711
                    PaymentApproval.promotion_state != PromotionState.PROMOTED,
                ),
            ),
        ),
        PaymentApproval.start_time < end_time,
        PaymentApproval.end_time > start_time,
    ]
    if exclude_payment_approval_id:
        filters.append(PaymentApproval.id != exclude_payment_approval_id)

    return db.query(PaymentApproval).filter(*filters).order_by(PaymentApproval.start_time).first()


def has_overlap(
    db: Session,
    facility_id: UUID,
    start_time: datetime,
    end_time: datetime,
    exclude_reservation_id: Optional[UUID] = None,
    exclude_payment_approval_id: Optional[UUID] = None,
) -> bool:
    """
    True if any active claim overlaps the interval.

    Fails closed: if the lookup itself errors, report a conflict rather than
    risk a double booking.
    """
    try:
        return find_conflict(
            db,
            facility_id,
            start_time,
            end_time,
            exclude_reservation_id=exclude_reservation_id,
            exclude_payment_approval_id=exclude_payment_approval_id,
        ) is not None
    except SQLAlchemyError:
        logger.exception(
            "Conflict check failed for facility %s [%s, %s); treating as conflict.",
            facility_id, start_time, end_time,
        )
        return True


def describe_conflict(db: Session, facility_id: UUID, start_time: datetime, end_time: datetime, **exclude) -> str:
    """Human readable message for a SlotConflict."""
    try:
        conflict = find_conflict(db, facility_id, start_time, end_time, **exclude)
    except SQLAlchemyError:
        conflict = None
    if conflict is None:
        return (
            f"The requested slot {start_time.isoformat()} to {end_time.isoformat()} "
            "could not be verified as free; please try again."
        )
    return (
        f"Facility is already booked from {conflict.start_time} to {conflict.end_time} "
        f"({conflict.status.value})."
    )
