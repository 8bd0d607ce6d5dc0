from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session, joinedload

from app.db.session import get_db
from app.api.deps import get_current_user
from app.models.user import User
from app.models.reservation import Reservation, PaymentApproval, ReservationStatus, PaymentApprovalStatus
from app.schemas.reservation import (
    BookingCreate,
    BookingResponse,
    CancelRequest,
    Reservation as ReservationSchema,
    PaymentApproval as PaymentApprovalSchema,
    ReservationTransitionResponse,
)
from app.schemas.common import PaginatedResponse
from app.services.actors import Actor
from app.services.intake import create_booking
from app.services.reservations import transition_reservation

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _paginate(query, order_by, page: int, limit: int, schema):
    total = query.count()
    rows = query.order_by(order_by).offset((page - 1) * limit).limit(limit).all()
    return PaginatedResponse(
        data=[schema.model_validate(r) for r in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


# ---------------------------------------------------------------------------
# POST /bookings: submit a booking request
# ---------------------------------------------------------------------------


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def submit_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Submit a booking request. Two flows:

    **Priced facility**: a `receipt_image_url` is required; the request becomes a
    payment approval reviewed by a payment collector first.

    **Free facility**: the request becomes a pending reservation routed to the
    MDRR staff (designated facilities) or the admin.

    Overlapping an existing pending/approved booking returns 409.
    """
    outcome = create_booking(db, data, current_user)
    response = BookingResponse(kind=outcome.kind, route=outcome.route, warnings=outcome.warnings)
    if outcome.kind == "reservation":
        response.reservation = ReservationSchema.model_validate(outcome.record)
    else:
        response.payment_approval = PaymentApprovalSchema.model_validate(outcome.record)
    return response


# ---------------------------------------------------------------------------
# GET /bookings: current user's reservations
# ---------------------------------------------------------------------------


@router.get("/", response_model=PaginatedResponse[ReservationSchema])
def list_my_reservations(
    status: Optional[ReservationStatus] = Query(None, description="Filter by reservation status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Return the authenticated user's reservations, newest first."""
    query = (
        db.query(Reservation)
        .options(joinedload(Reservation.facility))
        .filter(Reservation.user_id == current_user.id)
    )
    if status:
        query = query.filter(Reservation.status == status)
    return _paginate(query, Reservation.created_at.desc(), page, limit, ReservationSchema)


@router.get("/payment-approvals", response_model=PaginatedResponse[PaymentApprovalSchema])
def list_my_payment_approvals(
    status: Optional[PaymentApprovalStatus] = Query(None, description="Filter by approval status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Paid booking requests still with, or already handled by, the payment collectors."""
    query = (
        db.query(PaymentApproval)
        .options(joinedload(PaymentApproval.facility))
        .filter(PaymentApproval.user_id == current_user.id)
    )
    if status:
        query = query.filter(PaymentApproval.status == status)
    return _paginate(query, PaymentApproval.created_at.desc(), page, limit, PaymentApprovalSchema)


# ---------------------------------------------------------------------------
# GET /bookings/{id}
# ---------------------------------------------------------------------------


@router.get("/{reservation_id}", response_model=ReservationSchema)
def get_my_reservation(
    reservation_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Return a single reservation. Only the booker can access it."""
    reservation = (
        db.query(Reservation)
        .options(joinedload(Reservation.facility))
        .filter(Reservation.id == reservation_id, Reservation.user_id == current_user.id)
        .first()
    )
    if not reservation:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return reservation


# ---------------------------------------------------------------------------
# PATCH /bookings/{id}/cancel
# ---------------------------------------------------------------------------


@router.patch("/{reservation_id}/cancel", response_model=ReservationTransitionResponse)
def cancel_my_reservation(
    reservation_id: UUID,
    data: CancelRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Cancel an approved reservation.
    - Allowed until the configured cut-off (default 24 hours) before the start.
    - The approvers for the reservation's route are notified.
    """
    owned = db.query(Reservation.id).filter(
        Reservation.id == reservation_id,
        Reservation.user_id == current_user.id,
    ).first()
    if not owned:
        raise HTTPException(status_code=404, detail="Reservation not found")

    outcome = transition_reservation(
        db, reservation_id, ReservationStatus.CANCELLED, Actor.from_user(current_user), reason=data.reason
    )
    return ReservationTransitionResponse(
        reservation=ReservationSchema.model_validate(outcome.record),
        previous_status=outcome.previous_status,
        warnings=outcome.warnings,
    )
