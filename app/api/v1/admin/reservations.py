from uuid import UUID
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, joinedload

from app.db.session import get_db
from app.api.deps import get_current_admin_user, get_current_mdrr_user
from app.models.user import User, UserRole
from app.models.facility import Facility, ApprovalRoute
from app.models.reservation import Reservation, ReservationStatus
from app.schemas.reservation import (
    Reservation as ReservationSchema,
    ReservationTransitionResponse,
    StatusUpdate,
)
from app.schemas.common import ApprovalQueueResponse, MarkedReadResponse
from app.services.acknowledgements import acknowledge, acknowledge_all, unread_for
from app.services.actors import Actor
from app.services.reservations import transition_reservation
from app.services.routing import routes_for_role

router = APIRouter(prefix="/admin/reservations", tags=["Admin - Reservations"])
mdrr_router = APIRouter(prefix="/mdrr/reservations", tags=["MDRR Staff - Reservations"])


# ---------------------------------------------------------------------------
# Helpers shared by the admin and MDRR queues
# ---------------------------------------------------------------------------


def _queue_query(db: Session, routes: List[ApprovalRoute]):
    return (
        db.query(Reservation)
        .join(Facility, Facility.id == Reservation.facility_id)
        .options(joinedload(Reservation.facility), joinedload(Reservation.acknowledgements))
        .filter(Reservation.approval_route.in_(routes))
    )


def _list_queue(
    db: Session,
    role: UserRole,
    routes: List[ApprovalRoute],
    status: Optional[ReservationStatus],
    read: Optional[str],
    search: Optional[str],
    page: int,
    limit: int,
) -> ApprovalQueueResponse[ReservationSchema]:
    query = _queue_query(db, routes)
    unread_count = query.filter(unread_for(Reservation, role)).count()

    if status:
        query = query.filter(Reservation.status == status)
    if read == "unread":
        query = query.filter(unread_for(Reservation, role))
    elif read == "read":
        query = query.filter(~unread_for(Reservation, role))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            Reservation.booker_name.ilike(pattern)
            | Reservation.booker_email.ilike(pattern)
            | Facility.name.ilike(pattern)
        )

    total = query.count()
    rows = (
        query.order_by(Reservation.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return ApprovalQueueResponse[ReservationSchema](
        data=[ReservationSchema.model_validate(r) for r in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
        unread_count=unread_count,
    )


def _get_queued(db: Session, reservation_id: UUID, routes: List[ApprovalRoute]) -> Reservation:
    reservation = _queue_query(db, routes).filter(Reservation.id == reservation_id).first()
    if not reservation:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return reservation


def _change_status(db: Session, reservation_id: UUID, data: StatusUpdate, user: User) -> ReservationTransitionResponse:
    # Unscoped: the state machine rejects actors outside the reservation's route
    outcome = transition_reservation(db, reservation_id, data.status, Actor.from_user(user), reason=data.reason)
    return ReservationTransitionResponse(
        reservation=ReservationSchema.model_validate(outcome.record),
        previous_status=outcome.previous_status,
        warnings=outcome.warnings,
    )


def _mark_read(db: Session, reservation_id: UUID, role: UserRole, routes: List[ApprovalRoute]) -> Reservation:
    reservation = _get_queued(db, reservation_id, routes)
    acknowledge(reservation, role)
    db.commit()
    db.refresh(reservation)
    return reservation


def _mark_all_read(db: Session, role: UserRole, routes: List[ApprovalRoute]) -> MarkedReadResponse:
    pending_ack = _queue_query(db, routes).filter(unread_for(Reservation, role)).all()
    count = acknowledge_all(pending_ack, role)
    db.commit()
    return MarkedReadResponse(marked_read=count)


# ---------------------------------------------------------------------------
# Admin queue
# ---------------------------------------------------------------------------


@router.get("/", response_model=ApprovalQueueResponse[ReservationSchema])
def list_admin_reservations(
    status: Optional[ReservationStatus] = Query(None),
    read: Optional[str] = Query(None, pattern="^(read|unread)$", description="read | unread"),
    search: Optional[str] = Query(None, description="Booker name / email or facility name"),
    all_routes: bool = Query(False, description="Include reservations routed to other approvers"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Reservations awaiting or handled by the admin, newest first."""
    routes = list(ApprovalRoute) if all_routes else routes_for_role(UserRole.ADMIN)
    return _list_queue(db, UserRole.ADMIN, routes, status, read, search, page, limit)


@router.patch("/read-all", response_model=MarkedReadResponse)
def mark_all_admin_reservations_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    return _mark_all_read(db, UserRole.ADMIN, routes_for_role(UserRole.ADMIN))


@router.get("/{reservation_id}", response_model=ReservationSchema)
def get_admin_reservation(
    reservation_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    return _get_queued(db, reservation_id, list(ApprovalRoute))


@router.patch("/{reservation_id}/status", response_model=ReservationTransitionResponse)
def update_admin_reservation_status(
    reservation_id: UUID,
    data: StatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """
    Approve, decline or cancel a reservation routed to the admin.
    `reason` is required when cancelling.
    """
    return _change_status(db, reservation_id, data, current_user)


@router.patch("/{reservation_id}/read", response_model=ReservationSchema)
def mark_admin_reservation_read(
    reservation_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    return _mark_read(db, reservation_id, UserRole.ADMIN, routes_for_role(UserRole.ADMIN))


# ---------------------------------------------------------------------------
# MDRR staff queue
# ---------------------------------------------------------------------------


@mdrr_router.get("/", response_model=ApprovalQueueResponse[ReservationSchema])
def list_mdrr_reservations(
    status: Optional[ReservationStatus] = Query(None),
    read: Optional[str] = Query(None, pattern="^(read|unread)$", description="read | unread"),
    search: Optional[str] = Query(None, description="Booker name / email or facility name"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_mdrr_user),
):
    """Reservations for the MDRR-designated facilities."""
    return _list_queue(
        db, UserRole.MDRR_STAFF, routes_for_role(UserRole.MDRR_STAFF), status, read, search, page, limit
    )


@mdrr_router.patch("/read-all", response_model=MarkedReadResponse)
def mark_all_mdrr_reservations_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_mdrr_user),
):
    return _mark_all_read(db, UserRole.MDRR_STAFF, routes_for_role(UserRole.MDRR_STAFF))


@mdrr_router.get("/{reservation_id}", response_model=ReservationSchema)
def get_mdrr_reservation(
    reservation_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_mdrr_user),
):
    return _get_queued(db, reservation_id, routes_for_role(UserRole.MDRR_STAFF))


@mdrr_router.patch("/{reservation_id}/status", response_model=ReservationTransitionResponse)
def update_mdrr_reservation_status(
    reservation_id: UUID,
    data: StatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_mdrr_user),
):
    return _change_status(db, reservation_id, data, current_user)


@mdrr_router.patch("/{reservation_id}/read", response_model=ReservationSchema)
def mark_mdrr_reservation_read(
    reservation_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_mdrr_user),
):
    return _mark_read(db, reservation_id, UserRole.MDRR_STAFF, routes_for_role(UserRole.MDRR_STAFF))
