from uuid import UUID
from typing import Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.facility import Facility, FacilityType
from app.models.reservation import Reservation, PaymentApproval, PaymentApprovalStatus, PromotionState
from app.schemas.facility import Facility as FacilitySchema, FacilityAvailability, BusyInterval
from app.schemas.common import PaginatedResponse
from app.services.conflicts import BLOCKING_RESERVATION_STATUSES
from app.utils.time import ensure_utc

router = APIRouter(prefix="/facilities", tags=["Facilities"])


@router.get("/", response_model=PaginatedResponse[FacilitySchema])
def list_facilities(
    type: Optional[FacilityType] = Query(None, description="Indoor or Outdoor"),
    search: Optional[str] = Query(None, description="Match on name or location"),
    free_only: bool = Query(False, description="Only facilities with no hourly price"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Browse active facilities. No authentication required."""
    query = db.query(Facility).filter(Facility.is_active == True)  # noqa: E712
    if type:
        query = query.filter(Facility.type == type)
    if search:
        pattern = f"%{search}%"
        query = query.filter(Facility.name.ilike(pattern) | Facility.location.ilike(pattern))
    if free_only:
        query = query.filter(Facility.price_per_hour == 0)

    total = query.count()
    facilities = query.order_by(Facility.name).offset((page - 1) * limit).limit(limit).all()

    return PaginatedResponse(
        data=facilities,
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.get("/{facility_id}", response_model=FacilitySchema)
def get_facility(facility_id: UUID, db: Session = Depends(get_db)):
    facility = db.query(Facility).filter(Facility.id == facility_id, Facility.is_active == True).first()  # noqa: E712
    if not facility:
        raise HTTPException(status_code=404, detail="Facility not found")
    return facility


@router.get("/{facility_id}/availability", response_model=FacilityAvailability)
def get_facility_availability(
    facility_id: UUID,
    start: datetime = Query(..., description="Window start (ISO 8601)"),
    end: datetime = Query(..., description="Window end (ISO 8601)"),
    db: Session = Depends(get_db),
):
    """
    List the intervals already claimed within ``[start, end)``: pending and
    approved reservations, plus paid bookings still awaiting the payment collector.
    """
    start, end = ensure_utc(start), ensure_utc(end)
    if end <= start:
        raise HTTPException(status_code=400, detail="end must be after start")
    facility = db.query(Facility).filter(Facility.id == facility_id, Facility.is_active == True).first()  # noqa: E712
    if not facility:
        raise HTTPException(status_code=404, detail="Facility not found")

    reservations = (
        db.query(Reservation)
        .filter(
            Reservation.facility_id == facility_id,
            Reservation.status.in_(BLOCKING_RESERVATION_STATUSES),
            Reservation.start_time < end,
            Reservation.end_time > start,
        )
        .all()
    )
    approvals = (
        db.query(PaymentApproval)
        .filter(
            PaymentApproval.facility_id == facility_id,
            PaymentApproval.status.in_([PaymentApprovalStatus.PENDING, PaymentApprovalStatus.APPROVED]),
            PaymentApproval.start_time < end,
            PaymentApproval.end_time > start,
        )
        .all()
    )

    busy = [
        BusyInterval(start_time=r.start_time, end_time=r.end_time, status=r.status.value)
        for r in reservations
    ]
    busy += [
        BusyInterval(start_time=a.start_time, end_time=a.end_time, status=f"payment_{a.status.value}")
        for a in approvals
        if a.promotion_state != PromotionState.PROMOTED
    ]
    busy.sort(key=lambda b: b.start_time)
    return FacilityAvailability(facility_id=facility_id, start=start, end=end, busy=busy)
