from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_admin_user
from app.models.user import User
from app.models.facility import Facility, FacilityRoute
from app.schemas.facility import (
    FacilityCreate,
    FacilityUpdate,
    Facility as FacilitySchema,
    FacilityRoute as FacilityRouteSchema,
    FacilityRouteUpdate,
)
from app.schemas.common import PaginatedResponse

router = APIRouter(prefix="/admin/facilities", tags=["Admin - Facilities"])


def _get_active_facility(db: Session, id: UUID) -> Facility:
    facility = db.query(Facility).filter(Facility.id == id, Facility.is_active == True).first()  # noqa: E712
    if not facility:
        raise HTTPException(status_code=404, detail="Facility not found")
    return facility


# ---------------------------------------------------------------------------
# Facility CRUD
# ---------------------------------------------------------------------------


@router.post("/", response_model=FacilitySchema, status_code=status.HTTP_201_CREATED)
def create_facility(
    data: FacilityCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    facility = Facility(**data.model_dump())
    db.add(facility)
    db.commit()
    db.refresh(facility)
    return facility


@router.get("/", response_model=PaginatedResponse[FacilitySchema])
def list_facilities(
    include_inactive: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    query = db.query(Facility)
    if not include_inactive:
        query = query.filter(Facility.is_active == True)  # noqa: E712

    total = query.count()
    rows = query.order_by(Facility.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    return PaginatedResponse(
        data=rows,
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.patch("/{id}", response_model=FacilitySchema)
def update_facility(
    id: UUID,
    data: FacilityUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """
    Edit a facility. Bookings already in the workflow keep the route they were
    given at creation; audit records keep their own snapshot of the name.
    """
    facility = _get_active_facility(db, id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(facility, field, value)

    db.commit()
    db.refresh(facility)
    return facility


@router.delete("/{id}", status_code=status.HTTP_200_OK)
def delete_facility(
    id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Soft delete: the facility stops accepting bookings, existing ones are untouched."""
    facility = _get_active_facility(db, id)
    facility.is_active = False
    db.commit()
    return {"id": str(id), "is_active": False}


# ---------------------------------------------------------------------------
# Approval routing (which facilities go to a specialized approver pool)
# ---------------------------------------------------------------------------


@router.put("/{id}/route", response_model=FacilityRouteSchema)
def set_facility_route(
    id: UUID,
    data: FacilityRouteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Route new free bookings for this facility to the given approver pool (e.g. MDRR staff)."""
    _get_active_facility(db, id)
    entry = db.query(FacilityRoute).filter(FacilityRoute.facility_id == id).first()
    if entry:
        entry.route = data.route
    else:
        entry = FacilityRoute(facility_id=id, route=data.route)
        db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


@router.delete("/{id}/route", status_code=status.HTTP_200_OK)
def clear_facility_route(
    id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Send future bookings for this facility back to the general admin."""
    entry = db.query(FacilityRoute).filter(FacilityRoute.facility_id == id).first()
    if not entry:
        raise HTTPException(status_code=404, detail="Facility has no specialized route")
    db.delete(entry)
    db.commit()
    return {"facility_id": str(id), "route": "admin"}
