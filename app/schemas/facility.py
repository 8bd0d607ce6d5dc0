from typing import Optional, List
from pydantic import BaseModel, Field, UUID4, field_validator
from decimal import Decimal
from datetime import datetime

from app.models.facility import FacilityType, ApprovalRoute
from app.utils.time import ensure_utc


class FacilityBase(BaseModel):
    name: str
    description: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    capacity: int = Field(gt=0)
    type: FacilityType
    price_per_hour: Decimal = Field(default=Decimal("0"), ge=0)
    image_url: Optional[str] = None


class FacilityCreate(FacilityBase):
    pass


class FacilityUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    capacity: Optional[int] = Field(default=None, gt=0)
    type: Optional[FacilityType] = None
    price_per_hour: Optional[Decimal] = Field(default=None, ge=0)
    image_url: Optional[str] = None


class Facility(FacilityBase):
    id: UUID4
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Compact facility for nested responses (reservation, payment approval)
class FacilitySummary(BaseModel):
    id: UUID4
    name: str
    location: Optional[str] = None
    price_per_hour: Decimal

    class Config:
        from_attributes = True


class FacilityRouteUpdate(BaseModel):
    route: ApprovalRoute

    @field_validator("route")
    @classmethod
    def specialized_only(cls, v):
        if v == ApprovalRoute.PAYMENT_COLLECTOR:
            raise ValueError("Priced facilities are routed to payment collectors automatically")
        return v


class FacilityRoute(BaseModel):
    facility_id: UUID4
    route: ApprovalRoute

    class Config:
        from_attributes = True


# Busy intervals returned by GET /facilities/{id}/availability
class BusyInterval(BaseModel):
    start_time: datetime
    end_time: datetime
    status: str

    @field_validator("start_time", "end_time")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)


class FacilityAvailability(BaseModel):
    facility_id: UUID4
    start: datetime
    end: datetime
    busy: List[BusyInterval] = []
