import uuid
import enum
from sqlalchemy import (
    Column, String, Boolean, DateTime, func, Text, Numeric, Integer, Float, ForeignKey,
    CheckConstraint, Uuid, Enum as SAEnum,
)
from sqlalchemy.orm import relationship
from app.db.session import Base


class FacilityType(str, enum.Enum):
    INDOOR = "Indoor"
    OUTDOOR = "Outdoor"


class ApprovalRoute(str, enum.Enum):
    PAYMENT_COLLECTOR = "payment_collector"
    MDRR_STAFF = "mdrr_staff"
    ADMIN = "admin"


class Facility(Base):
    __tablename__ = "facilities"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    capacity = Column(Integer, nullable=False)
    type = Column(
        SAEnum(FacilityType, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    price_per_hour = Column(Numeric(10, 2), nullable=False, default=0)
    image_url = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    route = relationship("FacilityRoute", back_populates="facility", uselist=False, cascade="all, delete-orphan")
    reservations = relationship("Reservation", back_populates="facility")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_facility_capacity_positive"),
        CheckConstraint("price_per_hour >= 0", name="check_facility_price_non_negative"),
    )

    @property
    def is_priced(self) -> bool:
        return (self.price_per_hour or 0) > 0


class FacilityRoute(Base):
    """Facilities whose free bookings go to a specialized approver pool instead of the admin."""

    __tablename__ = "facility_routes"

    facility_id = Column(Uuid, ForeignKey("facilities.id"), primary_key=True)
    route = Column(
        SAEnum(ApprovalRoute, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    facility = relationship("Facility", back_populates="route")
