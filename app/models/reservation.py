import uuid
import enum
from sqlalchemy import (
    Column, String, DateTime, func, Numeric, Integer, ForeignKey, Text, CheckConstraint,
    Uuid, Enum as SAEnum,
)
from sqlalchemy.orm import relationship
from app.db.session import Base
from app.models.facility import ApprovalRoute


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class PromotionState(str, enum.Enum):
    PROMOTED = "promoted"
    # Approved by the collector but the slot was taken before promotion; needs an admin
    CONFLICT = "conflict"
    # Approved by the collector but the reservation could not be written; needs an admin
    FAILED = "failed"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    facility_id = Column(Uuid, ForeignKey("facilities.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    payment_approval_id = Column(Uuid, ForeignKey("payment_approvals.id"), nullable=True, unique=True)

    # Contact snapshot captured at creation
    booker_name = Column(String(255), nullable=False)
    booker_email = Column(String(255), nullable=False)
    booker_phone = Column(String(20), nullable=False)

    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False, index=True)
    purpose = Column(Text, nullable=True)
    number_of_attendees = Column(Integer, nullable=True)
    special_requests = Column(Text, nullable=True)
    receipt_image_url = Column(Text, nullable=True)
    total_price = Column(Numeric(10, 2), nullable=True)

    status = Column(
        SAEnum(ReservationStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ReservationStatus.PENDING,
        index=True,
    )
    approval_route = Column(
        SAEnum(ApprovalRoute, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    cancellation_reason = Column(Text, nullable=True)
    admin_action_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    admin_action_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    facility = relationship("Facility", back_populates="reservations")
    user = relationship("User", foreign_keys=[user_id])
    payment_approval = relationship("PaymentApproval", back_populates="reservation")
    acknowledgements = relationship(
        "ReservationAcknowledgement", back_populates="reservation", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="check_reservation_interval"),
    )

    @property
    def acknowledged_by(self) -> list:
        return sorted(a.role.value for a in self.acknowledgements)


class PaymentApproval(Base):
    """Pre-reservation gate for priced facilities, handled by payment collectors."""

    __tablename__ = "payment_approvals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    facility_id = Column(Uuid, ForeignKey("facilities.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    booker_name = Column(String(255), nullable=False)
    booker_email = Column(String(255), nullable=False)
    booker_phone = Column(String(20), nullable=False)

    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False, index=True)
    purpose = Column(Text, nullable=True)
    number_of_attendees = Column(Integer, nullable=True)
    special_requests = Column(Text, nullable=True)
    receipt_image_url = Column(Text, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=True)

    status = Column(
        SAEnum(PaymentApprovalStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentApprovalStatus.PENDING,
        index=True,
    )
    promotion_state = Column(
        SAEnum(PromotionState, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )
    action_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    action_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    facility = relationship("Facility")
    user = relationship("User", foreign_keys=[user_id])
    reservation = relationship("Reservation", back_populates="payment_approval", uselist=False)
    acknowledgements = relationship(
        "PaymentApprovalAcknowledgement", back_populates="payment_approval", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="check_payment_approval_interval"),
    )

    @property
    def acknowledged_by(self) -> list:
        return sorted(a.role.value for a in self.acknowledgements)
