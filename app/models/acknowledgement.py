import uuid
from sqlalchemy import Column, DateTime, func, ForeignKey, UniqueConstraint, Uuid, Enum as SAEnum
from sqlalchemy.orm import relationship
from app.db.session import Base
from app.models.user import UserRole


# A role has seen an item iff a row exists for (item, role).
class ReservationAcknowledgement(Base):
    __tablename__ = "reservation_acknowledgements"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_id = Column(Uuid, ForeignKey("reservations.id"), nullable=False, index=True)
    role = Column(
        SAEnum(UserRole, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    acknowledged_at = Column(DateTime(timezone=True), server_default=func.now())

    reservation = relationship("Reservation", back_populates="acknowledgements")

    __table_args__ = (
        UniqueConstraint("reservation_id", "role", name="uq_reservation_ack_role"),
    )


class PaymentApprovalAcknowledgement(Base):
    __tablename__ = "payment_approval_acknowledgements"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_approval_id = Column(Uuid, ForeignKey("payment_approvals.id"), nullable=False, index=True)
    role = Column(
        SAEnum(UserRole, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    acknowledged_at = Column(DateTime(timezone=True), server_default=func.now())

    payment_approval = relationship("PaymentApproval", back_populates="acknowledgements")

    __table_args__ = (
        UniqueConstraint("payment_approval_id", "role", name="uq_payment_approval_ack_role"),
    )
