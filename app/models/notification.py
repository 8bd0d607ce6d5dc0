import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, ForeignKey, Text, Uuid, Enum as SAEnum
from sqlalchemy.orm import relationship
from app.db.session import Base
from app.models.user import UserRole


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    recipient_role = Column(
        SAEnum(UserRole, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    action_type = Column(String(50), nullable=False, index=True)  # reservation_approved, new_booking, ...
    related_type = Column(String(30), nullable=True)  # reservation | payment_approval
    related_id = Column(Uuid, nullable=True, index=True)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
