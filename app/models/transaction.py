import uuid
from sqlalchemy import Column, String, DateTime, func, ForeignKey, JSON, Uuid
from app.db.session import Base


class TransactionRecord(Base):
    """Append-only audit row. Nothing in the application updates or deletes these."""

    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    facility_id = Column(Uuid, ForeignKey("facilities.id"), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    action_by = Column(Uuid, ForeignKey("users.id"), nullable=True)  # NULL for the completion sweep
    action_by_role = Column(String(30), nullable=False)
    target_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    status = Column(String(20), nullable=True)
    details = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
