import uuid
import enum
from sqlalchemy import Column, String, Boolean, DateTime, func, Uuid, Enum as SAEnum
from app.db.session import Base


class UserRole(str, enum.Enum):
    END_USER = "end_user"
    ADMIN = "admin"
    MDRR_STAFF = "mdrr_staff"
    PAYMENT_COLLECTOR = "payment_collector"
    # Never stored on a user row; identifies the completion sweep as an actor
    SYSTEM = "system"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    avatar_url = Column(String(500), nullable=True)
    role = Column(
        SAEnum(UserRole, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.END_USER,
        index=True,
    )
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
