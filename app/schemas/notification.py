from typing import Optional
from pydantic import BaseModel, UUID4
from datetime import datetime

from app.models.user import UserRole


class NotificationBase(BaseModel):
    title: str
    message: str
    action_type: str
    related_type: Optional[str] = None
    related_id: Optional[UUID4] = None


class Notification(NotificationBase):
    id: UUID4
    user_id: UUID4
    recipient_role: UserRole
    is_read: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
