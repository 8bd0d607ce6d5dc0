from typing import Optional, Any, Dict
from pydantic import BaseModel, UUID4
from datetime import datetime


class TransactionRecord(BaseModel):
    id: UUID4
    user_id: UUID4
    facility_id: UUID4
    action: str
    action_by: Optional[UUID4] = None
    action_by_role: str
    target_user_id: Optional[UUID4] = None
    status: Optional[str] = None
    details: Dict[str, Any]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
