from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_admin_user
from app.models.user import User
from app.models.transaction import TransactionRecord
from app.schemas.transaction import TransactionRecord as TransactionRecordSchema
from app.schemas.common import PaginatedResponse

router = APIRouter(prefix="/admin/transactions", tags=["Admin - Transactions"])


@router.get("/", response_model=PaginatedResponse[TransactionRecordSchema])
def list_transactions(
    action: Optional[str] = Query(None, description="e.g. reservation_approved, booking_created"),
    facility_id: Optional[UUID] = Query(None),
    user_id: Optional[UUID] = Query(None, description="Booker the record is about"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Append-only audit trail of booking workflow actions, newest first."""
    query = db.query(TransactionRecord)
    if action:
        query = query.filter(TransactionRecord.action == action)
    if facility_id:
        query = query.filter(TransactionRecord.facility_id == facility_id)
    if user_id:
        query = query.filter(TransactionRecord.user_id == user_id)

    total = query.count()
    records = (
        query.order_by(TransactionRecord.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return PaginatedResponse(
        data=records,
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )
