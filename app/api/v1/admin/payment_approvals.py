from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, joinedload

from app.db.session import get_db
from app.api.deps import get_current_admin_user, get_current_collector_user
from app.models.user import User, UserRole
from app.models.facility import Facility
from app.models.reservation import PaymentApproval, PaymentApprovalStatus, PromotionState
from app.schemas.reservation import (
    PaymentApproval as PaymentApprovalSchema,
    PaymentApprovalTransitionResponse,
    Reservation as ReservationSchema,
    StatusUpdate,
)
from app.schemas.common import ApprovalQueueResponse, MarkedReadResponse, PaginatedResponse
from app.services.acknowledgements import acknowledge, acknowledge_all, unread_for
from app.services.actors import Actor
from app.services.payment_approvals import retry_promotion, transition_payment_approval

collector_router = APIRouter(prefix="/collector/payment-approvals", tags=["Payment Collector"])
router = APIRouter(prefix="/admin/payment-approvals", tags=["Admin - Payment Approvals"])


def _base_query(db: Session):
    return (
        db.query(PaymentApproval)
        .join(Facility, Facility.id == PaymentApproval.facility_id)
        .options(joinedload(PaymentApproval.facility), joinedload(PaymentApproval.acknowledgements))
    )


def _transition_response(outcome) -> PaymentApprovalTransitionResponse:
    promoted = outcome.promoted_reservation
    return PaymentApprovalTransitionResponse(
        payment_approval=PaymentApprovalSchema.model_validate(outcome.record),
        previous_status=outcome.previous_status,
        promoted_reservation=ReservationSchema.model_validate(promoted) if promoted else None,
        promotion_conflict=outcome.promotion_conflict,
        promotion_failed=outcome.promotion_failed,
        warnings=outcome.warnings,
    )


# ---------------------------------------------------------------------------
# Payment collector queue
# ---------------------------------------------------------------------------


@collector_router.get("/", response_model=ApprovalQueueResponse[PaymentApprovalSchema])
def list_payment_approvals(
    status: Optional[PaymentApprovalStatus] = Query(None),
    read: Optional[str] = Query(None, pattern="^(read|unread)$", description="read | unread"),
    search: Optional[str] = Query(None, description="Booker name / email or facility name"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_collector_user),
):
    """Paid booking requests, newest first, with the collectors' unread count."""
    query = _base_query(db)
    unread = unread_for(PaymentApproval, UserRole.PAYMENT_COLLECTOR)
    unread_count = query.filter(unread).count()

    if status:
        query = query.filter(PaymentApproval.status == status)
    if read == "unread":
        query = query.filter(unread)
    elif read == "read":
        query = query.filter(~unread)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            PaymentApproval.booker_name.ilike(pattern)
            | PaymentApproval.booker_email.ilike(pattern)
            | Facility.name.ilike(pattern)
        )

    total = query.count()
    rows = (
        query.order_by(PaymentApproval.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return ApprovalQueueResponse[PaymentApprovalSchema](
        data=[PaymentApprovalSchema.model_validate(r) for r in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
        unread_count=unread_count,
    )


@collector_router.patch("/read-all", response_model=MarkedReadResponse)
def mark_all_payment_approvals_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_collector_user),
):
    role = UserRole.PAYMENT_COLLECTOR
    count = acknowledge_all(_base_query(db).filter(unread_for(PaymentApproval, role)).all(), role)
    db.commit()
    return MarkedReadResponse(marked_read=count)


@collector_router.get("/{approval_id}", response_model=PaymentApprovalSchema)
def get_payment_approval(
    approval_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_collector_user),
):
    approval = _base_query(db).filter(PaymentApproval.id == approval_id).first()
    if not approval:
        raise HTTPException(status_code=404, detail="Payment approval not found")
    return approval


@collector_router.patch("/{approval_id}/status", response_model=PaymentApprovalTransitionResponse)
def update_payment_approval_status(
    approval_id: UUID,
    data: StatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_collector_user),
):
    """
    Approve or decline a paid booking.

    Approval immediately creates the pending reservation for the final
    approver. If the slot has been taken since, `promotion_conflict` is true;
    if the reservation could not be written, `promotion_failed` is true. Either
    way the admins are asked to resolve it.
    """
    outcome = transition_payment_approval(db, approval_id, data.status, Actor.from_user(current_user))
    return _transition_response(outcome)


@collector_router.patch("/{approval_id}/read", response_model=PaymentApprovalSchema)
def mark_payment_approval_read(
    approval_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_collector_user),
):
    approval = _base_query(db).filter(PaymentApproval.id == approval_id).first()
    if not approval:
        raise HTTPException(status_code=404, detail="Payment approval not found")
    acknowledge(approval, UserRole.PAYMENT_COLLECTOR)
    db.commit()
    db.refresh(approval)
    return approval


# ---------------------------------------------------------------------------
# Admin: approvals that could not be promoted
# ---------------------------------------------------------------------------


@router.get("/orphaned", response_model=PaginatedResponse[PaymentApprovalSchema])
def list_orphaned_payment_approvals(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Approved payments that never became a reservation, by slot conflict or by a failed write."""
    query = _base_query(db).filter(
        PaymentApproval.promotion_state.in_([PromotionState.CONFLICT, PromotionState.FAILED])
    )
    total = query.count()
    rows = (
        query.order_by(PaymentApproval.action_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return PaginatedResponse[PaymentApprovalSchema](
        data=[PaymentApprovalSchema.model_validate(r) for r in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.post("/{approval_id}/promote", response_model=PaymentApprovalTransitionResponse)
def promote_orphaned_payment_approval(
    approval_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Retry promotion once the slot is free again. 409 if it is still taken, 503 if the write fails again."""
    outcome = retry_promotion(db, approval_id, Actor.from_user(current_user))
    return _transition_response(outcome)
