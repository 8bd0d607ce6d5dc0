"""
Payment-collector pre-approval of priced bookings.

``pending → approved | declined``, both terminal. Approval hands the booking
over to the next approver by promoting it into a pending reservation.
"""

import logging
from datetime import datetime
from typing import Dict, Optional, Set
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    DependencyFailure,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    PromotionConflict,
    ValidationError,
)
from app.models.reservation import PaymentApproval, PaymentApprovalStatus, PromotionState
from app.models.user import UserRole
from app.services.acknowledgements import acknowledge
from app.services.actors import Actor
from app.services.audit import record_safely
from app.services.notifications import (
    TransitionEvent,
    notify_promotion,
    notify_promotion_conflict,
    notify_transition,
)
from app.services.reservations import TransitionOutcome, check_transition, parse_status
from app.services.routing import promote
from app.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

PAYMENT_APPROVAL_TRANSITIONS: Dict[PaymentApprovalStatus, Set[PaymentApprovalStatus]] = {
    PaymentApprovalStatus.PENDING: {PaymentApprovalStatus.APPROVED, PaymentApprovalStatus.DECLINED},
    PaymentApprovalStatus.APPROVED: set(),
    PaymentApprovalStatus.DECLINED: set(),
}


def get_payment_approval(db: Session, approval_id: UUID, for_update: bool = False) -> PaymentApproval:
    query = db.query(PaymentApproval).filter(PaymentApproval.id == approval_id)
    if for_update:
        query = query.with_for_update()
    approval = query.first()
    if not approval:
        raise NotFound("Payment approval not found")
    return approval


def _promote_and_notify(db: Session, approval: PaymentApproval, actor: Actor, outcome: TransitionOutcome) -> None:
    try:
        reservation = promote(db, approval, actor)
    except PromotionConflict as exc:
        outcome.promotion_conflict = True
        outcome.warnings.append(exc.message)
        outcome.warnings.extend(notify_promotion_conflict(db, approval))
        warning = record_safely(db, "payment_approval_promotion_conflict", actor, approval,
                                status=PromotionState.CONFLICT.value)
        if warning:
            outcome.warnings.append(warning)
        return
    except DependencyFailure as exc:
        outcome.promotion_failed = True
        outcome.warnings.append(f"Payment approval was approved but not promoted: {exc.message}")
        outcome.warnings.extend(notify_promotion_conflict(db, approval, failed=True))
        warning = record_safely(db, "payment_approval_promotion_failed", actor, approval,
                                status=PromotionState.FAILED.value)
        if warning:
            outcome.warnings.append(warning)
        return

    outcome.promoted_reservation = reservation
    outcome.warnings.extend(notify_promotion(db, approval, reservation, actor))
    warning = record_safely(db, "payment_approval_promoted", actor, reservation)
    if warning:
        outcome.warnings.append(warning)


def transition_payment_approval(
    db: Session,
    approval_id: UUID,
    new_status,
    actor: Actor,
    now: Optional[datetime] = None,
) -> TransitionOutcome:
    """
    Approve or decline a payment approval as a payment collector.

    The approval's own status commits first. On ``approved`` a promotion is
    attempted; if the slot was taken in the meantime the approval stays
    approved, is flagged ``promotion_state = conflict`` and the outcome
    reports ``promotion_conflict``. A database failure during promotion is
    reported the same way as ``promotion_failed``.
    """
    requested = parse_status(new_status, PaymentApprovalStatus)
    now = ensure_utc(now) if now else utcnow()

    approval = get_payment_approval(db, approval_id, for_update=True)
    current = PaymentApprovalStatus(approval.status)
    try:
        check_transition(current, requested, PAYMENT_APPROVAL_TRANSITIONS)
        if actor.role != UserRole.PAYMENT_COLLECTOR:
            raise InvalidTransition(
                f"Role '{actor.role.value}' cannot act on payment approvals (requires 'payment_collector')",
                current=current.value,
                requested=requested.value,
            )
    except InvalidTransition:
        db.rollback()
        raise

    approval.status = requested
    approval.action_by = actor.id
    approval.action_at = now
    acknowledge(approval, actor.role)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to persist payment approval %s as %s.", approval_id, requested.value)
        raise DependencyFailure("Payment approval status could not be saved") from exc

    db.refresh(approval)
    logger.info(
        "Payment approval %s: %s -> %s by %s.", approval.id, current.value, requested.value, actor.id,
    )

    outcome = TransitionOutcome(record=approval, previous_status=current.value)
    outcome.warnings.extend(notify_transition(db, TransitionEvent.for_booking(approval, actor)))
    warning = record_safely(db, f"payment_approval_{requested.value}", actor, approval)
    if warning:
        outcome.warnings.append(warning)

    if requested == PaymentApprovalStatus.APPROVED:
        _promote_and_notify(db, approval, actor, outcome)
    return outcome


def retry_promotion(db: Session, approval_id: UUID, actor: Actor) -> TransitionOutcome:
    """
    Admin resolution for an approved payment that never became a reservation.

    Raises PromotionConflict again if the slot is still taken and
    DependencyFailure if the reservation still cannot be written.
    """
    if actor.role != UserRole.ADMIN:
        raise PermissionDenied("Only an admin can resolve an orphaned payment approval")
    approval = get_payment_approval(db, approval_id, for_update=True)
    # an unflagged approved row is one whose failure flag could not be saved either
    if approval.status != PaymentApprovalStatus.APPROVED or approval.promotion_state == PromotionState.PROMOTED:
        raise ValidationError("Payment approval is not awaiting manual promotion")

    reservation = promote(db, approval, actor)
    db.refresh(approval)
    outcome = TransitionOutcome(
        record=approval,
        previous_status=approval.status.value,
        promoted_reservation=reservation,
    )
    outcome.warnings.extend(notify_promotion(db, approval, reservation, actor))
    warning = record_safely(db, "payment_approval_promoted", actor, reservation)
    if warning:
        outcome.warnings.append(warning)
    return outcome
