"""
Append-only transaction log.

``details`` is a snapshot taken when the action happens, so later edits to
the facility (e.g. a rename) do not rewrite history.
"""

import logging
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import SideEffectFailure
from app.models.reservation import PaymentApproval, Reservation
from app.models.transaction import TransactionRecord
from app.services.actors import Actor
from app.utils.time import ensure_utc

logger = logging.getLogger(__name__)


def snapshot(subject: Union[Reservation, PaymentApproval]) -> dict:
    details = {
        "facility_name": subject.facility.name,
        "start_time": ensure_utc(subject.start_time).isoformat(),
        "end_time": ensure_utc(subject.end_time).isoformat(),
    }
    if isinstance(subject, Reservation):
        details["reservation_id"] = str(subject.id)
        if subject.payment_approval_id:
            details["approval_id"] = str(subject.payment_approval_id)
        if subject.cancellation_reason:
            details["cancellation_reason"] = subject.cancellation_reason
    else:
        details["approval_id"] = str(subject.id)
    if subject.total_price is not None:
        details["total_price"] = str(subject.total_price)
    return details


def record(
    db: Session,
    action: str,
    actor: Actor,
    subject: Union[Reservation, PaymentApproval],
    status: Optional[str] = None,
) -> TransactionRecord:
    """Append one TransactionRecord. Raises SideEffectFailure if the insert fails."""
    try:
        entry = TransactionRecord(
            user_id=subject.user_id,
            facility_id=subject.facility_id,
            action=action,
            action_by=actor.id,
            action_by_role=actor.role.value,
            target_user_id=subject.user_id,
            status=status if status is not None else subject.status.value,
            details=snapshot(subject),
        )
        db.add(entry)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to append transaction record '%s' for %s.", action, subject.id)
        raise SideEffectFailure(f"Audit record '{action}' could not be written") from exc
    return entry


def record_safely(
    db: Session,
    action: str,
    actor: Actor,
    subject: Union[Reservation, PaymentApproval],
    status: Optional[str] = None,
) -> Optional[str]:
    """Like ``record`` but returns a warning string instead of raising."""
    try:
        record(db, action, actor, subject, status=status)
    except SideEffectFailure as exc:
        return exc.message
    return None
