"""
Reservation state machine.

    pending  ──► approved ──► cancelled
       │             └──────► completed   (completion sweep only)
       └───────► declined

``declined``, ``cancelled`` and ``completed`` are terminal. The status write
commits before any notification or audit row is attempted; failures of those
later writes are returned as warnings and never undo the transition.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import DependencyFailure, InvalidTransition, NotFound, ValidationError
from app.models.reservation import PaymentApproval, Reservation, ReservationStatus
from app.services.acknowledgements import acknowledge
from app.services.actors import Actor
from app.services.audit import record_safely
from app.services.notifications import TransitionEvent, notify_transition
from app.services.routing import approver_role
from app.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

RESERVATION_TRANSITIONS: Dict[ReservationStatus, Set[ReservationStatus]] = {
    ReservationStatus.PENDING: {ReservationStatus.APPROVED, ReservationStatus.DECLINED},
    ReservationStatus.APPROVED: {ReservationStatus.CANCELLED, ReservationStatus.COMPLETED},
    ReservationStatus.DECLINED: set(),
    ReservationStatus.CANCELLED: set(),
    ReservationStatus.COMPLETED: set(),
}


@dataclass
class TransitionOutcome:
    """Result of a committed transition. ``warnings`` lists side effects that did not land."""

    record: Union[Reservation, PaymentApproval]
    previous_status: str
    warnings: List[str] = field(default_factory=list)
    promoted_reservation: Optional[Reservation] = None
    promotion_conflict: bool = False
    promotion_failed: bool = False


def parse_status(value, enum_cls):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(s.value for s in enum_cls)
        raise ValidationError(f"Unknown status '{value}' (expected one of: {allowed})")


def check_transition(current, requested, graph=RESERVATION_TRANSITIONS) -> None:
    if requested not in graph.get(current, set()):
        raise InvalidTransition(
            f"Cannot move from '{current.value}' to '{requested.value}'",
            current=current.value,
            requested=requested.value,
        )


def can_booker_cancel(reservation: Reservation, now: Optional[datetime] = None) -> bool:
    """Bookers may cancel until ``BOOKER_CANCELLATION_CUTOFF_HOURS`` before the start."""
    now = ensure_utc(now) if now else utcnow()
    cutoff = timedelta(hours=settings.BOOKER_CANCELLATION_CUTOFF_HOURS)
    return ensure_utc(reservation.start_time) - now > cutoff


def authorize(reservation: Reservation, requested: ReservationStatus, actor: Actor, now: datetime) -> None:
    """Raise InvalidTransition unless ``actor`` may move ``reservation`` to ``requested``."""
    route_role = approver_role(reservation.approval_route)

    if requested == ReservationStatus.COMPLETED:
        if not actor.is_system:
            raise InvalidTransition(
                "Reservations are completed automatically once they end",
                current=reservation.status.value,
                requested=requested.value,
            )
        if ensure_utc(reservation.end_time) > now:
            raise InvalidTransition(
                "Reservation has not ended yet",
                current=reservation.status.value,
                requested=requested.value,
            )
        return

    if actor.is_system:
        raise InvalidTransition(
            f"The completion sweep cannot set status '{requested.value}'",
            current=reservation.status.value,
            requested=requested.value,
        )

    if actor.role == route_role:
        return

    if requested == ReservationStatus.CANCELLED and actor.id == reservation.user_id:
        if not can_booker_cancel(reservation, now):
            raise InvalidTransition(
                f"Reservations cannot be cancelled within {settings.BOOKER_CANCELLATION_CUTOFF_HOURS} "
                "hours of the start time",
                current=reservation.status.value,
                requested=requested.value,
            )
        return

    raise InvalidTransition(
        f"Role '{actor.role.value}' cannot act on reservations routed to "
        f"'{reservation.approval_route.value}' (requires '{route_role.value}')",
        current=reservation.status.value,
        requested=requested.value,
    )


def get_reservation(db: Session, reservation_id: UUID, for_update: bool = False) -> Reservation:
    query = db.query(Reservation).filter(Reservation.id == reservation_id)
    if for_update:
        query = query.with_for_update()
    reservation = query.first()
    if not reservation:
        raise NotFound("Reservation not found")
    return reservation


def transition_reservation(
    db: Session,
    reservation_id: UUID,
    new_status,
    actor: Actor,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TransitionOutcome:
    """
    Move a reservation to ``new_status`` on behalf of ``actor``.

    Illegal moves raise InvalidTransition and write nothing. On success the
    status, acting user and timestamp are committed, the acting role's read
    marker is set, and notification + audit writes follow as best effort.
    """
    requested = parse_status(new_status, ReservationStatus)
    now = ensure_utc(now) if now else utcnow()

    reservation = get_reservation(db, reservation_id, for_update=True)
    current = ReservationStatus(reservation.status)
    try:
        check_transition(current, requested)
        authorize(reservation, requested, actor, now)
        if requested == ReservationStatus.CANCELLED and not (reason and reason.strip()):
            raise ValidationError("A cancellation reason is required")
    except (InvalidTransition, ValidationError):
        db.rollback()
        raise

    reservation.status = requested
    reservation.admin_action_by = actor.id
    reservation.admin_action_at = now
    if requested == ReservationStatus.CANCELLED:
        reservation.cancellation_reason = reason.strip()
    acknowledge(reservation, actor.role)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to persist transition of reservation %s to %s.", reservation_id, requested.value)
        raise DependencyFailure("Reservation status could not be saved") from exc

    db.refresh(reservation)
    logger.info(
        "Reservation %s: %s -> %s by %s (%s).",
        reservation.id, current.value, requested.value, actor.id or "system", actor.role.value,
    )

    outcome = TransitionOutcome(record=reservation, previous_status=current.value)
    outcome.warnings.extend(notify_transition(db, TransitionEvent.for_booking(reservation, actor)))
    warning = record_safely(db, f"reservation_{requested.value}", actor, reservation)
    if warning:
        outcome.warnings.append(warning)
    return outcome
