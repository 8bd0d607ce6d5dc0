import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import WorkflowError
from app.models.reservation import Reservation, ReservationStatus
from app.services.actors import SYSTEM_ACTOR
from app.services.reservations import transition_reservation
from app.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def complete_past_reservations(db: Session, now: Optional[datetime] = None) -> int:
    """
    Mark every approved reservation whose end_time has passed as completed.

    Each reservation goes through the state machine as the system actor, so
    bookers are notified and the audit log gets a ``reservation_completed``
    row. Returns the number of reservations completed.
    """
    now = ensure_utc(now) if now else utcnow()
    due_ids = [
        row.id
        for row in db.query(Reservation.id)
        .filter(
            Reservation.status == ReservationStatus.APPROVED,
            Reservation.end_time <= now,
        )
        .all()
    ]

    completed = 0
    for reservation_id in due_ids:
        try:
            outcome = transition_reservation(
                db, reservation_id, ReservationStatus.COMPLETED, SYSTEM_ACTOR, now=now
            )
        except WorkflowError as exc:
            # e.g. cancelled by an approver between the query and the update
            logger.warning("Skipping completion of reservation %s: %s", reservation_id, exc.message)
            continue
        completed += 1
        for warning in outcome.warnings:
            logger.warning("Reservation %s completed with warning: %s", reservation_id, warning)
    return completed
