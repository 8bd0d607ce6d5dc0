"""
Notification fan-out.

Every workflow step produces one message per interested user. Each row is
committed on its own: a failing insert is logged and skipped, it never blocks
sibling notifications or the state change that triggered it. Callers get the
failures back as warning strings.

Recipients are deduplicated per event by user id; the first rule that
selects a user decides their message.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.facility import ApprovalRoute
from app.models.notification import Notification
from app.models.reservation import PaymentApproval, Reservation
from app.models.user import User, UserRole
from app.services.actors import Actor
from app.services.routing import approver_role

logger = logging.getLogger(__name__)

RESERVATION = "reservation"
PAYMENT_APPROVAL = "payment_approval"

# Transitions that payment collectors hear about on the Admin / PaymentCollector routes
COLLECTOR_BROADCAST_STATUSES = {"approved", "declined", "cancelled"}
COLLECTOR_BROADCAST_ROUTES = {ApprovalRoute.ADMIN, ApprovalRoute.PAYMENT_COLLECTOR}

ROLE_LABELS = {
    UserRole.ADMIN: "admin",
    UserRole.MDRR_STAFF: "MDRR staff",
    UserRole.PAYMENT_COLLECTOR: "payment collector",
    UserRole.END_USER: "booker",
    UserRole.SYSTEM: "system",
}


@dataclass
class TransitionEvent:
    entity: str
    related_id: UUID
    status: str
    facility_name: str
    booker_id: UUID
    booker_name: str
    actor: Actor
    route: ApprovalRoute
    total_price: Optional[Decimal] = None

    @property
    def action_type(self) -> str:
        return f"{self.entity}_{self.status}"

    @property
    def by_booker(self) -> bool:
        return self.actor.id is not None and self.actor.id == self.booker_id

    @classmethod
    def for_booking(cls, booking: Union[Reservation, PaymentApproval], actor: Actor) -> "TransitionEvent":
        if isinstance(booking, Reservation):
            entity, route = RESERVATION, ApprovalRoute(booking.approval_route)
        else:
            entity, route = PAYMENT_APPROVAL, ApprovalRoute.PAYMENT_COLLECTOR
        return cls(
            entity=entity,
            related_id=booking.id,
            status=booking.status.value,
            facility_name=booking.facility.name,
            booker_id=booking.user_id,
            booker_name=booking.booker_name,
            actor=actor,
            route=route,
            total_price=booking.total_price,
        )


class _Batch:
    """Ordered, per-user-deduplicated set of notifications for one event."""

    def __init__(self, related_type: str, related_id: UUID):
        self.related_type = related_type
        self.related_id = related_id
        self._by_user: Dict[UUID, Notification] = {}

    def add(self, user_id: UUID, role: UserRole, title: str, message: str, action_type: str) -> None:
        if user_id is None or user_id in self._by_user:
            return
        self._by_user[user_id] = Notification(
            user_id=user_id,
            recipient_role=role,
            title=title,
            message=message,
            action_type=action_type,
            related_type=self.related_type,
            related_id=self.related_id,
            is_read=False,
        )

    def __iter__(self):
        return iter(self._by_user.values())

    def __len__(self):
        return len(self._by_user)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _active_users(db: Session, role: UserRole) -> List[User]:
    return (
        db.query(User)
        .filter(User.role == role, User.is_active == True)  # noqa: E712
        .order_by(User.created_at, User.id)
        .all()
    )


def _user_role(db: Session, user_id: UUID) -> UserRole:
    user = db.query(User).filter(User.id == user_id).first()
    return UserRole(user.role) if user else UserRole.END_USER


def _price_suffix(price: Optional[Decimal]) -> str:
    return f" Total price: {Decimal(price):.2f}" if price else ""


def _deliver(db: Session, notification: Notification) -> None:
    db.add(notification)
    db.commit()


def dispatch(db: Session, batch) -> List[str]:
    """Insert each notification independently; return a warning per failure."""
    warnings: List[str] = []
    for notification in batch:
        try:
            _deliver(db, notification)
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Failed to deliver %s notification to user %s; skipping.",
                notification.action_type, notification.user_id,
            )
            warnings.append(
                f"Notification '{notification.action_type}' to user {notification.user_id} could not be delivered"
            )
    return warnings


def _add_role_pool(db: Session, batch: _Batch, role: UserRole, title: str, message: str, action_type: str,
                   warnings: List[str]) -> None:
    try:
        users = _active_users(db, role)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not load %s recipients for %s.", role.value, action_type)
        warnings.append(f"Could not resolve {ROLE_LABELS[role]} recipients for '{action_type}'")
        return
    for user in users:
        batch.add(user.id, role, title, message, action_type)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def plan_transition(db: Session, event: TransitionEvent, warnings: Optional[List[str]] = None) -> _Batch:
    """Build (but do not insert) the notifications for a status change."""
    warnings = warnings if warnings is not None else []
    batch = _Batch(event.entity, event.related_id)
    status = event.status
    action_type = event.action_type
    noun = "reservation" if event.entity == RESERVATION else "booking"
    title = f"{noun.capitalize()} {status.capitalize()}"
    actor_label = ROLE_LABELS[event.actor.role]

    # 1. booker
    if event.by_booker:
        booker_message = f"You have {status} your {noun} for {event.facility_name}."
    elif event.entity == PAYMENT_APPROVAL and status == "approved":
        booker_message = (
            f"Your booking for {event.facility_name} has been approved by the payment collector "
            f"and is pending final approval.{_price_suffix(event.total_price)}"
        )
    elif event.entity == PAYMENT_APPROVAL:
        booker_message = f"Your booking for {event.facility_name} has been {status} by the payment collector."
    else:
        booker_message = f"Your reservation for {event.facility_name} has been {status}."
    batch.add(event.booker_id, _user_role(db, event.booker_id), title, booker_message, action_type)

    # 2. acting user
    if not event.actor.is_system:
        batch.add(
            event.actor.id,
            event.actor.role,
            title,
            f"You have {status} the {noun} for {event.facility_name} by {event.booker_name}."
            f"{_price_suffix(event.total_price) if event.entity == PAYMENT_APPROVAL else ''}",
            action_type,
        )

    # 3. payment collectors on the Admin / PaymentCollector routes
    if event.route in COLLECTOR_BROADCAST_ROUTES and status in COLLECTOR_BROADCAST_STATUSES:
        _add_role_pool(
            db, batch, UserRole.PAYMENT_COLLECTOR, title,
            f"Reservation for {event.facility_name} has been {status} by the {actor_label}.",
            action_type, warnings,
        )

    # 4. approvers of the route learn about cancellations made by the booker
    if event.by_booker and status == "cancelled":
        _add_role_pool(
            db, batch, approver_role(event.route), title,
            f"{event.booker_name} cancelled their {noun} for {event.facility_name}.",
            action_type, warnings,
        )

    return batch


def notify_transition(db: Session, event: TransitionEvent) -> List[str]:
    warnings: List[str] = []
    try:
        batch = plan_transition(db, event, warnings)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not plan notifications for %s %s.", event.entity, event.related_id)
        return [f"Notifications for '{event.action_type}' could not be prepared"]
    return warnings + dispatch(db, batch)


def notify_booking_created(
    db: Session, booking: Union[Reservation, PaymentApproval], route: ApprovalRoute
) -> List[str]:
    """Booker confirmation plus a 'new booking' alert for every approver on the route."""
    warnings: List[str] = []
    entity = RESERVATION if isinstance(booking, Reservation) else PAYMENT_APPROVAL
    facility_name = booking.facility.name
    batch = _Batch(entity, booking.id)
    try:
        batch.add(
            booking.user_id,
            _user_role(db, booking.user_id),
            "Booking Submitted",
            f"Your booking request for {facility_name} has been submitted and is pending approval.",
            "booking_created",
        )
        _add_role_pool(
            db, batch, approver_role(route), "New Booking Request",
            f"New booking request for {facility_name} by {booking.booker_name}.",
            "new_booking", warnings,
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not plan creation notifications for %s %s.", entity, booking.id)
        return ["Booking notifications could not be prepared"]
    return warnings + dispatch(db, batch)


def designated_reviewer(db: Session) -> Optional[User]:
    """The single admin told that a promoted booking awaits review."""
    if settings.DESIGNATED_REVIEWER_EMAIL:
        reviewer = (
            db.query(User)
            .filter(
                User.email == settings.DESIGNATED_REVIEWER_EMAIL,
                User.role == UserRole.ADMIN,
                User.is_active == True,  # noqa: E712
            )
            .first()
        )
        if reviewer:
            return reviewer
    admins = _active_users(db, UserRole.ADMIN)
    return admins[0] if admins else None


def notify_promotion(db: Session, approval: PaymentApproval, reservation: Reservation, actor: Actor) -> List[str]:
    """
    Announce a promoted reservation to exactly one admin.

    When the reservation is routed to a specialized pool, that pool is told
    as well since it makes the final decision.
    """
    warnings: List[str] = []
    route = ApprovalRoute(reservation.approval_route)
    message = (
        f"{ROLE_LABELS[actor.role].capitalize()} {actor.name or actor.email} has approved a paid booking for "
        f"{approval.facility.name} by {approval.booker_name}. It requires your review."
    )
    action_type = f"{RESERVATION}_{reservation.status.value}"
    batch = _Batch(RESERVATION, reservation.id)

    try:
        reviewer = designated_reviewer(db)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not resolve reviewer for reservation %s.", reservation.id)
        warnings.append("Reviewer for the promoted reservation could not be resolved")
        reviewer = None
    else:
        if reviewer is None:
            logger.warning("No admin available to review promoted reservation %s.", reservation.id)
            warnings.append(f"No active admin to notify for reservation {reservation.id}")
    if reviewer is not None:
        batch.add(reviewer.id, UserRole.ADMIN, "Reservation Awaiting Review", message, action_type)

    if route != ApprovalRoute.ADMIN:
        _add_role_pool(db, batch, approver_role(route), "Reservation Awaiting Review", message,
                       action_type, warnings)
    return warnings + dispatch(db, batch)


def notify_promotion_conflict(db: Session, approval: PaymentApproval, failed: bool = False) -> List[str]:
    """Tell every admin that an approved payment could not become a reservation."""
    if failed:
        reason, suffix = "the reservation could not be saved", "promotion_failed"
    else:
        reason, suffix = "the slot is no longer free", "conflict"
    warnings: List[str] = []
    batch = _Batch(PAYMENT_APPROVAL, approval.id)
    try:
        message = (
            f"An approved payment for {approval.facility.name} by {approval.booker_name} could not be "
            f"turned into a reservation because {reason}. Manual resolution required."
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not load payment approval %s for its admin alert.", approval.id)
        return ["Admins could not be told about the unpromoted payment approval"]
    _add_role_pool(db, batch, UserRole.ADMIN, "Booking Needs Attention", message,
                   f"{PAYMENT_APPROVAL}_{suffix}", warnings)
    return warnings + dispatch(db, batch)
