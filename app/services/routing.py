"""
Approval routing and payment-approval promotion.

Routing rule, in priority order:

1. a priced booking that has not been promoted yet goes to the payment collectors;
2. a facility listed in ``facility_routes`` goes to that specialized pool
   (the MDRR staff);
3. everything else goes to the general admin.
"""

import logging
from decimal import Decimal
from typing import Dict, Mapping, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import DependencyFailure, InvalidTransition, NotFound, PromotionConflict
from app.models.facility import ApprovalRoute, FacilityRoute
from app.models.reservation import (
    PaymentApproval,
    PaymentApprovalStatus,
    PromotionState,
    Reservation,
    ReservationStatus,
)
from app.models.user import UserRole
from app.services.actors import Actor
from app.services.conflicts import describe_conflict, has_overlap, lock_facility

logger = logging.getLogger(__name__)

APPROVER_ROLES: Dict[ApprovalRoute, UserRole] = {
    ApprovalRoute.PAYMENT_COLLECTOR: UserRole.PAYMENT_COLLECTOR,
    ApprovalRoute.MDRR_STAFF: UserRole.MDRR_STAFF,
    ApprovalRoute.ADMIN: UserRole.ADMIN,
}


def approver_role(route: ApprovalRoute) -> UserRole:
    return APPROVER_ROLES[ApprovalRoute(route)]


def routes_for_role(role: UserRole) -> list:
    return [route for route, r in APPROVER_ROLES.items() if r == role]


def resolve_route(
    price_per_hour,
    facility_id: UUID,
    specialized_routes: Mapping[UUID, ApprovalRoute],
    promoted: bool = False,
) -> ApprovalRoute:
    """Pure routing decision from the facility's price and id."""
    if Decimal(str(price_per_hour or 0)) > 0 and not promoted:
        return ApprovalRoute.PAYMENT_COLLECTOR
    specialized = specialized_routes.get(facility_id)
    if specialized is not None:
        return ApprovalRoute(specialized)
    return ApprovalRoute.ADMIN


def load_specialized_routes(db: Session) -> Dict[UUID, ApprovalRoute]:
    return {row.facility_id: ApprovalRoute(row.route) for row in db.query(FacilityRoute).all()}


def route(db: Session, booking: Union[Reservation, PaymentApproval]) -> ApprovalRoute:
    """Route for an existing booking record."""
    if isinstance(booking, Reservation):
        if booking.approval_route:
            return ApprovalRoute(booking.approval_route)
        promoted = True
    else:
        promoted = booking.promotion_state == PromotionState.PROMOTED
    facility = booking.facility
    return resolve_route(
        facility.price_per_hour, facility.id, load_specialized_routes(db), promoted=promoted
    )


def route_for_facility(db: Session, facility, promoted: bool = False) -> ApprovalRoute:
    return resolve_route(facility.price_per_hour, facility.id, load_specialized_routes(db), promoted=promoted)


def _flag_promotion(db: Session, approval: PaymentApproval, state: PromotionState) -> None:
    approval.promotion_state = state
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not flag payment approval %s as %s.", approval.id, state.value)


def promote(db: Session, approval: PaymentApproval, actor: Actor) -> Reservation:
    """
    Turn an approved payment approval into a pending reservation.

    Re-runs the conflict check; on conflict the approval stays ``approved``
    with ``promotion_state = conflict`` and ``PromotionConflict`` is raised.
    Any database failure leaves it ``approved`` with ``promotion_state =
    failed`` and raises ``DependencyFailure``. Both states are retried by an
    admin. A given approval is promoted at most once.
    """
    if approval.status != PaymentApprovalStatus.APPROVED:
        raise InvalidTransition(
            f"Only approved payment approvals can be promoted (current status: '{approval.status.value}')",
            current=approval.status.value,
            requested="promoted",
        )
    if approval.promotion_state == PromotionState.PROMOTED or approval.reservation is not None:
        raise InvalidTransition(
            "Payment approval has already been promoted to a reservation",
            current=PromotionState.PROMOTED.value,
            requested="promoted",
        )

    try:
        facility = lock_facility(db, approval.facility_id)
        if facility is None:
            raise NotFound("Facility not found")

        if has_overlap(
            db, facility.id, approval.start_time, approval.end_time,
            exclude_payment_approval_id=approval.id,
        ):
            message = describe_conflict(
                db, facility.id, approval.start_time, approval.end_time,
                exclude_payment_approval_id=approval.id,
            )
            db.rollback()
            _flag_promotion(db, approval, PromotionState.CONFLICT)
            logger.warning("Promotion of payment approval %s blocked: %s", approval.id, message)
            raise PromotionConflict(f"Payment approval cannot be promoted: {message}")

        reservation = Reservation(
            facility_id=approval.facility_id,
            user_id=approval.user_id,
            payment_approval_id=approval.id,
            booker_name=approval.booker_name,
            booker_email=approval.booker_email,
            booker_phone=approval.booker_phone,
            start_time=approval.start_time,
            end_time=approval.end_time,
            purpose=approval.purpose,
            number_of_attendees=approval.number_of_attendees,
            special_requests=approval.special_requests,
            receipt_image_url=approval.receipt_image_url,
            total_price=approval.total_price,
            status=ReservationStatus.PENDING,
            approval_route=route_for_facility(db, facility, promoted=True),
        )
        db.add(reservation)
        approval.promotion_state = PromotionState.PROMOTED
        db.commit()
    except IntegrityError:
        # unique payment_approval_id: someone else promoted it first
        db.rollback()
        raise InvalidTransition(
            "Payment approval has already been promoted to a reservation",
            current=PromotionState.PROMOTED.value,
            requested="promoted",
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Promotion of payment approval %s failed.", approval.id)
        _flag_promotion(db, approval, PromotionState.FAILED)
        raise DependencyFailure("Could not create the promoted reservation") from exc

    db.refresh(reservation)
    logger.info(
        "Payment approval %s promoted to reservation %s by %s.",
        approval.id, reservation.id, actor.role.value,
    )
    return reservation
