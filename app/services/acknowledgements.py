"""Per-role read state for reservations and payment approvals."""

from typing import Iterable, Union

from app.models.acknowledgement import PaymentApprovalAcknowledgement, ReservationAcknowledgement
from app.models.reservation import PaymentApproval, Reservation
from app.models.user import UserRole


def _ack_class(item_model):
    if item_model is Reservation:
        return ReservationAcknowledgement
    return PaymentApprovalAcknowledgement


def is_acknowledged(item: Union[Reservation, PaymentApproval], role: UserRole) -> bool:
    return any(a.role == role for a in item.acknowledgements)


def acknowledge(item: Union[Reservation, PaymentApproval], role: UserRole) -> bool:
    """
    Mark ``item`` as seen by ``role``. Idempotent; does not commit.

    Returns True if a new acknowledgement was added.
    """
    if role == UserRole.SYSTEM or is_acknowledged(item, role):
        return False
    ack_cls = _ack_class(type(item))
    item.acknowledgements.append(ack_cls(role=role))
    return True


def acknowledge_all(items: Iterable, role: UserRole) -> int:
    """Acknowledge every item in ``items`` for ``role``. Does not commit."""
    return sum(1 for item in items if acknowledge(item, role))


def unread_for(item_model, role: UserRole):
    """Filter expression selecting items ``role`` has not acknowledged."""
    ack_cls = _ack_class(item_model)
    return ~item_model.acknowledgements.any(ack_cls.role == role)
