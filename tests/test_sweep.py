"""Completion sweep for reservations that have ended."""

import pytest

from app.models import Notification, Reservation, ReservationStatus, TransactionRecord, UserRole
from app.services.actors import Actor
from app.services.intake import create_booking
from app.services.reservations import transition_reservation
from app.services.sweep import complete_past_reservations
from tests.conftest import NOW, at, booking_request


@pytest.fixture
def book(db, make_user, make_facility, staff):
    facility = make_facility()
    admin = Actor.from_user(staff[UserRole.ADMIN])

    def _book(start, end, approve=True):
        reservation = create_booking(db, booking_request(facility, start, end), make_user(), now=NOW).record
        if approve:
            transition_reservation(db, reservation.id, "approved", admin, now=NOW)
        return reservation

    return _book


def test_completes_only_finished_approved_reservations(db, book):
    finished = book(at(1, 8), at(1, 10))
    running = book(at(1, 10), at(1, 12))
    still_pending = book(at(1, 6), at(1, 7), approve=False)

    count = complete_past_reservations(db, now=at(1, 11))

    assert count == 1
    assert db.get(Reservation, finished.id).status == ReservationStatus.COMPLETED
    assert db.get(Reservation, running.id).status == ReservationStatus.APPROVED
    assert db.get(Reservation, still_pending.id).status == ReservationStatus.PENDING


def test_completion_notifies_booker_and_is_audited(db, book):
    reservation = book(at(1, 8), at(1, 10))
    complete_past_reservations(db, now=at(1, 10))

    note = db.query(Notification).filter(Notification.action_type == "reservation_completed").one()
    assert note.user_id == reservation.user_id
    record = db.query(TransactionRecord).filter(TransactionRecord.action == "reservation_completed").one()
    assert record.action_by is None
    assert record.action_by_role == "system"


def test_second_run_is_a_no_op(db, book):
    book(at(1, 8), at(1, 10))
    assert complete_past_reservations(db, now=at(2, 0)) == 1
    assert complete_past_reservations(db, now=at(2, 0)) == 0
