"""Append-only transaction log."""

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import SideEffectFailure
from app.models import Notification, Reservation, ReservationStatus, TransactionRecord, UserRole
from app.services import audit
from app.services.actors import Actor
from app.services.intake import create_booking
from app.services.reservations import transition_reservation
from tests.conftest import NOW, at, booking_request


@pytest.fixture
def booker(make_user):
    return make_user(full_name="Juan Dela Cruz")


@pytest.fixture
def approved(db, booker, make_facility, staff):
    facility = make_facility("Covered Court")
    reservation = create_booking(db, booking_request(facility, at(6, 9), at(6, 11)), booker, now=NOW).record
    admin = Actor.from_user(staff[UserRole.ADMIN])
    return transition_reservation(db, reservation.id, "approved", admin, now=NOW).record


class TestBookerCancellation:
    def test_cancellation_is_recorded(self, db, approved, booker, staff):
        outcome = transition_reservation(
            db, approved.id, "cancelled", Actor.from_user(booker), reason="schedule change", now=NOW
        )

        assert outcome.warnings == []
        reservation = db.get(Reservation, approved.id)
        assert reservation.status == ReservationStatus.CANCELLED
        assert reservation.cancellation_reason == "schedule change"

        notified = {
            n.user_id
            for n in db.query(Notification).filter(
                Notification.related_id == approved.id, Notification.action_type == "reservation_cancelled"
            )
        }
        assert booker.id in notified
        assert staff[UserRole.ADMIN].id in notified

        record = db.query(TransactionRecord).filter(TransactionRecord.action == "reservation_cancelled").one()
        assert record.action_by == booker.id
        assert record.action_by_role == "end_user"
        assert record.target_user_id == booker.id
        assert record.facility_id == approved.facility_id
        assert record.status == "cancelled"
        assert record.details["facility_name"] == "Covered Court"
        assert record.details["cancellation_reason"] == "schedule change"
        assert record.details["reservation_id"] == str(approved.id)


class TestRecordOrdering:
    def test_one_row_per_action(self, db, approved):
        actions = sorted(r.action for r in db.query(TransactionRecord))
        assert actions == ["booking_created", "reservation_approved"]

    def test_snapshot_survives_facility_rename(self, db, approved):
        approved.facility.name = "Renamed Court"
        db.commit()
        record = db.query(TransactionRecord).filter(TransactionRecord.action == "reservation_approved").one()
        assert record.details["facility_name"] == "Covered Court"


class TestAuditFailures:
    def test_record_raises_side_effect_failure(self, db, approved, monkeypatch):
        def broken(subject):
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(audit, "snapshot", broken)
        with pytest.raises(SideEffectFailure):
            audit.record(db, "reservation_approved", Actor.from_user(approved.user), approved)

    def test_transition_survives_audit_failure(self, db, approved, booker, monkeypatch):
        def broken(subject):
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(audit, "snapshot", broken)
        outcome = transition_reservation(
            db, approved.id, "cancelled", Actor.from_user(booker), reason="schedule change", now=NOW
        )
        assert outcome.record.status == ReservationStatus.CANCELLED
        assert outcome.warnings == ["Audit record 'reservation_cancelled' could not be written"]
        # notifications still went out
        assert db.query(Notification).filter(Notification.action_type == "reservation_cancelled").count() > 0
