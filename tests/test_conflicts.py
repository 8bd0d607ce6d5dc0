"""Interval overlap checks against reservations and payment approvals."""

from sqlalchemy.exc import OperationalError

from app.models import (
    PaymentApproval,
    PaymentApprovalStatus,
    PromotionState,
    Reservation,
    ReservationStatus,
    ApprovalRoute,
)
from app.services import conflicts
from app.services.conflicts import describe_conflict, find_conflict, has_overlap
from tests.conftest import at


def _reservation(db, facility, user, start, end, status=ReservationStatus.APPROVED):
    reservation = Reservation(
        facility_id=facility.id,
        user_id=user.id,
        booker_name=user.full_name,
        booker_email=user.email,
        booker_phone=user.phone,
        start_time=start,
        end_time=end,
        status=status,
        approval_route=ApprovalRoute.ADMIN,
    )
    db.add(reservation)
    db.commit()
    return reservation


def _approval(db, facility, user, start, end, status=PaymentApprovalStatus.PENDING, promotion_state=None):
    approval = PaymentApproval(
        facility_id=facility.id,
        user_id=user.id,
        booker_name=user.full_name,
        booker_email=user.email,
        booker_phone=user.phone,
        start_time=start,
        end_time=end,
        receipt_image_url="https://receipts.example.com/r/1.jpg",
        status=status,
        promotion_state=promotion_state,
    )
    db.add(approval)
    db.commit()
    return approval


class TestReservationOverlap:
    def test_overlapping_interval_conflicts(self, db, make_user, make_facility):
        user, facility = make_user(), make_facility()
        _reservation(db, facility, user, at(1, 10), at(1, 12))
        assert has_overlap(db, facility.id, at(1, 11), at(1, 13))

    def test_enclosing_interval_conflicts(self, db, make_user, make_facility):
        user, facility = make_user(), make_facility()
        _reservation(db, facility, user, at(1, 10), at(1, 12))
        assert has_overlap(db, facility.id, at(1, 9), at(1, 14))

    def test_adjacent_intervals_do_not_conflict(self, db, make_user, make_facility):
        user, facility = make_user(), make_facility()
        _reservation(db, facility, user, at(1, 10), at(1, 12))
        assert not has_overlap(db, facility.id, at(1, 12), at(1, 14))
        assert not has_overlap(db, facility.id, at(1, 8), at(1, 10))

    def test_other_facility_does_not_conflict(self, db, make_user, make_facility):
        user = make_user()
        court, hall = make_facility("Court"), make_facility("Hall")
        _reservation(db, facility=court, user=user, start=at(1, 10), end=at(1, 12))
        assert not has_overlap(db, hall.id, at(1, 10), at(1, 12))

    def test_pending_blocks(self, db, make_user, make_facility):
        user, facility = make_user(), make_facility()
        _reservation(db, facility, user, at(1, 10), at(1, 12), status=ReservationStatus.PENDING)
        assert has_overlap(db, facility.id, at(1, 10), at(1, 12))

    def test_inactive_statuses_do_not_block(self, db, make_user, make_facility):
        user, facility = make_user(), make_facility()
        for status in (ReservationStatus.DECLINED, ReservationStatus.CANCELLED, ReservationStatus.COMPLETED):
            _reservation(db, facility, user, at(1, 10), at(1, 12), status=status)
        assert not has_overlap(db, facility.id, at(1, 10), at(1, 12))

    def test_excluded_reservation_is_ignored(self, db, make_user, make_facility):
        user, facility = make_user(), make_facility()
        own = _reservation(db, facility, user, at(1, 10), at(1, 12))
        assert not has_overlap(db, facility.id, at(1, 10), at(1, 12), exclude_reservation_id=own.id)


class TestPaymentApprovalOverlap:
    def test_pending_approval_blocks(self, db, make_user, make_facility):
        user, facility = make_user(), make_facility(price="100")
        _approval(db, facility, user, at(1, 10), at(1, 12))
        assert has_overlap(db, facility.id, at(1, 11), at(1, 12))

    def test_unpromoted_approved_blocks(self, db, make_user, make_facility):
        user, facility = make_user(), make_facility(price="100")
        _approval(db, facility, user, at(1, 10), at(1, 12), status=PaymentApprovalStatus.APPROVED,
                  promotion_state=PromotionState.CONFLICT)
        assert has_overlap(db, facility.id, at(1, 10), at(1, 12))

    def test_promoted_and_declined_do_not_block(self, db, make_user, make_facility):
        user, facility = make_user(), make_facility(price="100")
        _approval(db, facility, user, at(1, 10), at(1, 12), status=PaymentApprovalStatus.APPROVED,
                  promotion_state=PromotionState.PROMOTED)
        _approval(db, facility, user, at(1, 10), at(1, 12), status=PaymentApprovalStatus.DECLINED)
        assert find_conflict(db, facility.id, at(1, 10), at(1, 12)) is None

    def test_excluded_approval_is_ignored(self, db, make_user, make_facility):
        user, facility = make_user(), make_facility(price="100")
        own = _approval(db, facility, user, at(1, 10), at(1, 12))
        assert not has_overlap(db, facility.id, at(1, 10), at(1, 12), exclude_payment_approval_id=own.id)


class TestFailClosed:
    def test_lookup_error_reports_conflict(self, db, make_facility, monkeypatch):
        facility = make_facility()

        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection reset"))

        monkeypatch.setattr(conflicts, "find_conflict", broken)
        assert has_overlap(db, facility.id, at(1, 10), at(1, 12))
        assert "could not be verified" in describe_conflict(db, facility.id, at(1, 10), at(1, 12))
