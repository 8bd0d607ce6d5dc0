"""Payment-collector review and promotion into reservations."""

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    DependencyFailure,
    InvalidTransition,
    PermissionDenied,
    PromotionConflict,
    ValidationError,
)
from app.models import (
    ApprovalRoute,
    Notification,
    PaymentApproval,
    PaymentApprovalStatus,
    PromotionState,
    Reservation,
    ReservationStatus,
    TransactionRecord,
    UserRole,
)
from app.services.actors import Actor
from app.services.intake import create_booking
from app.services.payment_approvals import retry_promotion, transition_payment_approval
from app.services import routing
from app.services.reservations import transition_reservation
from app.services.routing import promote
from tests.conftest import NOW, at, booking_request


@pytest.fixture
def booker(make_user):
    return make_user(full_name="Juan Dela Cruz")


@pytest.fixture
def collector(staff):
    return Actor.from_user(staff[UserRole.PAYMENT_COLLECTOR])


@pytest.fixture
def admin(staff):
    return Actor.from_user(staff[UserRole.ADMIN])


@pytest.fixture
def function_room(make_facility):
    return make_facility("Function Room", price="1500")


@pytest.fixture
def approval(db, booker, function_room, staff):
    return create_booking(db, booking_request(function_room, at(3, 10), at(3, 11)), booker, now=NOW).record


def _force_reservation(db, facility, user, start, end):
    """A competing approved reservation, inserted directly to simulate a lost race."""
    reservation = Reservation(
        facility_id=facility.id,
        user_id=user.id,
        booker_name=user.full_name,
        booker_email=user.email,
        booker_phone=user.phone,
        start_time=start,
        end_time=end,
        status=ReservationStatus.APPROVED,
        approval_route=ApprovalRoute.ADMIN,
    )
    db.add(reservation)
    db.commit()
    return reservation


def _broken_lock(db, facility_id):
    raise OperationalError("SELECT", {}, Exception("connection reset"))


class TestCollectorReview:
    def test_approval_promotes_to_pending_reservation(self, db, approval, collector, staff):
        outcome = transition_payment_approval(db, approval.id, "approved", collector, now=NOW)

        assert outcome.record.status == PaymentApprovalStatus.APPROVED
        assert outcome.record.promotion_state == PromotionState.PROMOTED
        assert outcome.record.action_by == collector.id
        assert not outcome.promotion_conflict

        reservation = outcome.promoted_reservation
        assert reservation.status == ReservationStatus.PENDING
        assert reservation.payment_approval_id == approval.id
        assert reservation.approval_route == ApprovalRoute.ADMIN
        assert reservation.total_price == approval.total_price
        assert reservation.receipt_image_url == approval.receipt_image_url
        assert reservation.start_time == approval.start_time

        reviewer_note = (
            db.query(Notification)
            .filter(Notification.related_id == reservation.id, Notification.user_id == staff[UserRole.ADMIN].id)
            .one()
        )
        assert reviewer_note.action_type == "reservation_pending"

    def test_full_paid_flow_ends_approved(self, db, approval, collector, admin):
        outcome = transition_payment_approval(db, approval.id, "approved", collector, now=NOW)
        final = transition_reservation(db, outcome.promoted_reservation.id, "approved", admin, now=NOW)
        assert final.record.status == ReservationStatus.APPROVED

    def test_promotion_to_mdrr_when_facility_is_mapped(self, db, booker, make_facility, collector, staff):
        facility = make_facility("Conference Hall", price="800", route=ApprovalRoute.MDRR_STAFF)
        pa = create_booking(db, booking_request(facility, at(3, 13), at(3, 14)), booker, now=NOW).record

        outcome = transition_payment_approval(db, pa.id, "approved", collector, now=NOW)
        assert outcome.promoted_reservation.approval_route == ApprovalRoute.MDRR_STAFF
        notified = {
            n.user_id
            for n in db.query(Notification).filter(Notification.related_id == outcome.promoted_reservation.id)
        }
        assert notified == {staff[UserRole.ADMIN].id, staff[UserRole.MDRR_STAFF].id}

    def test_decline_is_terminal_and_creates_nothing(self, db, approval, collector):
        outcome = transition_payment_approval(db, approval.id, "declined", collector, now=NOW)
        assert outcome.record.status == PaymentApprovalStatus.DECLINED
        assert outcome.promoted_reservation is None
        assert db.query(Reservation).count() == 0

        with pytest.raises(InvalidTransition):
            transition_payment_approval(db, approval.id, "approved", collector, now=NOW)

    def test_only_payment_collectors_review(self, db, approval, admin):
        with pytest.raises(InvalidTransition, match="payment_collector"):
            transition_payment_approval(db, approval.id, "approved", admin, now=NOW)
        assert db.get(PaymentApproval, approval.id).status == PaymentApprovalStatus.PENDING

    def test_unknown_status(self, db, approval, collector):
        with pytest.raises(ValidationError):
            transition_payment_approval(db, approval.id, "cancelled", collector, now=NOW)

    def test_collector_transition_is_audited(self, db, approval, collector):
        outcome = transition_payment_approval(db, approval.id, "approved", collector, now=NOW)
        actions = [r.action for r in db.query(TransactionRecord).order_by(TransactionRecord.created_at)]
        assert "payment_approval_approved" in actions
        assert "payment_approval_promoted" in actions
        promoted = db.query(TransactionRecord).filter(TransactionRecord.action == "payment_approval_promoted").one()
        assert promoted.details["approval_id"] == str(approval.id)
        assert promoted.details["reservation_id"] == str(outcome.promoted_reservation.id)


class TestExactlyOnce:
    def test_second_promotion_is_rejected(self, db, approval, collector):
        transition_payment_approval(db, approval.id, "approved", collector, now=NOW)
        with pytest.raises(InvalidTransition, match="already been promoted"):
            promote(db, db.get(PaymentApproval, approval.id), collector)
        assert db.query(Reservation).filter(Reservation.payment_approval_id == approval.id).count() == 1

    def test_pending_approval_cannot_be_promoted(self, db, approval, collector):
        with pytest.raises(InvalidTransition):
            promote(db, approval, collector)


class TestPromotionConflict:
    @pytest.fixture
    def orphaned(self, db, approval, collector, function_room, make_user):
        _force_reservation(db, function_room, make_user(), at(3, 10), at(3, 11))
        return transition_payment_approval(db, approval.id, "approved", collector, now=NOW)

    def test_approval_stays_approved_and_is_flagged(self, db, orphaned):
        assert orphaned.promotion_conflict
        assert orphaned.promoted_reservation is None
        approval = db.get(PaymentApproval, orphaned.record.id)
        assert approval.status == PaymentApprovalStatus.APPROVED
        assert approval.promotion_state == PromotionState.CONFLICT
        assert db.query(Reservation).filter(Reservation.payment_approval_id == approval.id).count() == 0
        assert any("cannot be promoted" in w for w in orphaned.warnings)

    def test_admins_are_alerted(self, db, orphaned, staff):
        alert = (
            db.query(Notification)
            .filter(Notification.action_type == "payment_approval_conflict")
            .one()
        )
        assert alert.user_id == staff[UserRole.ADMIN].id
        assert alert.related_id == orphaned.record.id

    def test_conflict_is_audited(self, db, orphaned):
        record = (
            db.query(TransactionRecord)
            .filter(TransactionRecord.action == "payment_approval_promotion_conflict")
            .one()
        )
        assert record.status == "conflict"

    def test_retry_while_slot_is_taken(self, db, orphaned, admin):
        with pytest.raises(PromotionConflict):
            retry_promotion(db, orphaned.record.id, admin)

    def test_retry_after_slot_frees_up(self, db, orphaned, admin):
        blocker = db.query(Reservation).one()
        transition_reservation(db, blocker.id, "cancelled", admin, reason="double booking", now=NOW)

        outcome = retry_promotion(db, orphaned.record.id, admin)
        assert outcome.promoted_reservation.status == ReservationStatus.PENDING
        assert db.get(PaymentApproval, orphaned.record.id).promotion_state == PromotionState.PROMOTED

    def test_retry_is_admin_only(self, db, orphaned, collector):
        with pytest.raises(PermissionDenied):
            retry_promotion(db, orphaned.record.id, collector)

    def test_retry_requires_an_unpromoted_approval(self, db, approval, collector, admin):
        with pytest.raises(ValidationError):
            retry_promotion(db, approval.id, admin)

        transition_payment_approval(db, approval.id, "approved", collector, now=NOW)
        with pytest.raises(ValidationError):
            retry_promotion(db, approval.id, admin)


class TestPromotionFailure:
    @pytest.fixture
    def stranded(self, db, approval, collector, monkeypatch):
        monkeypatch.setattr(routing, "lock_facility", _broken_lock)
        outcome = transition_payment_approval(db, approval.id, "approved", collector, now=NOW)
        monkeypatch.undo()
        return outcome

    def test_approval_stays_approved_and_is_flagged(self, db, stranded):
        assert stranded.promotion_failed
        assert not stranded.promotion_conflict
        assert stranded.promoted_reservation is None
        approval = db.get(PaymentApproval, stranded.record.id)
        assert approval.status == PaymentApprovalStatus.APPROVED
        assert approval.promotion_state == PromotionState.FAILED
        assert db.query(Reservation).count() == 0
        assert any("not promoted" in w for w in stranded.warnings)

    def test_admins_are_alerted_and_failure_is_audited(self, db, stranded, staff):
        alert = (
            db.query(Notification)
            .filter(Notification.action_type == "payment_approval_promotion_failed")
            .one()
        )
        assert alert.user_id == staff[UserRole.ADMIN].id
        record = (
            db.query(TransactionRecord)
            .filter(TransactionRecord.action == "payment_approval_promotion_failed")
            .one()
        )
        assert record.status == "failed"

    def test_admin_retry_creates_the_reservation(self, db, stranded, admin):
        outcome = retry_promotion(db, stranded.record.id, admin)
        assert outcome.promoted_reservation.status == ReservationStatus.PENDING
        assert db.get(PaymentApproval, stranded.record.id).promotion_state == PromotionState.PROMOTED

    def test_retry_of_an_unflagged_approval(self, db, approval, collector, admin, monkeypatch):
        monkeypatch.setattr(routing, "lock_facility", _broken_lock)
        monkeypatch.setattr(routing, "_flag_promotion", lambda db, approval, state: None)
        transition_payment_approval(db, approval.id, "approved", collector, now=NOW)
        monkeypatch.undo()

        assert db.get(PaymentApproval, approval.id).promotion_state is None
        outcome = retry_promotion(db, approval.id, admin)
        assert outcome.promoted_reservation.payment_approval_id == approval.id

    def test_retry_that_fails_again_raises(self, db, stranded, admin, monkeypatch):
        monkeypatch.setattr(routing, "lock_facility", _broken_lock)
        with pytest.raises(DependencyFailure):
            retry_promotion(db, stranded.record.id, admin)
        assert db.get(PaymentApproval, stranded.record.id).promotion_state == PromotionState.FAILED
