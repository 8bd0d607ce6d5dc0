"""Approval routing decisions."""

import uuid
from decimal import Decimal

import pytest

from app.models import ApprovalRoute, UserRole
from app.services.routing import (
    approver_role,
    load_specialized_routes,
    resolve_route,
    route_for_facility,
    routes_for_role,
)

MDRR_FACILITY = uuid.uuid4()
PLAIN_FACILITY = uuid.uuid4()
SPECIALIZED = {MDRR_FACILITY: ApprovalRoute.MDRR_STAFF}


class TestResolveRoute:
    @pytest.mark.parametrize("price", ["150.00", Decimal("0.01"), 500])
    def test_priced_goes_to_payment_collector(self, price):
        assert resolve_route(price, PLAIN_FACILITY, SPECIALIZED) == ApprovalRoute.PAYMENT_COLLECTOR
        # price wins over the specialized mapping
        assert resolve_route(price, MDRR_FACILITY, SPECIALIZED) == ApprovalRoute.PAYMENT_COLLECTOR

    @pytest.mark.parametrize("price", [0, "0", None, Decimal("0.00")])
    def test_free_goes_to_admin(self, price):
        assert resolve_route(price, PLAIN_FACILITY, SPECIALIZED) == ApprovalRoute.ADMIN

    def test_free_specialized_goes_to_mdrr(self):
        assert resolve_route(0, MDRR_FACILITY, SPECIALIZED) == ApprovalRoute.MDRR_STAFF

    def test_promoted_priced_skips_collector(self):
        assert resolve_route(200, MDRR_FACILITY, SPECIALIZED, promoted=True) == ApprovalRoute.MDRR_STAFF
        assert resolve_route(200, PLAIN_FACILITY, SPECIALIZED, promoted=True) == ApprovalRoute.ADMIN

    def test_deterministic(self):
        routes = {resolve_route(0, MDRR_FACILITY, SPECIALIZED) for _ in range(20)}
        assert routes == {ApprovalRoute.MDRR_STAFF}


class TestApproverRoles:
    def test_each_route_has_one_role(self):
        assert approver_role(ApprovalRoute.PAYMENT_COLLECTOR) == UserRole.PAYMENT_COLLECTOR
        assert approver_role(ApprovalRoute.MDRR_STAFF) == UserRole.MDRR_STAFF
        assert approver_role(ApprovalRoute.ADMIN) == UserRole.ADMIN

    def test_routes_for_role(self):
        assert routes_for_role(UserRole.ADMIN) == [ApprovalRoute.ADMIN]
        assert routes_for_role(UserRole.END_USER) == []


class TestFacilityRoutes:
    def test_mapping_is_read_from_the_database(self, db, make_facility):
        mdrr = make_facility("Multi-purpose Hall", route=ApprovalRoute.MDRR_STAFF)
        plain = make_facility("Basketball Court")
        assert load_specialized_routes(db) == {mdrr.id: ApprovalRoute.MDRR_STAFF}
        assert route_for_facility(db, mdrr) == ApprovalRoute.MDRR_STAFF
        assert route_for_facility(db, plain) == ApprovalRoute.ADMIN

    def test_priced_mdrr_facility_after_promotion(self, db, make_facility):
        facility = make_facility("Function Room", price="300", route=ApprovalRoute.MDRR_STAFF)
        assert route_for_facility(db, facility) == ApprovalRoute.PAYMENT_COLLECTOR
        assert route_for_facility(db, facility, promoted=True) == ApprovalRoute.MDRR_STAFF
