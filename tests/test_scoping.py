"""Scope filters for list endpoints."""

import pytest

from garagehub.auth.descriptors import ResourceKind, get_descriptor
from garagehub.auth.scoping import ScopeFilter, assigned_filter, build_scope_filter, owned_filter
from tests.conftest import admin, client, technician


class TestScopeFilter:
    def test_unrestricted(self):
        scope = ScopeFilter.unrestricted()
        assert scope.is_unrestricted
        assert scope.as_dict() == {}

    def test_admin_is_unrestricted(self):
        for kind in (ResourceKind.INVOICE, ResourceKind.VEHICLE, ResourceKind.REPAIR_ORDER):
            assert build_scope_filter(get_descriptor(kind), admin()).is_unrestricted

    def test_client_filter_uses_owned_customer(self):
        scope = build_scope_filter(get_descriptor(ResourceKind.INVOICE), client(), "cust-1")
        assert scope.as_dict() == {"customer_id": "cust-1"}

    def test_client_without_owned_customer_has_no_filter(self):
        assert build_scope_filter(get_descriptor(ResourceKind.VEHICLE), client()) is None

    def test_technician_direct_assignment(self):
        scope = build_scope_filter(get_descriptor(ResourceKind.REPAIR_ORDER), technician("tech-7"))
        assert scope.as_dict() == {"technician_id": "tech-7"}

    def test_technician_vehicle_scope_goes_through_repair_orders(self):
        scope = build_scope_filter(get_descriptor(ResourceKind.VEHICLE), technician("tech-7"))
        assert not scope.conditions
        assert scope.via.kind is ResourceKind.REPAIR_ORDER
        assert scope.via.key == "vehicle_id"
        assert scope.as_dict() == {
            "via": {"kind": "repair_order", "key": "vehicle_id", "technician_id": "tech-7"},
        }

    def test_technician_on_unassigned_kind_is_unrestricted(self):
        assert build_scope_filter(get_descriptor(ResourceKind.INVENTORY), technician()).is_unrestricted

    def test_technician_on_client_only_kind_has_no_filter(self):
        assert build_scope_filter(get_descriptor(ResourceKind.INVOICE), technician()) is None

    def test_owned_filter_respects_owner_field(self):
        assert owned_filter(get_descriptor(ResourceKind.CUSTOMER), "cust-1").as_dict() == {"id": "cust-1"}

    def test_assigned_filter_requires_assignment(self):
        with pytest.raises(ValueError):
            assigned_filter(get_descriptor(ResourceKind.INVOICE), "tech-7")
