"""Authorization engine: ownership isolation, assignment isolation, injection."""

import logging

import pytest
from fastapi import HTTPException
from prometheus_client import REGISTRY

from garagehub.auth.descriptors import Action, ResourceDescriptor, ResourceKind, ScopingMode
from garagehub.auth.engine import AuthorizationDecision, AuthorizationEngine, Reason
from garagehub.auth.roles import Role
from tests.conftest import OTHER_TECH_ID, TECH_ID, UNMAPPED_CLIENT_ID, admin, client, technician


async def _fetch(repo, kind, record_id):
    record = await repo.fetch_by_id(kind, record_id)
    assert record is not None
    return record


class TestDecision:
    def test_allowed_decision_does_not_raise(self):
        AuthorizationDecision.allow().raise_for_denial()

    def test_denial_raises_403_with_reason_only(self):
        with pytest.raises(HTTPException) as exc_info:
            AuthorizationDecision.deny(Reason.NOT_OWNER).raise_for_denial()
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == {"message": "Access denied", "reason": "not_owner"}

    def test_resolution_failure_is_reported_as_unresolved(self):
        assert Reason.RESOLUTION_FAILED.public is Reason.OWNERSHIP_UNRESOLVED
        with pytest.raises(HTTPException) as exc_info:
            AuthorizationDecision.deny(Reason.RESOLUTION_FAILED).raise_for_denial()
        assert exc_info.value.detail["reason"] == "ownership_unresolved"


@pytest.mark.asyncio
class TestScenarios:
    async def test_client_reads_another_customers_vehicle(self, repo, engine):
        vehicle = await _fetch(repo, ResourceKind.VEHICLE, "veh-2")
        decision = await engine.authorize(client(), ResourceKind.VEHICLE, Action.READ, target=vehicle)
        assert not decision.allowed
        assert decision.reason is Reason.NOT_OWNER

    async def test_technician_updates_unassigned_repair_order(self, repo, engine):
        order = await _fetch(repo, ResourceKind.REPAIR_ORDER, "ro-2")
        decision = await engine.authorize(
            technician(TECH_ID), ResourceKind.REPAIR_ORDER, Action.UPDATE,
            target=order, body={"status": "completed"},
        )
        assert not decision.allowed
        assert decision.reason is Reason.NOT_ASSIGNED

    async def test_admin_lists_invoices_unrestricted(self, engine):
        decision = await engine.authorize(admin(), ResourceKind.INVOICE, Action.LIST)
        assert decision.allowed
        assert decision.scope_filter.as_dict() == {}

    async def test_client_without_customer_mapping(self, repo, engine):
        vehicle = await _fetch(repo, ResourceKind.VEHICLE, "veh-1")
        decision = await engine.authorize(
            client(UNMAPPED_CLIENT_ID, email="nobody@example.com"),
            ResourceKind.VEHICLE, Action.READ, target=vehicle,
        )
        assert not decision.allowed
        assert decision.reason is Reason.OWNERSHIP_UNRESOLVED
        with pytest.raises(HTTPException) as exc_info:
            decision.raise_for_denial()
        assert exc_info.value.status_code == 403


@pytest.mark.asyncio
class TestClientOwnership:
    @pytest.mark.parametrize("kind,record_id", [
        (ResourceKind.VEHICLE, "veh-1"),
        (ResourceKind.APPOINTMENT, "apt-1"),
        (ResourceKind.REPAIR_ORDER, "ro-1"),
        (ResourceKind.INVOICE, "inv-1"),
        (ResourceKind.INSPECTION, "insp-1"),
    ])
    async def test_reads_own_records(self, repo, engine, kind, record_id):
        record = await _fetch(repo, kind, record_id)
        decision = await engine.authorize(client(), kind, Action.READ, target=record)
        assert decision.allowed

    @pytest.mark.parametrize("kind,record_id", [
        (ResourceKind.VEHICLE, "veh-2"),
        (ResourceKind.APPOINTMENT, "apt-2"),
        (ResourceKind.REPAIR_ORDER, "ro-2"),
        (ResourceKind.INVOICE, "inv-2"),
    ])
    async def test_other_customers_records_are_denied(self, repo, engine, kind, record_id):
        record = await _fetch(repo, kind, record_id)
        decision = await engine.authorize(client(), kind, Action.READ, target=record)
        assert decision.reason is Reason.NOT_OWNER

    async def test_list_is_scoped_to_owned_customer(self, engine):
        decision = await engine.authorize(client(), ResourceKind.INVOICE, Action.LIST)
        assert decision.allowed
        assert decision.scope_filter.as_dict() == {"customer_id": "cust-1"}

    async def test_resolved_customer_is_memoized_on_principal(self, engine):
        principal = client()
        await engine.authorize(principal, ResourceKind.VEHICLE, Action.LIST)
        assert principal.owned_customer_id == "cust-1"

    async def test_forged_customer_id_is_overridden_on_create(self, engine, caplog):
        body = {"customer_id": "cust-2", "year": 2020, "make": "Kia", "model": "Rio"}
        with caplog.at_level(logging.WARNING, logger="garagehub.auth.engine"):
            decision = await engine.authorize(client(), ResourceKind.VEHICLE, Action.CREATE, body=body)
        assert decision.allowed
        assert decision.payload["customer_id"] == "cust-1"
        assert body["customer_id"] == "cust-2"
        assert any("Overriding customer_id" in r.getMessage() for r in caplog.records)

    async def test_missing_customer_id_is_injected_on_create(self, engine):
        decision = await engine.authorize(
            client(), ResourceKind.APPOINTMENT, Action.CREATE,
            body={"vehicle_id": "veh-1", "service_type": "Oil change"},
        )
        assert decision.allowed
        assert decision.payload["customer_id"] == "cust-1"

    async def test_update_cannot_move_record_to_another_customer(self, repo, engine):
        vehicle = await _fetch(repo, ResourceKind.VEHICLE, "veh-1")
        decision = await engine.authorize(
            client(), ResourceKind.VEHICLE, Action.UPDATE,
            target=vehicle, body={"customer_id": "cust-2", "color": "red"},
        )
        assert decision.allowed
        assert decision.payload == {"customer_id": "cust-1", "color": "red"}

    async def test_reference_to_other_customers_vehicle(self, engine):
        decision = await engine.authorize(
            client(), ResourceKind.APPOINTMENT, Action.CREATE,
            body={"vehicle_id": "veh-2", "service_type": "Oil change"},
        )
        assert decision.reason is Reason.CROSS_ENTITY_MISMATCH

    async def test_reference_to_missing_record(self, engine):
        decision = await engine.authorize(
            client(), ResourceKind.INSPECTION, Action.CREATE,
            body={"vehicle_id": "veh-404", "vehicle_info": "?", "customer_name": "Ana", "service_type": "x"},
        )
        assert decision.reason is Reason.CROSS_ENTITY_MISMATCH

    async def test_client_cannot_read_customer_profiles(self, repo, engine):
        customer = await _fetch(repo, ResourceKind.CUSTOMER, "cust-1")
        decision = await engine.authorize(client(), ResourceKind.CUSTOMER, Action.READ, target=customer)
        assert decision.reason is Reason.ROLE_NOT_PERMITTED

    async def test_client_updates_own_profile_only(self, repo, engine):
        own = await _fetch(repo, ResourceKind.CUSTOMER, "cust-1")
        other = await _fetch(repo, ResourceKind.CUSTOMER, "cust-2")
        allowed = await engine.authorize(
            client(), ResourceKind.CUSTOMER, Action.UPDATE, target=own, body={"phone": "555-0100"},
        )
        denied = await engine.authorize(
            client(), ResourceKind.CUSTOMER, Action.UPDATE, target=other, body={"phone": "555-0100"},
        )
        assert allowed.allowed
        assert denied.reason is Reason.NOT_OWNER

    async def test_mapped_client_cannot_create_second_profile(self, engine):
        decision = await engine.authorize(
            client(), ResourceKind.CUSTOMER, Action.CREATE, body={"first_name": "Ana", "last_name": "S"},
        )
        assert decision.reason is Reason.NOT_OWNER

    async def test_unmapped_client_creates_profile_with_account_email(self, engine):
        decision = await engine.authorize(
            client(UNMAPPED_CLIENT_ID, email=" Nobody@Example.com"),
            ResourceKind.CUSTOMER, Action.CREATE,
            body={"first_name": "No", "last_name": "Body", "email": "someone-else@example.com"},
        )
        assert decision.allowed
        assert decision.payload["email"] == "nobody@example.com"

    async def test_client_cannot_delete_inspection(self, repo, engine):
        inspection = await _fetch(repo, ResourceKind.INSPECTION, "insp-1")
        decision = await engine.authorize(client(), ResourceKind.INSPECTION, Action.DELETE, target=inspection)
        assert decision.reason is Reason.ROLE_NOT_PERMITTED

    async def test_lookup_failure_denies(self, repo, engine, caplog):
        vehicle = await _fetch(repo, ResourceKind.VEHICLE, "veh-1")
        repo.fail_on.add("fetch_by_id")
        decision = await engine.authorize(client(), ResourceKind.VEHICLE, Action.READ, target=vehicle)
        assert not decision.allowed
        assert decision.reason is Reason.RESOLUTION_FAILED
        assert decision.reason.public is Reason.OWNERSHIP_UNRESOLVED

    async def test_ambiguous_email_denies(self, repo, engine):
        repo.add(ResourceKind.CUSTOMER, id="cust-3", first_name="Dup", last_name="One", email="dup@example.com")
        repo.add(ResourceKind.CUSTOMER, id="cust-4", first_name="Dup", last_name="Two", email="Dup@Example.com")
        decision = await engine.authorize(client("user-dup", email="dup@example.com"), ResourceKind.INVOICE, Action.LIST)
        assert decision.reason is Reason.OWNERSHIP_UNRESOLVED

    async def test_client_cannot_pick_technician_on_create(self, repo, engine):
        decision = await engine.authorize(
            client(), ResourceKind.INSPECTION, Action.CREATE,
            body={"vehicle_id": "veh-1", "technician_id": OTHER_TECH_ID},
        )
        assert decision.allowed
        assert "technician_id" not in decision.payload

        # The stored record grants tech-8 nothing.
        record = await repo.create(ResourceKind.INSPECTION, decision.payload)
        follow_up = await engine.authorize(
            technician(OTHER_TECH_ID), ResourceKind.INSPECTION, Action.UPDATE,
            target=record, body={"status": "completed"},
        )
        assert follow_up.reason is Reason.NOT_ASSIGNED

    async def test_client_cannot_reassign_appointment(self, repo, engine):
        appointment = await _fetch(repo, ResourceKind.APPOINTMENT, "apt-1")
        decision = await engine.authorize(
            client(), ResourceKind.APPOINTMENT, Action.UPDATE,
            target=appointment, body={"technician_id": OTHER_TECH_ID},
        )
        assert decision.reason is Reason.NOT_ASSIGNED

    async def test_client_cannot_unassign_appointment(self, repo, engine):
        appointment = await _fetch(repo, ResourceKind.APPOINTMENT, "apt-1")
        decision = await engine.authorize(
            client(), ResourceKind.APPOINTMENT, Action.UPDATE,
            target=appointment, body={"technician_id": None},
        )
        assert decision.reason is Reason.NOT_ASSIGNED

    async def test_unchanged_technician_is_dropped_from_client_update(self, repo, engine):
        appointment = await _fetch(repo, ResourceKind.APPOINTMENT, "apt-1")
        decision = await engine.authorize(
            client(), ResourceKind.APPOINTMENT, Action.UPDATE,
            target=appointment, body={"technician_id": TECH_ID, "notes": "Gate code 1234"},
        )
        assert decision.allowed
        assert decision.payload == {"notes": "Gate code 1234"}


@pytest.mark.asyncio
class TestTechnicianAssignment:
    async def test_reads_assigned_records(self, repo, engine):
        for kind, record_id in [
            (ResourceKind.REPAIR_ORDER, "ro-1"),
            (ResourceKind.APPOINTMENT, "apt-1"),
            (ResourceKind.INSPECTION, "insp-1"),
        ]:
            record = await _fetch(repo, kind, record_id)
            decision = await engine.authorize(technician(), kind, Action.READ, target=record)
            assert decision.allowed, kind

    async def test_unassigned_record_is_denied(self, repo, engine):
        appointment = await _fetch(repo, ResourceKind.APPOINTMENT, "apt-2")
        decision = await engine.authorize(technician(), ResourceKind.APPOINTMENT, Action.READ, target=appointment)
        assert decision.reason is Reason.NOT_ASSIGNED

    async def test_record_assigned_to_someone_else_is_denied(self, repo, engine):
        order = await _fetch(repo, ResourceKind.REPAIR_ORDER, "ro-1")
        decision = await engine.authorize(technician(OTHER_TECH_ID), ResourceKind.REPAIR_ORDER, Action.READ, target=order)
        assert decision.reason is Reason.NOT_ASSIGNED

    async def test_vehicle_access_follows_repair_orders(self, repo, engine):
        own = await _fetch(repo, ResourceKind.VEHICLE, "veh-1")
        other = await _fetch(repo, ResourceKind.VEHICLE, "veh-2")
        assert (await engine.authorize(technician(), ResourceKind.VEHICLE, Action.READ, target=own)).allowed
        denied = await engine.authorize(technician(), ResourceKind.VEHICLE, Action.READ, target=other)
        assert denied.reason is Reason.NOT_ASSIGNED

    async def test_list_is_scoped_to_assignments(self, engine):
        decision = await engine.authorize(technician(), ResourceKind.REPAIR_ORDER, Action.LIST)
        assert decision.scope_filter.as_dict() == {"technician_id": TECH_ID}

    async def test_inventory_is_visible_to_technicians(self, engine):
        decision = await engine.authorize(technician(), ResourceKind.INVENTORY, Action.LIST)
        assert decision.allowed
        assert decision.scope_filter.is_unrestricted

    async def test_update_of_assigned_order(self, repo, engine):
        order = await _fetch(repo, ResourceKind.REPAIR_ORDER, "ro-1")
        decision = await engine.authorize(
            technician(), ResourceKind.REPAIR_ORDER, Action.UPDATE,
            target=order, body={"status": "completed", "technician_id": TECH_ID},
        )
        assert decision.allowed
        assert decision.payload == {"status": "completed", "technician_id": TECH_ID}

    async def test_cannot_reassign_order(self, repo, engine):
        order = await _fetch(repo, ResourceKind.REPAIR_ORDER, "ro-1")
        decision = await engine.authorize(
            technician(), ResourceKind.REPAIR_ORDER, Action.UPDATE,
            target=order, body={"technician_id": OTHER_TECH_ID},
        )
        assert decision.reason is Reason.NOT_ASSIGNED

    async def test_cannot_create_repair_orders(self, engine):
        decision = await engine.authorize(
            technician(), ResourceKind.REPAIR_ORDER, Action.CREATE,
            body={"customer_id": "cust-1", "vehicle_id": "veh-1"},
        )
        assert decision.reason is Reason.ROLE_NOT_PERMITTED

    async def test_created_inspection_is_assigned_to_creator(self, engine):
        decision = await engine.authorize(
            technician(), ResourceKind.INSPECTION, Action.CREATE,
            body={"customer_id": "cust-1", "vehicle_id": "veh-1", "technician_id": OTHER_TECH_ID},
        )
        assert decision.allowed
        assert decision.payload["technician_id"] == TECH_ID

    async def test_inspection_for_unassigned_vehicle(self, engine):
        decision = await engine.authorize(
            technician(), ResourceKind.INSPECTION, Action.CREATE,
            body={"customer_id": "cust-2", "vehicle_id": "veh-2"},
        )
        assert decision.reason is Reason.CROSS_ENTITY_MISMATCH

    async def test_cannot_move_order_to_another_customer(self, repo, engine):
        order = await _fetch(repo, ResourceKind.REPAIR_ORDER, "ro-1")
        decision = await engine.authorize(
            technician(), ResourceKind.REPAIR_ORDER, Action.UPDATE,
            target=order, body={"customer_id": "cust-2"},
        )
        assert decision.reason is Reason.CROSS_ENTITY_MISMATCH

    async def test_unchanged_customer_on_update_is_allowed(self, repo, engine):
        order = await _fetch(repo, ResourceKind.REPAIR_ORDER, "ro-1")
        decision = await engine.authorize(
            technician(), ResourceKind.REPAIR_ORDER, Action.UPDATE,
            target=order, body={"customer_id": "cust-1", "diagnosis": "Worn pads"},
        )
        assert decision.allowed

    async def test_cannot_point_order_at_another_customers_vehicle(self, repo, engine):
        repo.add(ResourceKind.REPAIR_ORDER, id="ro-3", order_number="RO-1003", customer_id="cust-2",
                 vehicle_id="veh-2", technician_id=TECH_ID, status="created", description="Rattle")
        order = await _fetch(repo, ResourceKind.REPAIR_ORDER, "ro-1")
        # tech-7 is assigned to veh-2 through ro-3, but it belongs to cust-2.
        decision = await engine.authorize(
            technician(), ResourceKind.REPAIR_ORDER, Action.UPDATE,
            target=order, body={"vehicle_id": "veh-2"},
        )
        assert decision.reason is Reason.CROSS_ENTITY_MISMATCH

    async def test_inspection_customer_must_own_vehicle(self, engine):
        decision = await engine.authorize(
            technician(), ResourceKind.INSPECTION, Action.CREATE,
            body={"customer_id": "cust-2", "vehicle_id": "veh-1"},
        )
        assert decision.reason is Reason.CROSS_ENTITY_MISMATCH

    async def test_inspection_customer_is_taken_from_vehicle(self, engine):
        decision = await engine.authorize(
            technician(), ResourceKind.INSPECTION, Action.CREATE,
            body={"vehicle_id": "veh-1", "repair_order_id": "ro-1"},
        )
        assert decision.allowed
        assert decision.payload["customer_id"] == "cust-1"

    async def test_assignment_lookup_failure_denies(self, repo, engine):
        vehicle = await _fetch(repo, ResourceKind.VEHICLE, "veh-1")
        repo.fail_on.add("fetch_by_foreign_key")
        decision = await engine.authorize(technician(), ResourceKind.VEHICLE, Action.READ, target=vehicle)
        assert decision.reason is Reason.RESOLUTION_FAILED

    async def test_technician_cannot_see_invoices(self, engine):
        decision = await engine.authorize(technician(), ResourceKind.INVOICE, Action.LIST)
        assert decision.reason is Reason.ROLE_NOT_PERMITTED


@pytest.mark.asyncio
class TestAdmin:
    async def test_admin_reads_any_record(self, repo, engine):
        for kind, record_id in [(ResourceKind.VEHICLE, "veh-2"), (ResourceKind.INVOICE, "inv-1")]:
            record = await _fetch(repo, kind, record_id)
            assert (await engine.authorize(admin(), kind, Action.READ, target=record)).allowed

    async def test_admin_payload_is_passed_through(self, engine):
        body = {"customer_id": "cust-2", "vehicle_id": "veh-2", "technician_id": TECH_ID}
        decision = await engine.authorize(admin(), ResourceKind.REPAIR_ORDER, Action.CREATE, body=body)
        assert decision.allowed
        assert decision.payload == body


@pytest.mark.asyncio
class TestFailClosed:
    async def test_missing_descriptor(self, repo, caplog):
        engine = AuthorizationEngine(repo, descriptors={})
        with caplog.at_level(logging.ERROR, logger="garagehub.auth.engine"):
            decision = await engine.authorize(admin(), ResourceKind.VEHICLE, Action.LIST)
        assert decision.reason is Reason.UNSCOPED_FALLTHROUGH
        assert any(r.levelno == logging.ERROR for r in caplog.records)

    async def test_scoped_kind_without_rule_for_role(self, repo, caplog):
        descriptors = {
            ResourceKind.INVENTORY: ResourceDescriptor(
                kind=ResourceKind.INVENTORY,
                read_roles=frozenset(Role),
                write_roles=frozenset({Role.ADMIN}),
                scoping=ScopingMode.ASSIGNED_TO_TECHNICIAN,
            ),
        }
        engine = AuthorizationEngine(repo, descriptors=descriptors)
        with caplog.at_level(logging.ERROR, logger="garagehub.auth.engine"):
            decision = await engine.authorize(technician(), ResourceKind.INVENTORY, Action.LIST)
        assert decision.reason is Reason.UNSCOPED_FALLTHROUGH
        assert any("No access rule" in r.getMessage() for r in caplog.records)

    async def test_read_without_target_is_a_programming_error(self, engine):
        with pytest.raises(ValueError):
            await engine.authorize(admin(), ResourceKind.VEHICLE, Action.READ)

    async def test_decisions_are_counted(self, repo, engine):
        labels = {"kind": "invoice", "action": "read", "outcome": "deny", "reason": "not_owner"}
        before = REGISTRY.get_sample_value("authorization_decisions_total", labels) or 0.0
        invoice = await _fetch(repo, ResourceKind.INVOICE, "inv-2")
        await engine.authorize(client(), ResourceKind.INVOICE, Action.READ, target=invoice)
        assert REGISTRY.get_sample_value("authorization_decisions_total", labels) == before + 1
