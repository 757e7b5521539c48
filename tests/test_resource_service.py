"""Resource service: authorize, mutate, then audit exactly once."""

import pytest
from fastapi import HTTPException

from garagehub.auth.descriptors import ResourceKind
from garagehub.services.audit_service import AuditStatus
from garagehub.services.resource_service import ResourceService
from tests.conftest import TECH_ID, admin, client, technician


@pytest.fixture
def service(repo):
    return ResourceService(repo)


@pytest.mark.asyncio
class TestReads:
    async def test_get_missing_record_is_404(self, service):
        with pytest.raises(HTTPException) as exc_info:
            await service.get(admin(), ResourceKind.VEHICLE, "veh-404")
        assert exc_info.value.status_code == 404

    async def test_get_denied_is_403(self, service):
        with pytest.raises(HTTPException) as exc_info:
            await service.get(client(), ResourceKind.INVOICE, "inv-2")
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail["reason"] == "not_owner"

    async def test_list_applies_scope(self, service):
        everything = await service.list(admin(), ResourceKind.VEHICLE)
        own = await service.list(client(), ResourceKind.VEHICLE)
        assigned = await service.list(technician(), ResourceKind.REPAIR_ORDER)

        assert everything["total"] == 2
        assert [v["id"] for v in own["items"]] == ["veh-1"]
        assert [o["id"] for o in assigned["items"]] == ["ro-1"]

    async def test_list_filters_cannot_widen_scope(self, service):
        page = await service.list(client(), ResourceKind.VEHICLE, filters={"customer_id": "cust-2"})
        assert page["total"] == 0
        assert page["items"] == []

    async def test_pagination(self, service):
        page = await service.list(admin(), ResourceKind.CUSTOMER, page=2, size=1)
        assert page["total"] == 2
        assert page["pages"] == 2
        assert len(page["items"]) == 1


@pytest.mark.asyncio
class TestWrites:
    async def test_create_records_one_success_entry(self, repo, service):
        record = await service.create(
            admin(), ResourceKind.INVENTORY,
            {"part_number": "OF-1", "name": "Oil filter", "category": "filters", "unit_cost": 4},
        )
        assert len(repo.audit) == 1
        entry = repo.audit[0]
        assert entry.operation == "CREATE_INVENTORY"
        assert entry.entity_id == record["id"]
        assert entry.principal_id == "admin-1"
        assert entry.status is AuditStatus.SUCCESS
        assert entry.old_value is None

    async def test_client_create_is_stored_under_own_customer(self, repo, service):
        record = await service.create(
            client(), ResourceKind.VEHICLE,
            {"customer_id": "cust-2", "year": 2018, "make": "Mazda", "model": "3"},
            required=("customer_id",),
        )
        assert record["customer_id"] == "cust-1"
        assert repo.audit[0].new_value["customer_id"] == "cust-1"

    async def test_required_owner_field(self, repo, service):
        with pytest.raises(HTTPException) as exc_info:
            await service.create(
                admin(), ResourceKind.VEHICLE, {"year": 2018, "make": "Mazda", "model": "3"},
                required=("customer_id",),
            )
        assert exc_info.value.status_code == 422
        assert repo.audit == []

    async def test_denied_write_is_not_audited(self, repo, service):
        with pytest.raises(HTTPException):
            await service.update(technician(), ResourceKind.REPAIR_ORDER, "ro-2", {"status": "completed"})
        assert repo.audit == []
        assert repo.tables[ResourceKind.REPAIR_ORDER]["ro-2"]["status"] == "created"

    async def test_update_records_old_and_new_values(self, repo, service):
        record = await service.update(technician(), ResourceKind.REPAIR_ORDER, "ro-1", {"status": "completed"})
        assert record["status"] == "completed"
        assert len(repo.audit) == 1
        entry = repo.audit[0]
        assert entry.operation == "UPDATE_REPAIR_ORDER"
        assert entry.principal_id == TECH_ID
        assert entry.old_value["status"] == "in-progress"
        assert entry.new_value["status"] == "completed"

    async def test_delete(self, repo, service):
        await service.delete(admin(), ResourceKind.INVOICE, "inv-2")
        assert "inv-2" not in repo.tables[ResourceKind.INVOICE]
        assert [e.operation for e in repo.audit] == ["DELETE_INVOICE"]
        assert repo.audit[0].old_value["invoice_number"] == "INV-2"

    async def test_failed_mutation_is_audited_as_failure(self, repo, service):
        repo.fail_on.add("update")
        with pytest.raises(RuntimeError):
            await service.update(admin(), ResourceKind.VEHICLE, "veh-1", {"color": "red"})
        assert len(repo.audit) == 1
        entry = repo.audit[0]
        assert entry.status is AuditStatus.FAILURE
        assert entry.entity_id == "veh-1"
        assert entry.error_message.startswith("RuntimeError")

    async def test_audit_loss_does_not_fail_the_request(self, repo, service):
        repo.fail_audit = True
        record = await service.update(admin(), ResourceKind.VEHICLE, "veh-1", {"color": "red"})
        assert record["color"] == "red"
        assert repo.audit == []
