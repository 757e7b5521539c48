"""
Repair Orders API — the shop's work orders.

Admins create and assign orders. Technicians see and update only the
orders assigned to them and cannot reassign them; clients see the orders
for their own vehicles.
"""

from fastapi import APIRouter, Depends, Query, Response

from garagehub.api.deps import get_principal, get_resource_service
from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.principal import Principal
from garagehub.schemas.schemas import RecordListResponse, RepairOrderCreate, RepairOrderUpdate
from garagehub.services.resource_service import ResourceService

router = APIRouter(prefix="/api/repair-orders", tags=["repair-orders"])


@router.get("", response_model=RecordListResponse)
async def list_repair_orders(
    status: str | None = Query(None),
    vehicle_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.list(
        principal, ResourceKind.REPAIR_ORDER,
        filters={"status": status, "vehicle_id": vehicle_id},
        page=page, size=size,
    )


@router.get("/{order_id}")
async def get_repair_order(
    order_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.get(principal, ResourceKind.REPAIR_ORDER, order_id)


@router.post("", status_code=201)
async def create_repair_order(
    body: RepairOrderCreate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.create(principal, ResourceKind.REPAIR_ORDER, body.model_dump(exclude_unset=True))


@router.put("/{order_id}")
async def update_repair_order(
    order_id: str,
    body: RepairOrderUpdate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.update(
        principal, ResourceKind.REPAIR_ORDER, order_id, body.model_dump(exclude_unset=True),
    )


@router.delete("/{order_id}", status_code=204)
async def delete_repair_order(
    order_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    await service.delete(principal, ResourceKind.REPAIR_ORDER, order_id)
    return Response(status_code=204)
