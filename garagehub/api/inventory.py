"""Inventory API — parts stock. Technicians may look parts up; admins manage stock."""

from fastapi import APIRouter, Depends, Query, Response

from garagehub.api.deps import get_principal, get_resource_service
from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.principal import Principal
from garagehub.schemas.schemas import InventoryCreate, InventoryUpdate, RecordListResponse
from garagehub.services.resource_service import ResourceService

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.get("", response_model=RecordListResponse)
async def list_inventory(
    category: str | None = Query(None),
    part_number: str | None = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.list(
        principal, ResourceKind.INVENTORY,
        filters={"category": category, "part_number": part_number},
        page=page, size=size,
    )


@router.get("/{item_id}")
async def get_inventory_item(
    item_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.get(principal, ResourceKind.INVENTORY, item_id)


@router.post("", status_code=201)
async def create_inventory_item(
    body: InventoryCreate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.create(principal, ResourceKind.INVENTORY, body.model_dump(exclude_unset=True))


@router.patch("/{item_id}")
async def update_inventory_item(
    item_id: str,
    body: InventoryUpdate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.update(
        principal, ResourceKind.INVENTORY, item_id, body.model_dump(exclude_unset=True),
    )


@router.delete("/{item_id}", status_code=204)
async def delete_inventory_item(
    item_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    await service.delete(principal, ResourceKind.INVENTORY, item_id)
    return Response(status_code=204)
