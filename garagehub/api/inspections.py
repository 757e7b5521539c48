"""
Inspections API — vehicle inspection checklists.

Technicians record inspections for vehicles they work on (the inspection
is assigned to whoever creates it); clients may request and follow the
inspections of their own vehicles. Only admins delete.
"""

from fastapi import APIRouter, Depends, Query, Response

from garagehub.api.deps import get_principal, get_resource_service
from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.principal import Principal
from garagehub.schemas.schemas import InspectionCreate, InspectionUpdate, RecordListResponse
from garagehub.services.resource_service import ResourceService

router = APIRouter(prefix="/api/inspections", tags=["inspections"])


@router.get("", response_model=RecordListResponse)
async def list_inspections(
    status: str | None = Query(None),
    vehicle_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.list(
        principal, ResourceKind.INSPECTION,
        filters={"status": status, "vehicle_id": vehicle_id},
        page=page, size=size,
    )


@router.get("/{inspection_id}")
async def get_inspection(
    inspection_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.get(principal, ResourceKind.INSPECTION, inspection_id)


@router.post("", status_code=201)
async def create_inspection(
    body: InspectionCreate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.create(
        principal, ResourceKind.INSPECTION, body.model_dump(exclude_unset=True), required=("customer_id",),
    )


@router.put("/{inspection_id}")
async def update_inspection(
    inspection_id: str,
    body: InspectionUpdate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.update(
        principal, ResourceKind.INSPECTION, inspection_id, body.model_dump(exclude_unset=True),
    )


@router.delete("/{inspection_id}", status_code=204)
async def delete_inspection(
    inspection_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    await service.delete(principal, ResourceKind.INSPECTION, inspection_id)
    return Response(status_code=204)
