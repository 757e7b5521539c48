"""Vehicles API — vehicles belong to customers; technicians see the ones they work on."""

from fastapi import APIRouter, Depends, Query, Response

from garagehub.api.deps import get_principal, get_resource_service
from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.principal import Principal
from garagehub.schemas.schemas import RecordListResponse, VehicleCreate, VehicleUpdate
from garagehub.services.resource_service import ResourceService

router = APIRouter(prefix="/api/vehicles", tags=["vehicles"])


@router.get("", response_model=RecordListResponse)
async def list_vehicles(
    customer_id: str | None = Query(None),
    vin: str | None = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.list(
        principal, ResourceKind.VEHICLE,
        filters={"customer_id": customer_id, "vin": vin},
        page=page, size=size,
    )


@router.get("/{vehicle_id}")
async def get_vehicle(
    vehicle_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.get(principal, ResourceKind.VEHICLE, vehicle_id)


@router.post("", status_code=201)
async def create_vehicle(
    body: VehicleCreate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.create(
        principal, ResourceKind.VEHICLE, body.model_dump(exclude_unset=True), required=("customer_id",),
    )


@router.patch("/{vehicle_id}")
async def update_vehicle(
    vehicle_id: str,
    body: VehicleUpdate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.update(
        principal, ResourceKind.VEHICLE, vehicle_id, body.model_dump(exclude_unset=True),
    )


@router.delete("/{vehicle_id}", status_code=204)
async def delete_vehicle(
    vehicle_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    await service.delete(principal, ResourceKind.VEHICLE, vehicle_id)
    return Response(status_code=204)
