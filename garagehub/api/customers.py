"""
Customers API — customer profiles and their vehicles.

Admins manage every profile. A client may create their own profile once
(linked by their account email) and edit it afterwards; listing and
reading profiles is admin-only.
"""

from fastapi import APIRouter, Depends, Query, Response

from garagehub.api.deps import get_principal, get_resource_service
from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.principal import Principal
from garagehub.schemas.schemas import CustomerCreate, CustomerUpdate, RecordListResponse
from garagehub.services.resource_service import ResourceService

router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.get("", response_model=RecordListResponse)
async def list_customers(
    email: str | None = Query(None, description="Filter by email (case-insensitive)"),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.list(
        principal, ResourceKind.CUSTOMER, filters={"email": email}, page=page, size=size,
    )


@router.get("/{customer_id}")
async def get_customer(
    customer_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.get(principal, ResourceKind.CUSTOMER, customer_id)


@router.get("/{customer_id}/vehicles", response_model=RecordListResponse)
async def list_customer_vehicles(
    customer_id: str,
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    """Vehicles of one customer, within the caller's vehicle scope."""
    return await service.list(
        principal, ResourceKind.VEHICLE, filters={"customer_id": customer_id}, page=page, size=size,
    )


@router.post("", status_code=201)
async def create_customer(
    body: CustomerCreate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.create(principal, ResourceKind.CUSTOMER, body.model_dump(exclude_unset=True))


@router.patch("/{customer_id}")
async def update_customer(
    customer_id: str,
    body: CustomerUpdate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.update(
        principal, ResourceKind.CUSTOMER, customer_id, body.model_dump(exclude_unset=True),
    )


@router.delete("/{customer_id}", status_code=204)
async def delete_customer(
    customer_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    await service.delete(principal, ResourceKind.CUSTOMER, customer_id)
    return Response(status_code=204)
