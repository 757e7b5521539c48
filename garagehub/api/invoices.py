"""Invoices API — billed by admins, visible to the customer they belong to."""

from fastapi import APIRouter, Depends, Query, Response

from garagehub.api.deps import get_principal, get_resource_service
from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.principal import Principal
from garagehub.schemas.schemas import InvoiceCreate, InvoiceUpdate, RecordListResponse
from garagehub.services.resource_service import ResourceService

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


@router.get("", response_model=RecordListResponse)
async def list_invoices(
    status: str | None = Query(None),
    repair_order_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.list(
        principal, ResourceKind.INVOICE,
        filters={"status": status, "repair_order_id": repair_order_id},
        page=page, size=size,
    )


@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.get(principal, ResourceKind.INVOICE, invoice_id)


@router.post("", status_code=201)
async def create_invoice(
    body: InvoiceCreate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.create(principal, ResourceKind.INVOICE, body.model_dump(exclude_unset=True))


@router.patch("/{invoice_id}")
async def update_invoice(
    invoice_id: str,
    body: InvoiceUpdate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.update(
        principal, ResourceKind.INVOICE, invoice_id, body.model_dump(exclude_unset=True),
    )


@router.delete("/{invoice_id}", status_code=204)
async def delete_invoice(
    invoice_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    await service.delete(principal, ResourceKind.INVOICE, invoice_id)
    return Response(status_code=204)
