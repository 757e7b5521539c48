"""
Appointments API — scheduled visits.

GET /api/appointments accepts an optional `start_date` / `end_date` window
on `scheduled_date`; the window is applied together with the caller's
scope, never instead of it.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from garagehub.api.deps import get_principal, get_resource_service
from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.principal import Principal
from garagehub.schemas.schemas import (
    AppointmentCreate,
    AppointmentUpdate,
    RecordListResponse,
    to_naive_utc,
)
from garagehub.services.resource_service import ResourceService

router = APIRouter(prefix="/api/appointments", tags=["appointments"])


@router.get("", response_model=RecordListResponse)
async def list_appointments(
    start_date: datetime | None = Query(None, description="Earliest scheduled_date (inclusive)"),
    end_date: datetime | None = Query(None, description="Latest scheduled_date (inclusive)"),
    status: str | None = Query(None),
    vehicle_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    start_date, end_date = to_naive_utc(start_date), to_naive_utc(end_date)
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")

    ranges = {"scheduled_date": (start_date, end_date)} if start_date or end_date else None
    return await service.list(
        principal, ResourceKind.APPOINTMENT,
        filters={"status": status, "vehicle_id": vehicle_id},
        ranges=ranges,
        page=page, size=size,
    )


@router.get("/{appointment_id}")
async def get_appointment(
    appointment_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.get(principal, ResourceKind.APPOINTMENT, appointment_id)


@router.post("", status_code=201)
async def create_appointment(
    body: AppointmentCreate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.create(
        principal, ResourceKind.APPOINTMENT, body.model_dump(exclude_unset=True), required=("customer_id",),
    )


@router.patch("/{appointment_id}")
async def update_appointment(
    appointment_id: str,
    body: AppointmentUpdate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    return await service.update(
        principal, ResourceKind.APPOINTMENT, appointment_id, body.model_dump(exclude_unset=True),
    )


@router.delete("/{appointment_id}", status_code=204)
async def delete_appointment(
    appointment_id: str,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    await service.delete(principal, ResourceKind.APPOINTMENT, appointment_id)
    return Response(status_code=204)
