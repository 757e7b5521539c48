"""
Pydantic schemas for API request/response models.

Create/Update bodies are dumped with `exclude_unset=True` before they reach
the authorization engine, so an update only touches the fields the caller
actually sent.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field, field_validator


def to_naive_utc(value: Any) -> Any:
    """Timestamp columns are naive UTC; convert aware datetimes on the way in."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class _Body(BaseModel):
    model_config = {"extra": "forbid"}

    @field_validator("*", mode="after")
    @classmethod
    def _naive_utc(cls, value: Any) -> Any:
        return to_naive_utc(value)


# ── Pagination ──

class PaginatedResponse(BaseModel):
    total: int
    page: int
    size: int
    pages: int


class RecordListResponse(PaginatedResponse):
    items: list[dict[str, Any]]


# ── Customers ──

class CustomerCreate(_Body):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)
    address: str | None = None
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=50)
    zip_code: str | None = Field(None, max_length=10)
    notes: str | None = None


class CustomerUpdate(_Body):
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)
    address: str | None = None
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=50)
    zip_code: str | None = Field(None, max_length=10)
    notes: str | None = None


# ── Vehicles ──

class VehicleCreate(_Body):
    customer_id: str | None = None  # injected for clients
    year: int = Field(..., ge=1900, le=2100)
    make: str = Field(..., min_length=1, max_length=50)
    model: str = Field(..., min_length=1, max_length=50)
    vin: str | None = Field(None, max_length=17)
    license_plate: str | None = Field(None, max_length=20)
    color: str | None = Field(None, max_length=30)
    mileage: int | None = Field(None, ge=0)
    notes: str | None = None


class VehicleUpdate(_Body):
    customer_id: str | None = None
    year: int | None = Field(None, ge=1900, le=2100)
    make: str | None = Field(None, min_length=1, max_length=50)
    model: str | None = Field(None, min_length=1, max_length=50)
    vin: str | None = Field(None, max_length=17)
    license_plate: str | None = Field(None, max_length=20)
    color: str | None = Field(None, max_length=30)
    mileage: int | None = Field(None, ge=0)
    notes: str | None = None


# ── Appointments ──

AppointmentStatus = Literal["scheduled", "confirmed", "in-progress", "completed", "cancelled"]


class AppointmentCreate(_Body):
    customer_id: str | None = None
    vehicle_id: str
    technician_id: str | None = None
    scheduled_date: datetime
    duration: int = Field(60, ge=5, le=24 * 60)
    service_type: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    status: AppointmentStatus = "scheduled"
    notes: str | None = None


class AppointmentUpdate(_Body):
    customer_id: str | None = None
    vehicle_id: str | None = None
    technician_id: str | None = None
    scheduled_date: datetime | None = None
    duration: int | None = Field(None, ge=5, le=24 * 60)
    service_type: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None


# ── Repair orders ──

RepairOrderStatus = Literal["created", "in-progress", "waiting-parts", "completed", "cancelled"]
Priority = Literal["low", "normal", "high", "urgent"]


class RepairOrderCreate(_Body):
    order_number: str = Field(..., min_length=1, max_length=50)
    customer_id: str
    vehicle_id: str
    appointment_id: str | None = None
    technician_id: str | None = None
    status: RepairOrderStatus = "created"
    priority: Priority = "normal"
    description: str
    diagnosis: str | None = None
    estimated_cost: Decimal | None = Field(None, ge=0)
    actual_cost: Decimal | None = Field(None, ge=0)
    labor_hours: Decimal | None = Field(None, ge=0)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class RepairOrderUpdate(_Body):
    customer_id: str | None = None
    vehicle_id: str | None = None
    appointment_id: str | None = None
    technician_id: str | None = None
    status: RepairOrderStatus | None = None
    priority: Priority | None = None
    description: str | None = None
    diagnosis: str | None = None
    estimated_cost: Decimal | None = Field(None, ge=0)
    actual_cost: Decimal | None = Field(None, ge=0)
    labor_hours: Decimal | None = Field(None, ge=0)
    started_at: datetime | None = None
    completed_at: datetime | None = None


# ── Invoices ──

InvoiceStatus = Literal["pending", "paid", "overdue", "cancelled"]


class InvoiceCreate(_Body):
    invoice_number: str = Field(..., min_length=1, max_length=50)
    customer_id: str
    repair_order_id: str | None = None
    subtotal: Decimal = Field(..., ge=0)
    tax: Decimal = Field(Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)
    status: InvoiceStatus = "pending"
    due_date: datetime | None = None
    paid_at: datetime | None = None
    payment_method: str | None = Field(None, max_length=50)
    notes: str | None = None


class InvoiceUpdate(_Body):
    repair_order_id: str | None = None
    subtotal: Decimal | None = Field(None, ge=0)
    tax: Decimal | None = Field(None, ge=0)
    total: Decimal | None = Field(None, ge=0)
    status: InvoiceStatus | None = None
    due_date: datetime | None = None
    paid_at: datetime | None = None
    payment_method: str | None = Field(None, max_length=50)
    notes: str | None = None


# ── Inspections ──

InspectionStatus = Literal["pending", "in-progress", "completed"]


class InspectionCreate(_Body):
    customer_id: str | None = None
    vehicle_id: str
    repair_order_id: str | None = None
    technician_id: str | None = None
    vehicle_info: str
    customer_name: str = Field(..., max_length=200)
    service_type: str = Field(..., max_length=100)
    status: InspectionStatus = "pending"
    checklist_items: int = Field(12, ge=0)
    completed_items: int = Field(0, ge=0)
    notes: str | None = None


class InspectionUpdate(_Body):
    customer_id: str | None = None
    vehicle_id: str | None = None
    repair_order_id: str | None = None
    technician_id: str | None = None
    vehicle_info: str | None = None
    customer_name: str | None = Field(None, max_length=200)
    service_type: str | None = Field(None, max_length=100)
    status: InspectionStatus | None = None
    checklist_items: int | None = Field(None, ge=0)
    completed_items: int | None = Field(None, ge=0)
    notes: str | None = None


# ── Inventory ──

class InventoryCreate(_Body):
    part_number: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    category: str = Field(..., max_length=100)
    quantity: int = Field(0, ge=0)
    min_stock: int = Field(0, ge=0)
    unit_cost: Decimal = Field(..., ge=0)
    selling_price: Decimal | None = Field(None, ge=0)
    supplier: str | None = Field(None, max_length=200)
    supplier_part_number: str | None = Field(None, max_length=100)
    location: str | None = Field(None, max_length=100)
    last_ordered: datetime | None = None
    notes: str | None = None


class InventoryUpdate(_Body):
    part_number: str | None = Field(None, min_length=1, max_length=100)
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    quantity: int | None = Field(None, ge=0)
    min_stock: int | None = Field(None, ge=0)
    unit_cost: Decimal | None = Field(None, ge=0)
    selling_price: Decimal | None = Field(None, ge=0)
    supplier: str | None = Field(None, max_length=200)
    supplier_part_number: str | None = Field(None, max_length=100)
    location: str | None = Field(None, max_length=100)
    last_ordered: datetime | None = None
    notes: str | None = None


# ── Users ──

class RoleUpdate(_Body):
    role: str


class MeResponse(BaseModel):
    id: str
    role: str
    email: str | None = None


# ── Audit ──

class AuditEntry(BaseModel):
    id: int
    event_id: str
    principal_id: str | None = None
    operation: str
    entity_type: str
    entity_id: str | None = None
    old_values: dict | None = None
    new_values: dict | None = None
    status: str
    error_message: str | None = None
    previous_hash: str | None = None
    current_hash: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class AuditListResponse(PaginatedResponse):
    items: list[AuditEntry]


class IntegrityCheckResponse(BaseModel):
    valid: bool
    entries_checked: int
    first_invalid: str | None = None
    reason: str | None = None
