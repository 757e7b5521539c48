from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Text, DateTime, Numeric, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from garagehub.database import Base, new_id


class RepairOrder(Base):
    __tablename__ = "repair_orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    customer_id: Mapped[str] = mapped_column(ForeignKey("customers.id"), index=True)
    vehicle_id: Mapped[str] = mapped_column(ForeignKey("vehicles.id"), index=True)
    appointment_id: Mapped[str | None] = mapped_column(ForeignKey("appointments.id"), nullable=True)
    technician_id: Mapped[str | None] = mapped_column(ForeignKey("users.id"), index=True, nullable=True)
    # "created" | "in_progress" | "awaiting_parts" | "completed" | "delivered"
    status: Mapped[str] = mapped_column(String(20), default="created", index=True)
    priority: Mapped[str] = mapped_column(String(10), default="normal")  # "low" | "normal" | "high" | "urgent"
    description: Mapped[str] = mapped_column(Text)
    diagnosis: Mapped[str | None] = mapped_column(Text, nullable=True)
    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    actual_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    labor_hours: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
