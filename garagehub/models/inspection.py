from datetime import datetime

from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from garagehub.database import Base, new_id


class Inspection(Base):
    __tablename__ = "inspections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_id: Mapped[str] = mapped_column(ForeignKey("customers.id"), index=True)
    vehicle_id: Mapped[str] = mapped_column(ForeignKey("vehicles.id"), index=True)
    repair_order_id: Mapped[str | None] = mapped_column(ForeignKey("repair_orders.id"), nullable=True)
    technician_id: Mapped[str | None] = mapped_column(ForeignKey("users.id"), index=True, nullable=True)
    vehicle_info: Mapped[str] = mapped_column(Text)  # e.g. "2020 Honda Civic - ABC123"
    customer_name: Mapped[str] = mapped_column(String(200))
    service_type: Mapped[str] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(20), default="pending")  # "pending" | "in-progress" | "completed"
    checklist_items: Mapped[int] = mapped_column(Integer, default=12)
    completed_items: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
