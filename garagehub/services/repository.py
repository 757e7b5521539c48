"""
Repository — the persistence collaborator behind the access-control core.

The authorization engine and the resource service only ever talk to the
`Repository` protocol: CRUD by id, lookup by foreign key, scoped listing
and audit append. Records cross this boundary as plain dicts of column
values.

SqlRepository implements it on an async SQLAlchemy session. Scope filters
become WHERE clauses (and an IN-subquery for `via` scopes), so listing
never loads out-of-scope rows.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Protocol

from sqlalchemy import inspect as sa_inspect, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.scoping import ScopeFilter
from garagehub.database import Base, async_session
from garagehub.models import (
    Appointment,
    Customer,
    Inspection,
    InventoryItem,
    Invoice,
    RepairOrder,
    User,
    Vehicle,
)
from garagehub.services.audit_service import AuditEntry, AuditService, AuditStatus

logger = logging.getLogger(__name__)

Record = dict[str, Any]
DateRange = tuple[datetime | None, datetime | None]

MODELS: dict[ResourceKind, type[Base]] = {
    ResourceKind.CUSTOMER: Customer,
    ResourceKind.VEHICLE: Vehicle,
    ResourceKind.APPOINTMENT: Appointment,
    ResourceKind.REPAIR_ORDER: RepairOrder,
    ResourceKind.INVOICE: Invoice,
    ResourceKind.INSPECTION: Inspection,
    ResourceKind.INVENTORY: InventoryItem,
    ResourceKind.USER: User,
}

# Foreign-key lookups on these columns compare case-insensitively.
CASE_INSENSITIVE_KEYS = frozenset({"email"})


class Repository(Protocol):
    async def fetch_by_id(self, kind: ResourceKind, record_id: str) -> Record | None: ...

    async def fetch_by_foreign_key(self, kind: ResourceKind, key: str, value: Any) -> list[Record]: ...

    async def list(
        self,
        kind: ResourceKind,
        scope: ScopeFilter,
        *,
        filters: Mapping[str, Any] | None = None,
        ranges: Mapping[str, DateRange] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Record]: ...

    async def count(
        self,
        kind: ResourceKind,
        scope: ScopeFilter,
        *,
        filters: Mapping[str, Any] | None = None,
        ranges: Mapping[str, DateRange] | None = None,
    ) -> int: ...

    async def create(self, kind: ResourceKind, values: Mapping[str, Any]) -> Record: ...

    async def update(self, kind: ResourceKind, record_id: str, values: Mapping[str, Any]) -> Record | None: ...

    async def delete(self, kind: ResourceKind, record_id: str) -> bool: ...

    async def append_audit(self, entry: AuditEntry) -> None: ...


def to_record(obj: Base) -> Record:
    """Column values of an ORM instance as a plain dict."""
    return {attr.key: getattr(obj, attr.key) for attr in sa_inspect(obj).mapper.column_attrs}


class SqlRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Query building ───────────────────────────────────────────────────

    @staticmethod
    def _column(model: type[Base], key: str):
        if key not in model.__table__.columns:
            raise ValueError(f"{model.__name__} has no column {key!r}")
        return getattr(model, key)

    def _eq(self, model: type[Base], key: str, value: Any):
        column = self._column(model, key)
        if key in CASE_INSENSITIVE_KEYS and isinstance(value, str):
            return func.lower(column) == value.strip().lower()
        return column == value

    def _apply(
        self,
        query,
        model: type[Base],
        scope: ScopeFilter,
        filters: Mapping[str, Any] | None,
        ranges: Mapping[str, DateRange] | None,
    ):
        for key, value in scope.conditions.items():
            query = query.where(self._eq(model, key, value))

        if scope.via is not None:
            via_model = MODELS[scope.via.kind]
            subquery = select(self._column(via_model, scope.via.key))
            for key, value in scope.via.conditions.items():
                subquery = subquery.where(self._eq(via_model, key, value))
            query = query.where(model.id.in_(subquery))

        for key, value in (filters or {}).items():
            if value is not None:
                query = query.where(self._eq(model, key, value))

        for key, (start, end) in (ranges or {}).items():
            column = self._column(model, key)
            if start is not None:
                query = query.where(column >= start)
            if end is not None:
                query = query.where(column <= end)

        return query

    # ── Reads ────────────────────────────────────────────────────────────

    async def fetch_by_id(self, kind: ResourceKind, record_id: str) -> Record | None:
        obj = await self.session.get(MODELS[kind], record_id)
        return to_record(obj) if obj is not None else None

    async def fetch_by_foreign_key(self, kind: ResourceKind, key: str, value: Any) -> list[Record]:
        model = MODELS[kind]
        result = await self.session.execute(select(model).where(self._eq(model, key, value)))
        return [to_record(obj) for obj in result.scalars()]

    async def list(
        self,
        kind: ResourceKind,
        scope: ScopeFilter,
        *,
        filters: Mapping[str, Any] | None = None,
        ranges: Mapping[str, DateRange] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Record]:
        model = MODELS[kind]
        query = self._apply(select(model), model, scope, filters, ranges)
        query = query.order_by(model.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return [to_record(obj) for obj in result.scalars()]

    async def count(
        self,
        kind: ResourceKind,
        scope: ScopeFilter,
        *,
        filters: Mapping[str, Any] | None = None,
        ranges: Mapping[str, DateRange] | None = None,
    ) -> int:
        model = MODELS[kind]
        query = self._apply(select(func.count()).select_from(model), model, scope, filters, ranges)
        result = await self.session.execute(query)
        return result.scalar() or 0

    # ── Writes ───────────────────────────────────────────────────────────

    async def create(self, kind: ResourceKind, values: Mapping[str, Any]) -> Record:
        obj = MODELS[kind](**values)
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)
        return to_record(obj)

    async def update(self, kind: ResourceKind, record_id: str, values: Mapping[str, Any]) -> Record | None:
        obj = await self.session.get(MODELS[kind], record_id)
        if obj is None:
            return None
        for key, value in values.items():
            self._column(MODELS[kind], key)
            setattr(obj, key, value)
        await self.session.flush()
        await self.session.refresh(obj)
        return to_record(obj)

    async def delete(self, kind: ResourceKind, record_id: str) -> bool:
        obj = await self.session.get(MODELS[kind], record_id)
        if obj is None:
            return False
        await self.session.delete(obj)
        await self.session.flush()
        return True

    # ── Audit ────────────────────────────────────────────────────────────

    async def append_audit(self, entry: AuditEntry) -> None:
        """
        Success entries join the request transaction, so they commit (or
        roll back) together with the mutation they describe. Failure
        entries are committed on their own session because the request
        transaction is about to be rolled back.

        The success write runs in a savepoint so a broken audit insert does
        not poison the mutation's transaction. Both paths take the chain
        lock in AuditService.append, which is held until their transaction
        ends, so a failure entry waits for an in-flight success entry to
        commit before reading the chain head.
        """
        if entry.status is AuditStatus.FAILURE:
            async with async_session() as session:
                await AuditService(session).append(entry)
                await session.commit()
            return
        async with self.session.begin_nested():
            await AuditService(self.session).append(entry)
