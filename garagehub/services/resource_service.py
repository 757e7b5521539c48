"""
Resource Service — the request flow shared by every CRUD endpoint.

    fetch target (404) → authorize (403) → mutate → audit

Route handlers call this instead of touching the repository directly, so
each handler makes exactly one authorization call and every completed
create/update/delete writes exactly one audit entry, after the mutation
has been flushed, recording its real outcome.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from garagehub.auth.descriptors import Action, ResourceKind
from garagehub.auth.engine import AuthorizationEngine
from garagehub.auth.principal import Principal
from garagehub.services.audit_service import AuditRecorder, AuditStatus, operation_name
from garagehub.services.repository import DateRange, Record, Repository

logger = logging.getLogger(__name__)

_LABELS = {
    ResourceKind.REPAIR_ORDER: "Repair order",
    ResourceKind.INVENTORY: "Inventory item",
}


def _label(kind: ResourceKind) -> str:
    return _LABELS.get(kind, kind.value.replace("_", " ").capitalize())


class ResourceService:
    def __init__(
        self,
        repository: Repository,
        engine: AuthorizationEngine | None = None,
        recorder: AuditRecorder | None = None,
    ):
        self.repository = repository
        self.engine = engine or AuthorizationEngine(repository)
        self.recorder = recorder or AuditRecorder(repository)

    async def _get_or_404(self, kind: ResourceKind, record_id: str) -> Record:
        record = await self.repository.fetch_by_id(kind, record_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"{_label(kind)} not found")
        return record

    # ── Reads ────────────────────────────────────────────────────────────

    async def get(self, principal: Principal, kind: ResourceKind, record_id: str) -> Record:
        record = await self._get_or_404(kind, record_id)
        decision = await self.engine.authorize(principal, kind, Action.READ, target=record)
        decision.raise_for_denial()
        return record

    async def list(
        self,
        principal: Principal,
        kind: ResourceKind,
        *,
        filters: Mapping[str, Any] | None = None,
        ranges: Mapping[str, DateRange] | None = None,
        page: int = 1,
        size: int = 50,
    ) -> dict:
        """Paginated listing, constrained by the caller's scope filter."""
        decision = await self.engine.authorize(principal, kind, Action.LIST)
        decision.raise_for_denial()

        scope = decision.scope_filter
        offset = (page - 1) * size
        items = await self.repository.list(
            kind, scope, filters=filters, ranges=ranges, limit=size, offset=offset,
        )
        total = await self.repository.count(kind, scope, filters=filters, ranges=ranges)
        pages = (total + size - 1) // size if total > 0 else 1
        return {"total": total, "page": page, "size": size, "pages": pages, "items": items}

    # ── Writes ───────────────────────────────────────────────────────────

    async def create(
        self,
        principal: Principal,
        kind: ResourceKind,
        body: Mapping[str, Any],
        *,
        required: tuple[str, ...] = (),
    ) -> Record:
        """
        Create a record from the authorized payload.

        `required` names fields that may be injected by the engine (such as
        customer_id) and must be present once authorization is done.
        """
        decision = await self.engine.authorize(principal, kind, Action.CREATE, body=body)
        decision.raise_for_denial()
        values = decision.payload or {}

        missing = [f for f in required if values.get(f) is None]
        if missing:
            raise HTTPException(status_code=422, detail=f"Missing required fields: {', '.join(missing)}")

        operation = operation_name("create", kind.value)
        try:
            record = await self.repository.create(kind, values)
        except IntegrityError as exc:
            await self._record_failure(principal, operation, kind, None, None, values, exc)
            raise HTTPException(status_code=409, detail=f"{_label(kind)} conflicts with an existing record")
        except Exception as exc:
            await self._record_failure(principal, operation, kind, None, None, values, exc)
            raise

        await self.recorder.record(
            principal.id, operation, kind.value, record["id"], new_value=record,
        )
        logger.info("%s by %s: %s", operation, principal.actor, record["id"])
        return record

    async def update(
        self,
        principal: Principal,
        kind: ResourceKind,
        record_id: str,
        body: Mapping[str, Any],
        *,
        operation: str | None = None,
    ) -> Record:
        existing = await self._get_or_404(kind, record_id)
        decision = await self.engine.authorize(principal, kind, Action.UPDATE, target=existing, body=body)
        decision.raise_for_denial()
        values = decision.payload or {}

        operation = operation or operation_name("update", kind.value)
        try:
            record = await self.repository.update(kind, record_id, values)
        except IntegrityError as exc:
            await self._record_failure(principal, operation, kind, record_id, existing, values, exc)
            raise HTTPException(status_code=409, detail=f"{_label(kind)} conflicts with an existing record")
        except Exception as exc:
            await self._record_failure(principal, operation, kind, record_id, existing, values, exc)
            raise
        if record is None:
            raise HTTPException(status_code=404, detail=f"{_label(kind)} not found")

        await self.recorder.record(
            principal.id, operation, kind.value, record_id, old_value=existing, new_value=record,
        )
        logger.info("%s by %s: %s", operation, principal.actor, record_id)
        return record

    async def delete(self, principal: Principal, kind: ResourceKind, record_id: str) -> None:
        existing = await self._get_or_404(kind, record_id)
        decision = await self.engine.authorize(principal, kind, Action.DELETE, target=existing)
        decision.raise_for_denial()

        operation = operation_name("delete", kind.value)
        try:
            deleted = await self.repository.delete(kind, record_id)
        except IntegrityError as exc:
            await self._record_failure(principal, operation, kind, record_id, existing, None, exc)
            raise HTTPException(status_code=409, detail=f"{_label(kind)} is still referenced by other records")
        except Exception as exc:
            await self._record_failure(principal, operation, kind, record_id, existing, None, exc)
            raise
        if not deleted:
            raise HTTPException(status_code=404, detail=f"{_label(kind)} not found")

        await self.recorder.record(
            principal.id, operation, kind.value, record_id, old_value=existing,
        )
        logger.info("%s by %s: %s", operation, principal.actor, record_id)

    async def _record_failure(
        self,
        principal: Principal,
        operation: str,
        kind: ResourceKind,
        record_id: str | None,
        old_value: Any,
        new_value: Any,
        exc: Exception,
    ) -> None:
        logger.warning("%s by %s failed: %s", operation, principal.actor, exc)
        await self.recorder.record(
            principal.id, operation, kind.value, record_id,
            old_value=old_value,
            new_value=new_value,
            status=AuditStatus.FAILURE,
            error_message=f"{type(exc).__name__}: {exc}",
        )
