"""
Audit Service — append-only, hash-chained record of every state change.

Two layers:
- AuditService writes and reads AuditLog rows on a SQLAlchemy session and
  chains each row to the previous one with SHA-256, so edits or deletions
  in the table are detectable.
- AuditRecorder is what request handlers call. It writes exactly one entry
  per completed create/update/delete, after the mutation has been flushed,
  and never lets an audit failure break the response. A failed write is
  logged at error level and counted in `audit_write_failures_total`.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from garagehub.middleware.metrics import audit_write_failures_total
from garagehub.models import AuditLog

if TYPE_CHECKING:
    from garagehub.services.repository import Repository

logger = logging.getLogger(__name__)

# pg_advisory_xact_lock key held while appending to the chain.
CHAIN_LOCK_KEY = 0x6761726167


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class AuditEntry:
    principal_id: str | None
    operation: str
    entity_type: str
    entity_id: str | None
    old_value: dict | None = None
    new_value: dict | None = None
    status: AuditStatus = AuditStatus.SUCCESS
    error_message: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def hash_content(self) -> dict:
        return {
            "principal_id": self.principal_id,
            "operation": self.operation,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "status": self.status.value,
            "error_message": self.error_message,
            "timestamp": self.timestamp.astimezone(timezone.utc).isoformat(),
        }


def operation_name(verb: str, entity_type: str) -> str:
    """e.g. ("create", "repair_order") -> "CREATE_REPAIR_ORDER"."""
    return f"{verb}_{entity_type}".upper()


def calculate_hash(content: dict, previous_hash: str | None) -> str:
    """SHA-256 hash of entry contents + previous hash."""
    payload = {
        "content": content,
        "previous_hash": previous_hash or "",
    }
    raw = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode()).hexdigest()


def _row_content(row: AuditLog) -> dict:
    created_at = row.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return {
        "principal_id": row.principal_id,
        "operation": row.operation,
        "entity_type": row.entity_type,
        "entity_id": row.entity_id,
        "old_value": row.old_values,
        "new_value": row.new_values,
        "status": row.status,
        "error_message": row.error_message,
        "timestamp": created_at.isoformat(),
    }


class AuditService:
    """Immutable, hash-chained audit trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_latest_hash(self) -> str | None:
        """Get the hash of the most recent audit entry."""
        result = await self.session.execute(
            select(AuditLog.current_hash)
            .order_by(AuditLog.id.desc())
            .limit(1)
        )
        return result.scalar()

    async def _lock_chain(self) -> None:
        """
        Serialize appenders until this transaction ends, so the head read
        in append sees every committed entry and no two rows share a parent.
        """
        await self.session.execute(select(func.pg_advisory_xact_lock(CHAIN_LOCK_KEY)))

    async def append(self, entry: AuditEntry) -> AuditLog:
        await self._lock_chain()
        previous_hash = await self._get_latest_hash()
        row = AuditLog(
            event_id=str(uuid4()),
            principal_id=entry.principal_id,
            operation=entry.operation,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            old_values=entry.old_value,
            new_values=entry.new_value,
            status=entry.status.value,
            error_message=entry.error_message,
            previous_hash=previous_hash,
            current_hash=calculate_hash(entry.hash_content(), previous_hash),
            # Stored naive UTC, like every other timestamp column.
            created_at=entry.timestamp.astimezone(timezone.utc).replace(tzinfo=None),
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def verify_chain_integrity(self) -> dict:
        """Walk the full chain and verify each entry's hash."""
        result = await self.session.execute(
            select(AuditLog).order_by(AuditLog.id.asc())
        )
        entries = list(result.scalars())

        if not entries:
            return {"valid": True, "entries_checked": 0, "first_invalid": None}

        for i, entry in enumerate(entries):
            expected_prev = entries[i - 1].current_hash if i > 0 else None
            if entry.previous_hash != expected_prev:
                return {
                    "valid": False,
                    "entries_checked": i + 1,
                    "first_invalid": entry.event_id,
                    "reason": "previous_hash mismatch",
                }

            expected_hash = calculate_hash(_row_content(entry), entry.previous_hash)
            if entry.current_hash != expected_hash:
                return {
                    "valid": False,
                    "entries_checked": i + 1,
                    "first_invalid": entry.event_id,
                    "reason": "current_hash mismatch (data tampered)",
                }

        return {"valid": True, "entries_checked": len(entries), "first_invalid": None}

    async def get_entries(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        principal_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditLog]:
        """Query audit entries, newest first, with optional filters."""
        query = select(AuditLog).order_by(AuditLog.id.desc())

        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if entity_id:
            query = query.where(AuditLog.entity_id == entity_id)
        if principal_id:
            query = query.where(AuditLog.principal_id == principal_id)

        query = query.offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars())

    async def get_entry_count(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        principal_id: str | None = None,
    ) -> int:
        query = select(func.count()).select_from(AuditLog)
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if entity_id:
            query = query.where(AuditLog.entity_id == entity_id)
        if principal_id:
            query = query.where(AuditLog.principal_id == principal_id)
        result = await self.session.execute(query)
        return result.scalar() or 0


class AuditRecorder:
    """Writes one audit entry per completed state-changing operation."""

    def __init__(self, repository: Repository):
        self.repository = repository

    async def record(
        self,
        principal_id: str | None,
        operation: str,
        entity_type: str,
        entity_id: str | None,
        old_value: Any = None,
        new_value: Any = None,
        status: AuditStatus = AuditStatus.SUCCESS,
        error_message: str | None = None,
    ) -> AuditEntry | None:
        """
        Append an audit entry. Returns the entry, or None if it could not
        be written; the caller's response is never blocked by audit loss.
        """
        entry = AuditEntry(
            principal_id=principal_id,
            operation=operation,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            old_value=jsonable_encoder(old_value) if old_value is not None else None,
            new_value=jsonable_encoder(new_value) if new_value is not None else None,
            status=status,
            error_message=error_message,
        )
        try:
            await self.repository.append_audit(entry)
        except Exception:
            audit_write_failures_total.labels(operation=operation).inc()
            logger.exception(
                "AUDIT LOSS: could not record %s on %s %s by %s (%s)",
                operation, entity_type, entity_id, principal_id, status.value,
            )
            return None
        return entry
