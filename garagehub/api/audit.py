"""
Audit API Router — query the audit trail and verify hash-chain integrity.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from garagehub.api.deps import get_db, get_engine, get_principal
from garagehub.auth.descriptors import Action, ResourceKind
from garagehub.auth.engine import AuthorizationEngine
from garagehub.auth.principal import Principal
from garagehub.schemas.schemas import AuditEntry, AuditListResponse, IntegrityCheckResponse
from garagehub.services.audit_service import AuditService

router = APIRouter(prefix="/api/audit-logs", tags=["audit"])


async def _authorize_audit_read(
    principal: Principal = Depends(get_principal),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Principal:
    decision = await engine.authorize(principal, ResourceKind.AUDIT_LOG, Action.LIST)
    decision.raise_for_denial()
    return principal


@router.get("", response_model=AuditListResponse)
async def list_audit_entries(
    entity_type: str | None = Query(None, description="Filter by entity type"),
    entity_id: str | None = Query(None, description="Filter by entity ID"),
    principal_id: str | None = Query(None, description="Filter by acting user"),
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(50, ge=1, le=200, description="Page size"),
    principal: Principal = Depends(_authorize_audit_read),
    db: AsyncSession = Depends(get_db),
) -> AuditListResponse:
    """Return a paginated list of audit log entries, newest first."""
    service = AuditService(db)
    offset = (page - 1) * size

    entries = await service.get_entries(
        entity_type=entity_type,
        entity_id=entity_id,
        principal_id=principal_id,
        limit=size,
        offset=offset,
    )
    total = await service.get_entry_count(
        entity_type=entity_type,
        entity_id=entity_id,
        principal_id=principal_id,
    )
    pages = (total + size - 1) // size if total > 0 else 1

    return AuditListResponse(
        total=total,
        page=page,
        size=size,
        pages=pages,
        items=[AuditEntry.model_validate(entry) for entry in entries],
    )


@router.get("/integrity", response_model=IntegrityCheckResponse)
async def check_integrity(
    principal: Principal = Depends(_authorize_audit_read),
    db: AsyncSession = Depends(get_db),
) -> IntegrityCheckResponse:
    """Verify the hash-chain integrity of the entire audit trail."""
    service = AuditService(db)
    result = await service.verify_chain_integrity()
    return IntegrityCheckResponse(**result)
