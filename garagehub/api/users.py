"""User management — account listing and role changes (admin only)."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from garagehub.api.deps import get_principal, get_resource_service
from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.principal import Principal
from garagehub.auth.roles import Role, parse_role
from garagehub.schemas.schemas import RecordListResponse, RoleUpdate
from garagehub.services.audit_service import operation_name
from garagehub.services.resource_service import ResourceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

VALID_ROLES = sorted(r.value for r in Role)


@router.get("", response_model=RecordListResponse)
async def list_users(
    role: str | None = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    """List user accounts."""
    role_filter = None
    if role is not None:
        parsed = parse_role(role)
        if parsed is None:
            raise HTTPException(status_code=400, detail=f"Invalid role. Must be one of: {VALID_ROLES}")
        role_filter = parsed.value
    return await service.list(
        principal, ResourceKind.USER, filters={"role": role_filter}, page=page, size=size,
    )


@router.patch("/{user_id}/role")
async def update_user_role(
    user_id: str,
    body: RoleUpdate,
    principal: Principal = Depends(get_principal),
    service: ResourceService = Depends(get_resource_service),
):
    """Change a user's role. The audit entry records the previous role."""
    role = parse_role(body.role)
    if role is None:
        raise HTTPException(status_code=400, detail=f"Invalid role. Must be one of: {VALID_ROLES}")

    user = await service.update(
        principal, ResourceKind.USER, user_id, {"role": role.value},
        operation=operation_name("update", "user_role"),
    )
    logger.info("Role of user %s set to %s by %s", user_id, role.value, principal.actor)
    return user
