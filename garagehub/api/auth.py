"""Authentication API — the caller's identity as seen by the access-control core."""

from fastapi import APIRouter, Depends

from garagehub.api.deps import get_principal
from garagehub.auth.principal import Principal
from garagehub.schemas.schemas import MeResponse

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/me", response_model=MeResponse)
async def me(principal: Principal = Depends(get_principal)) -> MeResponse:
    """Return the principal decoded from the access token."""
    return MeResponse(id=principal.id, role=principal.role.value, email=principal.email)
