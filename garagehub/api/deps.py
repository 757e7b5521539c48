"""
API Dependencies — DB session, repository, principal, authorization.

Authentication is via JWT. `get_principal`:
  1. Extracts the Bearer token from the Authorization header
  2. Decodes and validates the JWT
  3. Maps the role claim onto the closed Role set (unknown roles are rejected)
  4. Returns a Principal for this request only

Authorization is not done here. Route handlers go through ResourceService,
which asks the AuthorizationEngine once per operation.
"""

import logging
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from garagehub.auth.engine import AuthorizationEngine
from garagehub.auth.jwt import decode_access_token
from garagehub.auth.ownership import OwnershipResolver
from garagehub.auth.principal import Principal
from garagehub.auth.roles import parse_role
from garagehub.config import settings
from garagehub.database import async_session
from garagehub.middleware.request_context import set_actor
from garagehub.services.audit_service import AuditRecorder
from garagehub.services.repository import Repository, SqlRepository
from garagehub.services.resource_service import ResourceService

logger = logging.getLogger(__name__)


# ── Database session ─────────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session per request, commit on success, rollback on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_repository(db: AsyncSession = Depends(get_db)) -> Repository:
    return SqlRepository(db)


# ── Principal (JWT authentication) ───────────────────────────────────────────

async def get_principal(request: Request) -> Principal:
    """Build the Principal for the current request from its access token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    token = auth_header[7:]  # strip "Bearer "
    try:
        claims = decode_access_token(token)
    except JWTError as e:
        logger.debug("JWT decode failed: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    role = parse_role(claims.get("role"))
    if role is None:
        # Never fall back to a default role.
        logger.warning("Rejected token for %s with unknown role %r", claims["sub"], claims.get("role"))
        raise HTTPException(status_code=401, detail="Unknown role")

    principal = Principal(id=claims["sub"], role=role, email=claims.get("email"))
    set_actor(principal.actor)
    return principal


# ── Authorization and audit ──────────────────────────────────────────────────

async def get_engine(repository: Repository = Depends(get_repository)) -> AuthorizationEngine:
    resolver = OwnershipResolver(repository, email_fallback=settings.ownership_email_fallback)
    return AuthorizationEngine(repository, resolver)


async def get_recorder(repository: Repository = Depends(get_repository)) -> AuditRecorder:
    return AuditRecorder(repository)


async def get_resource_service(
    repository: Repository = Depends(get_repository),
    engine: AuthorizationEngine = Depends(get_engine),
    recorder: AuditRecorder = Depends(get_recorder),
) -> ResourceService:
    return ResourceService(repository, engine, recorder)
