"""
Ownership resolver — which customer record a client principal owns.

Resolution order:
  1. The user account's explicit `customer_id` link.
  2. Fallback: the customer whose email matches the account email.

The email fallback is weaker than an explicit link: it breaks when emails
are duplicated, differ in case or drift out of sync between the account
and the customer record. Emails are compared trimmed and case-insensitively,
more than one match is treated as ambiguous, and every use of the fallback
is logged so accounts can be linked explicitly.

Every outcome other than RESOLVED must make scoped checks deny. Repository
errors are reported as FAILED, never raised, so callers fail closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.principal import Principal
from garagehub.auth.roles import Role
from garagehub.services.repository import Repository

logger = logging.getLogger(__name__)


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    FAILED = "failed"


@dataclass(frozen=True)
class OwnershipResolution:
    status: ResolutionStatus
    customer_id: str | None = None
    strategy: str | None = None  # "principal" | "foreign_key" | "email"

    @property
    def resolved(self) -> bool:
        return self.status is ResolutionStatus.RESOLVED


NOT_FOUND = OwnershipResolution(ResolutionStatus.NOT_FOUND)
AMBIGUOUS = OwnershipResolution(ResolutionStatus.AMBIGUOUS)
FAILED = OwnershipResolution(ResolutionStatus.FAILED)


def normalize_email(email: str | None) -> str | None:
    if not email:
        return None
    email = email.strip().lower()
    return email or None


class OwnershipResolver:
    def __init__(self, repository: Repository, *, email_fallback: bool = True):
        self.repository = repository
        self.email_fallback = email_fallback

    async def resolve_customer_for_client(self, principal: Principal) -> OwnershipResolution:
        if principal.role is not Role.CLIENT:
            return NOT_FOUND
        if principal.owned_customer_id:
            return OwnershipResolution(
                ResolutionStatus.RESOLVED, principal.owned_customer_id, "principal",
            )

        try:
            return await self._resolve(principal)
        except Exception:
            logger.exception("Ownership resolution failed for %s", principal.actor)
            return FAILED

    async def _resolve(self, principal: Principal) -> OwnershipResolution:
        account = await self.repository.fetch_by_id(ResourceKind.USER, principal.id)

        linked_id = account.get("customer_id") if account else None
        if linked_id:
            customer = await self.repository.fetch_by_id(ResourceKind.CUSTOMER, linked_id)
            if customer is None:
                # A dangling link is a data error; matching by email instead
                # could hand the client someone else's record.
                logger.error(
                    "Account %s links to missing customer %s", principal.actor, linked_id,
                )
                return NOT_FOUND
            return OwnershipResolution(ResolutionStatus.RESOLVED, linked_id, "foreign_key")

        if not self.email_fallback:
            return NOT_FOUND

        email = normalize_email(principal.email or (account or {}).get("email"))
        if email is None:
            return NOT_FOUND

        matches = [
            c for c in await self.repository.fetch_by_foreign_key(ResourceKind.CUSTOMER, "email", email)
            if normalize_email(c.get("email")) == email
        ]
        if len(matches) > 1:
            logger.error(
                "Email %s matches %d customer records for %s; refusing to pick one",
                email, len(matches), principal.actor,
            )
            return AMBIGUOUS
        if not matches:
            return NOT_FOUND

        customer_id = matches[0]["id"]
        logger.warning(
            "Resolved %s to customer %s by email match; link the account explicitly",
            principal.actor, customer_id,
        )
        return OwnershipResolution(ResolutionStatus.RESOLVED, customer_id, "email")

    def resolve_assigned_filter(self, principal: Principal) -> dict[str, str]:
        if principal.role is not Role.TECHNICIAN:
            raise ValueError(f"{principal.actor} is not a technician")
        return {"technician_id": principal.id}
