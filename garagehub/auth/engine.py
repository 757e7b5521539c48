"""
Authorization engine — the one place that decides who may act on what.

    decision = await engine.authorize(principal, ResourceKind.VEHICLE, Action.READ, target=vehicle)
    decision.raise_for_denial()

Given a principal, a resource kind, an action and the target record (or,
for create/update, the proposed body), the engine returns an
AuthorizationDecision. It never raises for a denial. The decision carries:
- reason: why it was allowed or denied
- scope_filter: for LIST, the filter the repository must apply
- payload: for CREATE/UPDATE, the body to persist after ownership
  injection (clients cannot choose whose record they create)

Evaluation order:
  1. descriptor role check                       -> role_not_permitted
  2. admin                                       -> allow
  3. scoping NONE                                -> allow
  4. client on customer-owned kinds              -> not_owner / ownership_unresolved
  5. technician on assignable kinds              -> not_assigned
  6. cross-entity references in the body         -> cross_entity_mismatch
  7. anything else                               -> unscoped_fallthrough (a bug, logged as error)

The engine writes nothing. Its only I/O is ownership and assignment
lookups through the repository; any failure there denies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from fastapi import HTTPException

from garagehub.auth.descriptors import (
    DESCRIPTORS,
    Action,
    ResourceDescriptor,
    ResourceKind,
    ScopingMode,
)
from garagehub.auth.ownership import OwnershipResolution, OwnershipResolver, ResolutionStatus, normalize_email
from garagehub.auth.principal import Principal
from garagehub.auth.roles import Role
from garagehub.auth.scoping import ScopeFilter, build_scope_filter
from garagehub.middleware.metrics import authorization_decisions_total
from garagehub.services.repository import Repository

logger = logging.getLogger(__name__)


class Reason(str, Enum):
    ALLOWED = "allowed"
    ROLE_NOT_PERMITTED = "role_not_permitted"
    NOT_OWNER = "not_owner"
    NOT_ASSIGNED = "not_assigned"
    CROSS_ENTITY_MISMATCH = "cross_entity_mismatch"
    UNSCOPED_FALLTHROUGH = "unscoped_fallthrough"
    OWNERSHIP_UNRESOLVED = "ownership_unresolved"
    RESOLUTION_FAILED = "resolution_failed"

    @property
    def public(self) -> Reason:
        """Reason reported to the caller. Lookup failures look like a missing mapping."""
        if self is Reason.RESOLUTION_FAILED:
            return Reason.OWNERSHIP_UNRESOLVED
        return self


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: Reason
    scope_filter: ScopeFilter | None = None
    payload: dict[str, Any] | None = None

    @classmethod
    def allow(cls, scope_filter: ScopeFilter | None = None, payload: dict | None = None) -> AuthorizationDecision:
        return cls(True, Reason.ALLOWED, scope_filter=scope_filter, payload=payload)

    @classmethod
    def deny(cls, reason: Reason) -> AuthorizationDecision:
        return cls(False, reason)

    def raise_for_denial(self) -> None:
        """Raise 403 if the decision is a denial. Never includes record contents."""
        if not self.allowed:
            raise HTTPException(
                status_code=403,
                detail={"message": "Access denied", "reason": self.reason.public.value},
            )


def field_value(record: Any, name: str) -> Any:
    if record is None:
        return None
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _unresolved(resolution: OwnershipResolution) -> AuthorizationDecision:
    if resolution.status is ResolutionStatus.FAILED:
        return AuthorizationDecision.deny(Reason.RESOLUTION_FAILED)
    return AuthorizationDecision.deny(Reason.OWNERSHIP_UNRESOLVED)


class AuthorizationEngine:
    def __init__(
        self,
        repository: Repository,
        resolver: OwnershipResolver | None = None,
        descriptors: Mapping[ResourceKind, ResourceDescriptor] | None = None,
    ):
        self.repository = repository
        self.resolver = resolver or OwnershipResolver(repository)
        self.descriptors = descriptors if descriptors is not None else DESCRIPTORS

    async def authorize(
        self,
        principal: Principal,
        kind: ResourceKind,
        action: Action,
        target: Any = None,
        body: Mapping[str, Any] | None = None,
    ) -> AuthorizationDecision:
        """
        Decide whether `principal` may perform `action` on `kind`.

        Args:
            target: the fetched record, required for READ/UPDATE/DELETE
            body: the proposed values for CREATE/UPDATE
        """
        if action in (Action.READ, Action.UPDATE, Action.DELETE) and target is None:
            raise ValueError(f"{action.value} on {kind.value} requires the target record")

        decision = await self._decide(principal, kind, action, target, body)

        authorization_decisions_total.labels(
            kind=kind.value,
            action=action.value,
            outcome="allow" if decision.allowed else "deny",
            reason=decision.reason.value,
        ).inc()
        if not decision.allowed:
            logger.info(
                "Denied %s %s %s %s: %s",
                principal.actor, action.value, kind.value,
                field_value(target, "id") or "-", decision.reason.value,
                extra={"kind": kind.value, "action": action.value, "reason": decision.reason.value},
            )
        return decision

    async def _decide(
        self,
        principal: Principal,
        kind: ResourceKind,
        action: Action,
        target: Any,
        body: Mapping[str, Any] | None,
    ) -> AuthorizationDecision:
        descriptor = self.descriptors.get(kind)
        if descriptor is None:
            logger.error("No resource descriptor for %s", kind.value)
            return AuthorizationDecision.deny(Reason.UNSCOPED_FALLTHROUGH)

        if not descriptor.permits(principal.role, action):
            return AuthorizationDecision.deny(Reason.ROLE_NOT_PERMITTED)

        payload = dict(body) if body is not None else None

        if principal.role is Role.ADMIN or descriptor.scoping is ScopingMode.NONE:
            scope = ScopeFilter.unrestricted() if action is Action.LIST else None
            return AuthorizationDecision.allow(scope_filter=scope, payload=payload)

        if principal.role is Role.CLIENT and descriptor.scoping.owned:
            return await self._authorize_client(principal, descriptor, action, target, payload)

        if principal.role is Role.TECHNICIAN and descriptor.scoping.assigned and descriptor.assignment:
            return await self._authorize_technician(principal, descriptor, action, target, payload)

        logger.error(
            "No access rule for role=%s kind=%s action=%s scoping=%s; denying",
            principal.role.value, kind.value, action.value, descriptor.scoping.value,
        )
        return AuthorizationDecision.deny(Reason.UNSCOPED_FALLTHROUGH)

    # ── Clients: records owned by their customer ─────────────────────────

    async def _owned_customer(self, principal: Principal) -> OwnershipResolution:
        resolution = await self.resolver.resolve_customer_for_client(principal)
        if resolution.resolved:
            # Memoized on this request's principal only.
            principal.owned_customer_id = resolution.customer_id
        return resolution

    async def _authorize_client(
        self,
        principal: Principal,
        descriptor: ResourceDescriptor,
        action: Action,
        target: Any,
        payload: dict | None,
    ) -> AuthorizationDecision:
        resolution = await self._owned_customer(principal)

        if descriptor.kind is ResourceKind.CUSTOMER and action is Action.CREATE:
            return self._client_profile_create(principal, resolution, payload)

        if not resolution.resolved:
            return _unresolved(resolution)
        owned = resolution.customer_id

        if action is Action.LIST:
            return AuthorizationDecision.allow(
                scope_filter=build_scope_filter(descriptor, principal, owned),
            )

        if action is Action.CREATE:
            payload = payload or {}
            forged = payload.get(descriptor.owner_field)
            if forged is not None and forged != owned:
                logger.warning(
                    "Overriding %s=%s with %s on %s create by %s",
                    descriptor.owner_field, forged, owned, descriptor.kind.value, principal.actor,
                )
            payload[descriptor.owner_field] = owned
            if descriptor.assignment is not None and descriptor.assignment.direct:
                # Only admins assign work.
                if payload.pop(descriptor.assignment.field, None) is not None:
                    logger.warning(
                        "Dropping %s from %s create by %s",
                        descriptor.assignment.field, descriptor.kind.value, principal.actor,
                    )
            mismatch = await self._check_references(principal, descriptor, payload, owned)
            if mismatch is not None:
                return AuthorizationDecision.deny(mismatch)
            return AuthorizationDecision.allow(payload=payload)

        if action in (Action.READ, Action.UPDATE, Action.DELETE):
            if field_value(target, descriptor.owner_field) != owned:
                return AuthorizationDecision.deny(Reason.NOT_OWNER)
            if action is Action.UPDATE and payload is not None:
                if descriptor.owner_field == "id":
                    payload.pop("id", None)
                elif descriptor.owner_field in payload:
                    payload[descriptor.owner_field] = owned
                if descriptor.assignment is not None and descriptor.assignment.direct:
                    assigned_field = descriptor.assignment.field
                    if assigned_field in payload:
                        if payload[assigned_field] != field_value(target, assigned_field):
                            return AuthorizationDecision.deny(Reason.NOT_ASSIGNED)
                        payload.pop(assigned_field)
                mismatch = await self._check_references(principal, descriptor, payload, owned)
                if mismatch is not None:
                    return AuthorizationDecision.deny(mismatch)
            return AuthorizationDecision.allow(payload=payload)

        return self._fallthrough(principal, descriptor, action)

    def _client_profile_create(
        self,
        principal: Principal,
        resolution: OwnershipResolution,
        payload: dict | None,
    ) -> AuthorizationDecision:
        """A client may create their own customer profile, once."""
        if resolution.resolved:
            return AuthorizationDecision.deny(Reason.NOT_OWNER)
        if resolution.status is not ResolutionStatus.NOT_FOUND:
            return _unresolved(resolution)
        email = normalize_email(principal.email)
        if email is None:
            # Without an email the new profile could never be matched back.
            return AuthorizationDecision.deny(Reason.OWNERSHIP_UNRESOLVED)
        payload = payload or {}
        payload.pop("id", None)
        payload["email"] = email
        return AuthorizationDecision.allow(payload=payload)

    # ── Technicians: records assigned to them ────────────────────────────

    async def _authorize_technician(
        self,
        principal: Principal,
        descriptor: ResourceDescriptor,
        action: Action,
        target: Any,
        payload: dict | None,
    ) -> AuthorizationDecision:
        assignment = descriptor.assignment

        if action is Action.LIST:
            return AuthorizationDecision.allow(
                scope_filter=build_scope_filter(descriptor, principal),
            )

        if action is Action.CREATE:
            if not assignment.direct:
                return self._fallthrough(principal, descriptor, action)
            payload = payload or {}
            payload[assignment.field] = principal.id
            mismatch = await self._check_references(
                principal, descriptor, payload, payload.get(descriptor.owner_field),
            )
            if mismatch is not None:
                return AuthorizationDecision.deny(mismatch)
            return AuthorizationDecision.allow(payload=payload)

        if action in (Action.READ, Action.UPDATE, Action.DELETE):
            try:
                assigned = await self._is_assigned(descriptor, target, principal.id)
            except Exception:
                logger.exception(
                    "Assignment lookup failed for %s on %s", principal.actor, descriptor.kind.value,
                )
                return AuthorizationDecision.deny(Reason.RESOLUTION_FAILED)
            if not assigned:
                return AuthorizationDecision.deny(Reason.NOT_ASSIGNED)
            if action is Action.UPDATE and payload is not None:
                # Only admins assign work.
                if assignment.field in payload and payload[assignment.field] != principal.id:
                    return AuthorizationDecision.deny(Reason.NOT_ASSIGNED)
                customer_id = field_value(target, descriptor.owner_field)
                if descriptor.owner_field in payload and payload[descriptor.owner_field] != customer_id:
                    return AuthorizationDecision.deny(Reason.CROSS_ENTITY_MISMATCH)
                mismatch = await self._check_references(principal, descriptor, payload, customer_id)
                if mismatch is not None:
                    return AuthorizationDecision.deny(mismatch)
            return AuthorizationDecision.allow(payload=payload)

        return self._fallthrough(principal, descriptor, action)

    async def _is_assigned(self, descriptor: ResourceDescriptor, record: Any, technician_id: str) -> bool:
        assignment = descriptor.assignment
        if assignment.direct:
            current = field_value(record, assignment.field)
            return current is not None and current == technician_id

        rows = await self.repository.fetch_by_foreign_key(
            assignment.via, assignment.via_key, field_value(record, "id"),
        )
        return any(field_value(row, "technician_id") == technician_id for row in rows)

    # ── Cross-entity references ──────────────────────────────────────────

    async def _check_references(
        self,
        principal: Principal,
        descriptor: ResourceDescriptor,
        payload: dict[str, Any],
        customer_id: str | None = None,
    ) -> Reason | None:
        """
        Every record the body points at must belong to the same customer as
        the record itself, and technicians must be assigned to it.

        When `customer_id` is not known yet (a technician creating a record
        without naming the customer) it is taken from the first reference
        and written into the payload.
        """
        for key, ref_kind in descriptor.references.items():
            ref_id = payload.get(key)
            if ref_id is None:
                continue
            ref_descriptor = self.descriptors[ref_kind]
            try:
                referenced = await self.repository.fetch_by_id(ref_kind, ref_id)
                if referenced is None:
                    return Reason.CROSS_ENTITY_MISMATCH

                if ref_descriptor.scoping.owned:
                    ref_customer = field_value(referenced, ref_descriptor.owner_field)
                    if customer_id is None:
                        customer_id = ref_customer
                        payload[descriptor.owner_field] = ref_customer
                    elif ref_customer != customer_id:
                        return Reason.CROSS_ENTITY_MISMATCH
                if principal.role is Role.TECHNICIAN and ref_descriptor.assignment is not None:
                    if not await self._is_assigned(ref_descriptor, referenced, principal.id):
                        return Reason.CROSS_ENTITY_MISMATCH
            except Exception:
                logger.exception(
                    "Reference lookup %s=%s failed for %s", key, ref_id, principal.actor,
                )
                return Reason.RESOLUTION_FAILED
        return None

    def _fallthrough(self, principal: Principal, descriptor: ResourceDescriptor, action: Action) -> AuthorizationDecision:
        logger.error(
            "No access rule for role=%s kind=%s action=%s; denying",
            principal.role.value, descriptor.kind.value, action.value,
        )
        return AuthorizationDecision.deny(Reason.UNSCOPED_FALLTHROUGH)
