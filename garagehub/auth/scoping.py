"""
Scoped query helpers — filters for list and search endpoints.

A ScopeFilter tells the repository how to constrain a listing query:

    admin       {}                               unrestricted
    client      {"customer_id": <owned id>}
    technician  {"technician_id": <own id>}      for assignable kinds
                {}                               for kinds without assignment

Vehicles have no technician column; a technician sees the vehicles that
their repair orders reference, which is expressed with `via`.

The repository applies the filter in the query itself. Fetching everything
and trimming in memory would leak out-of-scope records through counts and
pagination.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from garagehub.auth.descriptors import ResourceDescriptor, ResourceKind, ScopingMode
from garagehub.auth.principal import Principal
from garagehub.auth.roles import Role


@dataclass(frozen=True)
class ScopeVia:
    """Restrict to records referenced by `kind` rows matching `conditions`."""

    kind: ResourceKind
    key: str
    conditions: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScopeFilter:
    conditions: Mapping[str, Any] = field(default_factory=dict)
    via: ScopeVia | None = None

    @classmethod
    def unrestricted(cls) -> ScopeFilter:
        return cls()

    @property
    def is_unrestricted(self) -> bool:
        return not self.conditions and self.via is None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.conditions)
        if self.via is not None:
            data["via"] = {
                "kind": self.via.kind.value,
                "key": self.via.key,
                **self.via.conditions,
            }
        return data


def owned_filter(descriptor: ResourceDescriptor, customer_id: str) -> ScopeFilter:
    return ScopeFilter(conditions={descriptor.owner_field: customer_id})


def assigned_filter(descriptor: ResourceDescriptor, technician_id: str) -> ScopeFilter:
    assignment = descriptor.assignment
    if assignment is None:
        raise ValueError(f"{descriptor.kind.value} has no technician assignment")
    if assignment.direct:
        return ScopeFilter(conditions={assignment.field: technician_id})
    return ScopeFilter(
        via=ScopeVia(
            kind=assignment.via,
            key=assignment.via_key,
            conditions={"technician_id": technician_id},
        )
    )


def build_scope_filter(
    descriptor: ResourceDescriptor,
    principal: Principal,
    owned_customer_id: str | None = None,
) -> ScopeFilter | None:
    """Listing filter for this principal, or None when no rule covers it.

    Clients need their resolved customer id; without it there is no
    filter and the caller must deny.
    """
    if principal.role is Role.ADMIN or descriptor.scoping is ScopingMode.NONE:
        return ScopeFilter.unrestricted()

    if principal.role is Role.CLIENT and descriptor.scoping.owned:
        if owned_customer_id is None:
            return None
        return owned_filter(descriptor, owned_customer_id)

    if principal.role is Role.TECHNICIAN and descriptor.scoping.assigned and descriptor.assignment:
        return assigned_filter(descriptor, principal.id)

    return None
