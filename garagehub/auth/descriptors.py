"""
Resource descriptors — who may, in principle, touch each kind of record.

This table is the single source of truth for role permissions. The
authorization engine reads it; route handlers never check roles
themselves. Adding a resource kind means adding exactly one row to
DESCRIPTORS.

Each row declares:
- read_roles / write_roles: roles allowed before ownership scoping
- role_actions: optional narrowing of what a role may do on the kind
- scoping: how client / technician access is restricted to their records
- owner_field: the field holding the owning customer id
- assignment: how a record is assigned to a technician
- references: foreign keys a writable body may carry, checked for
  cross-entity ownership
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from garagehub.auth.roles import Role


class ResourceKind(str, Enum):
    CUSTOMER = "customer"
    VEHICLE = "vehicle"
    APPOINTMENT = "appointment"
    REPAIR_ORDER = "repair_order"
    INVOICE = "invoice"
    INSPECTION = "inspection"
    INVENTORY = "inventory"
    USER = "user"
    AUDIT_LOG = "audit_log"


class Action(str, Enum):
    READ = "read"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def is_write(self) -> bool:
        return self in (Action.CREATE, Action.UPDATE, Action.DELETE)


class ScopingMode(str, Enum):
    NONE = "none"
    OWNED_BY_CUSTOMER = "owned_by_customer"
    ASSIGNED_TO_TECHNICIAN = "assigned_to_technician"
    OWNED_OR_ASSIGNED = "owned_or_assigned"

    @property
    def owned(self) -> bool:
        return self in (ScopingMode.OWNED_BY_CUSTOMER, ScopingMode.OWNED_OR_ASSIGNED)

    @property
    def assigned(self) -> bool:
        return self in (ScopingMode.ASSIGNED_TO_TECHNICIAN, ScopingMode.OWNED_OR_ASSIGNED)


@dataclass(frozen=True)
class Assignment:
    """How a record is tied to a technician.

    Direct: the record's own `field` holds the technician id.
    Indirect: the record is assigned when some `via` row whose `via_key`
    points at it is assigned (e.g. a vehicle through its repair orders).
    """

    field: str = "technician_id"
    via: ResourceKind | None = None
    via_key: str | None = None

    @property
    def direct(self) -> bool:
        return self.via is None


@dataclass(frozen=True)
class ResourceDescriptor:
    kind: ResourceKind
    read_roles: frozenset[Role]
    write_roles: frozenset[Role]
    scoping: ScopingMode
    owner_field: str = "customer_id"
    assignment: Assignment | None = None
    role_actions: Mapping[Role, frozenset[Action]] = field(default_factory=dict, compare=False)
    references: Mapping[str, ResourceKind] = field(default_factory=dict, compare=False)

    def roles_for(self, action: Action) -> frozenset[Role]:
        return self.write_roles if action.is_write else self.read_roles

    def permits(self, role: Role, action: Action) -> bool:
        """Static role check, before any ownership scoping."""
        if role not in self.roles_for(action):
            return False
        allowed = self.role_actions.get(role)
        return allowed is None or action in allowed


_ALL = frozenset(Role)
_CRUD_NO_DELETE = frozenset({Action.READ, Action.LIST, Action.CREATE, Action.UPDATE})

DESCRIPTORS: dict[ResourceKind, ResourceDescriptor] = {
    # Clients never list or read other profiles; they create or edit their own.
    ResourceKind.CUSTOMER: ResourceDescriptor(
        kind=ResourceKind.CUSTOMER,
        read_roles=frozenset({Role.ADMIN}),
        write_roles=frozenset({Role.ADMIN, Role.CLIENT}),
        scoping=ScopingMode.OWNED_BY_CUSTOMER,
        owner_field="id",
        role_actions={Role.CLIENT: frozenset({Action.CREATE, Action.UPDATE})},
    ),
    # Technicians only see vehicles that one of their repair orders works on.
    ResourceKind.VEHICLE: ResourceDescriptor(
        kind=ResourceKind.VEHICLE,
        read_roles=_ALL,
        write_roles=frozenset({Role.ADMIN, Role.CLIENT}),
        scoping=ScopingMode.OWNED_OR_ASSIGNED,
        assignment=Assignment(via=ResourceKind.REPAIR_ORDER, via_key="vehicle_id"),
    ),
    ResourceKind.APPOINTMENT: ResourceDescriptor(
        kind=ResourceKind.APPOINTMENT,
        read_roles=_ALL,
        write_roles=frozenset({Role.ADMIN, Role.CLIENT}),
        scoping=ScopingMode.OWNED_OR_ASSIGNED,
        assignment=Assignment(),
        references={"vehicle_id": ResourceKind.VEHICLE},
    ),
    # Technicians update the orders assigned to them; only admins create or assign.
    ResourceKind.REPAIR_ORDER: ResourceDescriptor(
        kind=ResourceKind.REPAIR_ORDER,
        read_roles=_ALL,
        write_roles=frozenset({Role.ADMIN, Role.TECHNICIAN}),
        scoping=ScopingMode.OWNED_OR_ASSIGNED,
        assignment=Assignment(),
        role_actions={Role.TECHNICIAN: frozenset({Action.READ, Action.LIST, Action.UPDATE})},
        references={
            "vehicle_id": ResourceKind.VEHICLE,
            "appointment_id": ResourceKind.APPOINTMENT,
        },
    ),
    ResourceKind.INVOICE: ResourceDescriptor(
        kind=ResourceKind.INVOICE,
        read_roles=frozenset({Role.ADMIN, Role.CLIENT}),
        write_roles=frozenset({Role.ADMIN}),
        scoping=ScopingMode.OWNED_BY_CUSTOMER,
        references={"repair_order_id": ResourceKind.REPAIR_ORDER},
    ),
    ResourceKind.INSPECTION: ResourceDescriptor(
        kind=ResourceKind.INSPECTION,
        read_roles=_ALL,
        write_roles=_ALL,
        scoping=ScopingMode.OWNED_OR_ASSIGNED,
        assignment=Assignment(),
        role_actions={
            Role.TECHNICIAN: _CRUD_NO_DELETE,
            Role.CLIENT: _CRUD_NO_DELETE,
        },
        references={
            "vehicle_id": ResourceKind.VEHICLE,
            "repair_order_id": ResourceKind.REPAIR_ORDER,
        },
    ),
    ResourceKind.INVENTORY: ResourceDescriptor(
        kind=ResourceKind.INVENTORY,
        read_roles=frozenset({Role.ADMIN, Role.TECHNICIAN}),
        write_roles=frozenset({Role.ADMIN}),
        scoping=ScopingMode.NONE,
    ),
    # Account and role management.
    ResourceKind.USER: ResourceDescriptor(
        kind=ResourceKind.USER,
        read_roles=frozenset({Role.ADMIN}),
        write_roles=frozenset({Role.ADMIN}),
        scoping=ScopingMode.NONE,
        owner_field="id",
    ),
    # The audit trail is append-only; entries are written by AuditRecorder, never through the API.
    ResourceKind.AUDIT_LOG: ResourceDescriptor(
        kind=ResourceKind.AUDIT_LOG,
        read_roles=frozenset({Role.ADMIN}),
        write_roles=frozenset(),
        scoping=ScopingMode.NONE,
    ),
}


def get_descriptor(kind: ResourceKind) -> ResourceDescriptor:
    return DESCRIPTORS[kind]
