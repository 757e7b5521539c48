"""
Role definitions — the closed set of actors the back office knows about.

    ADMIN       shop manager, global access within the descriptor table
    TECHNICIAN  works on repair orders, appointments and inspections assigned to them
    CLIENT      a customer of the shop, sees and edits only their own records

Older tokens and user rows carry "user" for technicians; `parse_role`
accepts it as an alias so those accounts keep working.
"""

from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    TECHNICIAN = "technician"
    CLIENT = "client"


_ROLE_ALIASES: dict[str, Role] = {
    "user": Role.TECHNICIAN,
}


def parse_role(value: str | None) -> Role | None:
    """Map a raw role claim to a Role, or None when it is not recognised."""
    if not value:
        return None
    value = value.strip().lower()
    if value in _ROLE_ALIASES:
        return _ROLE_ALIASES[value]
    try:
        return Role(value)
    except ValueError:
        return None
