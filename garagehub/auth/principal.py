"""
Principal — the authenticated caller of a request.

Built once per request from the access token (see api/deps.py). It carries
the caller's id, role and email. For clients it also carries the customer
record they own, which the authorization engine resolves on first use and
memoizes on this object only. A Principal never outlives its request, so
the mapping is looked up fresh every time.
"""

from __future__ import annotations

from dataclasses import dataclass

from garagehub.auth.roles import Role


@dataclass
class Principal:
    id: str
    role: Role
    email: str | None = None
    owned_customer_id: str | None = None

    def __post_init__(self) -> None:
        if self.owned_customer_id is not None and self.role is not Role.CLIENT:
            raise ValueError("owned_customer_id is only meaningful for client principals")

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_technician(self) -> bool:
        return self.role is Role.TECHNICIAN

    @property
    def is_client(self) -> bool:
        return self.role is Role.CLIENT

    @property
    def actor(self) -> str:
        """Identity string for logs."""
        return f"{self.role.value}:{self.id}"
