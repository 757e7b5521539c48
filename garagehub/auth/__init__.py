from garagehub.auth.roles import Role, parse_role
from garagehub.auth.descriptors import Action, ResourceKind, ScopingMode, DESCRIPTORS, get_descriptor
from garagehub.auth.principal import Principal

__all__ = [
    "Role", "parse_role",
    "Action", "ResourceKind", "ScopingMode", "DESCRIPTORS", "get_descriptor",
    "Principal",
]
