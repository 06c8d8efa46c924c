"""RBAC domain exports."""
from .entity import Role, Permission
from .repository import RbacRepository

__all__ = ["Role", "Permission", "RbacRepository"]
