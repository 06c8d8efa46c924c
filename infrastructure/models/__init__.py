"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .rbac import RoleModel, PermissionModel, UserRoleModel, RolePermissionModel
from .refresh_token import RefreshTokenModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "RoleModel",
    "PermissionModel",
    "UserRoleModel",
    "RolePermissionModel",
    "RefreshTokenModel",
]
