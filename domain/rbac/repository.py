"""
角色/权限仓储接口

读路径为显式的连接表查询：User -> UserRole -> Role -> RolePermission -> Permission。
写路径仅供初始化数据与角色分配使用。
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Role, Permission


class RbacRepository(ABC):
    """角色/权限仓储抽象接口"""

    @abstractmethod
    async def get_role_names_for_user(self, user_id: str) -> List[str]:
        """用户被分配的角色名"""
        pass

    @abstractmethod
    async def get_permissions_for_user(self, user_id: str) -> List[Permission]:
        """经由角色授予用户的权限（可能含重复）"""
        pass

    @abstractmethod
    async def user_has_permission(self, user_id: str, resource: str, action: str) -> bool:
        """是否存在某个角色授予了 resource + action 完全匹配的权限"""
        pass

    @abstractmethod
    async def get_role_by_name(self, name: str) -> Optional[Role]:
        pass

    @abstractmethod
    async def get_permission_by_name(self, name: str) -> Optional[Permission]:
        pass

    @abstractmethod
    async def list_permissions(self) -> List[Permission]:
        pass

    @abstractmethod
    async def add_role(self, role: Role) -> Role:
        pass

    @abstractmethod
    async def add_permission(self, permission: Permission) -> Permission:
        pass

    @abstractmethod
    async def grant_permission(self, role_id: str, permission_id: str) -> bool:
        """为角色授予权限；已存在时返回 False"""
        pass

    @abstractmethod
    async def assign_role(self, user_id: str, role_id: str) -> bool:
        """为用户分配角色；已存在时返回 False"""
        pass
