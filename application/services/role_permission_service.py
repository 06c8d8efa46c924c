"""
角色/权限解析服务 - 用户 → 角色 → 权限 的显式连接查询

所有查询在只读工作单元中执行；解析过程中的任何异常都会记录日志并按“拒绝”处理（fail closed）。
"""
from typing import Callable, Iterable, Optional, Set

from domain.common.unit_of_work import AbstractUnitOfWork
from application.dto import AuthorizationContextDTO
from core.logging_config import get_logger


logger = get_logger(__name__)


class RolePermissionResolver:
    """用户角色与权限解析器"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def get_user_roles(self, user_id: str) -> Set[str]:
        try:
            async with self._uow_factory(readonly=True) as uow:
                return set(await uow.rbac_repository.get_role_names_for_user(user_id))
        except Exception as exc:
            logger.error("role_resolution_failed", user_id=user_id, error=str(exc))
            return set()

    async def get_user_permissions(self, user_id: str) -> Set[str]:
        """返回权限名集合（多个角色授予的同一权限只出现一次）"""
        try:
            async with self._uow_factory(readonly=True) as uow:
                permissions = await uow.rbac_repository.get_permissions_for_user(user_id)
                return {p.name for p in permissions}
        except Exception as exc:
            logger.error("permission_resolution_failed", user_id=user_id, error=str(exc))
            return set()

    async def user_has_permission(self, user_id: str, resource: str, action: str) -> bool:
        """resource + action 精确匹配"""
        try:
            async with self._uow_factory(readonly=True) as uow:
                return await uow.rbac_repository.user_has_permission(user_id, resource, action)
        except Exception as exc:
            logger.error(
                "permission_check_failed",
                user_id=user_id,
                resource=resource,
                action=action,
                error=str(exc),
            )
            return False

    async def user_has_any_permission(self, user_id: str, names: Iterable[str]) -> bool:
        wanted = set(names)
        if not wanted:
            return True
        granted = await self.get_user_permissions(user_id)
        return bool(wanted & granted)

    async def user_has_all_permissions(self, user_id: str, names: Iterable[str]) -> bool:
        wanted = set(names)
        if not wanted:
            return True
        granted = await self.get_user_permissions(user_id)
        return wanted <= granted

    async def get_authorization_context(self, user_id: str) -> Optional[AuthorizationContextDTO]:
        """一次性读取角色与权限，供访问令牌签发和 /auth/context 使用"""
        try:
            async with self._uow_factory(readonly=True) as uow:
                roles = await uow.rbac_repository.get_role_names_for_user(user_id)
                permissions = await uow.rbac_repository.get_permissions_for_user(user_id)
        except Exception as exc:
            logger.error("authorization_context_failed", user_id=user_id, error=str(exc))
            return None
        return AuthorizationContextDTO(
            user_id=user_id,
            roles=sorted(set(roles)),
            permissions=sorted({p.name for p in permissions}),
        )
