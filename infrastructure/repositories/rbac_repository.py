"""
角色/权限仓储实现 - 显式连接表查询
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, exists

from domain.rbac.entity import Role, Permission
from domain.rbac.repository import RbacRepository
from infrastructure.models.rbac import (
    RoleModel,
    PermissionModel,
    UserRoleModel,
    RolePermissionModel,
)
from infrastructure.repositories.utils import as_utc


class SQLAlchemyRbacRepository(RbacRepository):
    """角色/权限仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _role_to_entity(self, model: RoleModel) -> Role:
        return Role(
            id=model.id,
            name=model.name,
            description=model.description,
            created_at=as_utc(model.created_at),
        )

    def _permission_to_entity(self, model: PermissionModel) -> Permission:
        return Permission(
            id=model.id,
            name=model.name,
            resource=model.resource,
            action=model.action,
            description=model.description,
            created_at=as_utc(model.created_at),
        )

    async def get_role_names_for_user(self, user_id: str) -> List[str]:
        result = await self.session.execute(
            select(RoleModel.name)
            .join(UserRoleModel, UserRoleModel.role_id == RoleModel.id)
            .where(UserRoleModel.user_id == user_id)
        )
        return [row[0] for row in result.all()]

    async def get_permissions_for_user(self, user_id: str) -> List[Permission]:
        result = await self.session.execute(
            select(PermissionModel)
            .join(RolePermissionModel, RolePermissionModel.permission_id == PermissionModel.id)
            .join(UserRoleModel, UserRoleModel.role_id == RolePermissionModel.role_id)
            .where(UserRoleModel.user_id == user_id)
        )
        return [self._permission_to_entity(row) for row in result.scalars().all()]

    async def user_has_permission(self, user_id: str, resource: str, action: str) -> bool:
        stmt = select(
            exists()
            .where(
                and_(
                    UserRoleModel.user_id == user_id,
                    RolePermissionModel.role_id == UserRoleModel.role_id,
                    PermissionModel.id == RolePermissionModel.permission_id,
                    PermissionModel.resource == resource,
                    PermissionModel.action == action,
                )
            )
        )
        result = await self.session.execute(stmt)
        return bool(result.scalar())

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        result = await self.session.execute(
            select(RoleModel).where(RoleModel.name == name)
        )
        model = result.scalar_one_or_none()
        return self._role_to_entity(model) if model else None

    async def get_permission_by_name(self, name: str) -> Optional[Permission]:
        result = await self.session.execute(
            select(PermissionModel).where(PermissionModel.name == name)
        )
        model = result.scalar_one_or_none()
        return self._permission_to_entity(model) if model else None

    async def list_permissions(self) -> List[Permission]:
        result = await self.session.execute(
            select(PermissionModel).order_by(PermissionModel.name.asc())
        )
        return [self._permission_to_entity(row) for row in result.scalars().all()]

    async def add_role(self, role: Role) -> Role:
        self.session.add(
            RoleModel(
                id=role.id,
                name=role.name,
                description=role.description,
                created_at=role.created_at,
            )
        )
        await self.session.flush()
        return role

    async def add_permission(self, permission: Permission) -> Permission:
        self.session.add(
            PermissionModel(
                id=permission.id,
                name=permission.name,
                resource=permission.resource,
                action=permission.action,
                description=permission.description,
                created_at=permission.created_at,
            )
        )
        await self.session.flush()
        return permission

    async def grant_permission(self, role_id: str, permission_id: str) -> bool:
        existing = await self.session.get(RolePermissionModel, (role_id, permission_id))
        if existing is not None:
            return False
        self.session.add(RolePermissionModel(role_id=role_id, permission_id=permission_id))
        await self.session.flush()
        return True

    async def assign_role(self, user_id: str, role_id: str) -> bool:
        existing = await self.session.get(UserRoleModel, (user_id, role_id))
        if existing is not None:
            return False
        self.session.add(UserRoleModel(user_id=user_id, role_id=role_id))
        await self.session.flush()
        return True
