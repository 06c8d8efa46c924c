"""
默认角色/权限初始化（幂等）

权限：user|role|permission × create|read|update|delete
角色：Admin（全部）、Manager（user + role 全部）、User（user.read）、Viewer（全部 read）
"""
from typing import Callable, Dict, List

from domain.common.unit_of_work import AbstractUnitOfWork
from domain.rbac.entity import Permission, Role
from core.logging_config import get_logger


logger = get_logger(__name__)


RESOURCES = ("user", "role", "permission")
ACTIONS = ("create", "read", "update", "delete")

ROLE_DESCRIPTIONS: Dict[str, str] = {
    "Admin": "Full access",
    "Manager": "Manage users and roles",
    "User": "Regular user",
    "Viewer": "Read-only access",
}


def default_grants() -> Dict[str, List[str]]:
    """角色名 → 权限名列表"""
    every = [f"{r}.{a}" for r in RESOURCES for a in ACTIONS]
    return {
        "Admin": every,
        "Manager": [name for name in every if name.split(".")[0] in ("user", "role")],
        "User": ["user.read"],
        "Viewer": [f"{r}.read" for r in RESOURCES],
    }


async def seed_defaults(uow_factory: Callable[..., AbstractUnitOfWork]) -> Dict[str, int]:
    """写入缺失的默认权限/角色/授权，已存在的跳过；返回各类新建数量"""
    created = {"permissions": 0, "roles": 0, "grants": 0}
    async with uow_factory() as uow:
        rbac = uow.rbac_repository

        permissions: Dict[str, Permission] = {}
        for resource in RESOURCES:
            for action in ACTIONS:
                name = f"{resource}.{action}"
                permission = await rbac.get_permission_by_name(name)
                if permission is None:
                    permission = await rbac.add_permission(
                        Permission(
                            name=name,
                            resource=resource,
                            action=action,
                            description=f"{action.capitalize()} {resource}",
                        )
                    )
                    created["permissions"] += 1
                permissions[name] = permission

        for role_name, permission_names in default_grants().items():
            role = await rbac.get_role_by_name(role_name)
            if role is None:
                role = await rbac.add_role(
                    Role(name=role_name, description=ROLE_DESCRIPTIONS[role_name])
                )
                created["roles"] += 1
            for name in permission_names:
                if await rbac.grant_permission(role.id, permissions[name].id):
                    created["grants"] += 1

    logger.info("rbac_defaults_seeded", **created)
    return created
