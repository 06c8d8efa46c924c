import pytest

from domain.rbac.entity import Permission, Role
from infrastructure.seeding import seed_defaults


pytestmark = pytest.mark.asyncio


async def _grant_role(uow_factory, user_id, role_name, permission_names):
    async with uow_factory() as uow:
        rbac = uow.rbac_repository
        role = await rbac.get_role_by_name(role_name)
        if role is None:
            role = await rbac.add_role(Role(name=role_name))
        for name in permission_names:
            permission = await rbac.get_permission_by_name(name)
            if permission is None:
                resource, action = name.split(".")
                permission = await rbac.add_permission(
                    Permission(name=name, resource=resource, action=action)
                )
            await rbac.grant_permission(role.id, permission.id)
        await rbac.assign_role(user_id, role.id)


async def test_permission_requires_role_link(services, make_user):
    approver = await make_user(services, "a@x.com")
    bystander = await make_user(services, "b@x.com")
    await _grant_role(services.uow_factory, approver.id, "Approver", ["orders.approve"])
    # 权限存在，但角色未分配给 bystander
    await _grant_role(services.uow_factory, bystander.id, "Clerk", ["orders.read"])

    resolver = services.resolver
    assert await resolver.user_has_permission(approver.id, "orders", "approve")
    assert not await resolver.user_has_permission(bystander.id, "orders", "approve")
    assert not await resolver.user_has_permission(approver.id, "orders", "read")
    assert not await resolver.user_has_permission("unknown-user", "orders", "approve")


async def test_roles_and_permissions_collapse_duplicates(services, make_user):
    user = await make_user(services)
    await _grant_role(services.uow_factory, user.id, "Viewer", [])

    resolver = services.resolver
    assert await resolver.get_user_roles(user.id) == {"User", "Viewer"}
    # User 与 Viewer 都授予 user.read
    assert await resolver.get_user_permissions(user.id) == {
        "user.read",
        "role.read",
        "permission.read",
    }


async def test_any_and_all_permission_checks(services, make_user):
    user = await make_user(services)
    resolver = services.resolver

    assert await resolver.user_has_any_permission(user.id, [])
    assert await resolver.user_has_all_permissions(user.id, [])
    assert await resolver.user_has_any_permission(user.id, ["user.read", "user.delete"])
    assert not await resolver.user_has_all_permissions(user.id, ["user.read", "user.delete"])
    assert not await resolver.user_has_any_permission(user.id, ["user.delete"])


async def test_resolver_fails_closed(memory_services, memory_store, make_user):
    user = await make_user(memory_services)
    memory_store.rbac_error = RuntimeError("database unavailable")

    resolver = memory_services.resolver
    assert await resolver.get_user_roles(user.id) == set()
    assert await resolver.get_user_permissions(user.id) == set()
    assert await resolver.user_has_permission(user.id, "user", "read") is False
    assert await resolver.user_has_any_permission(user.id, ["user.read"]) is False
    assert await resolver.get_authorization_context(user.id) is None

    # 签发的访问令牌不携带任何授权
    login = (await memory_services.auth.login("a@x.com", "Secret123")).data
    claims = memory_services.issuer.verify(login.access_token)
    assert claims.roles == frozenset()
    assert claims.permissions == frozenset()


async def test_seeding_is_idempotent(uow_factory):
    first = await seed_defaults(uow_factory)
    second = await seed_defaults(uow_factory)

    assert first == {"permissions": 12, "roles": 4, "grants": 12 + 8 + 1 + 3}
    assert second == {"permissions": 0, "roles": 0, "grants": 0}

    async with uow_factory(readonly=True) as uow:
        names = [p.name for p in await uow.rbac_repository.list_permissions()]
    assert "user.read" in names
    assert len(names) == 12
