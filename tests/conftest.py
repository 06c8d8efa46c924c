"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef-0123456789")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PASSWORD_HASH__TIME_COST", "1")
os.environ.setdefault("PASSWORD_HASH__MEMORY_COST", "1024")
os.environ.setdefault("PASSWORD_HASH__PARALLELISM", "1")
os.environ.setdefault("SEED_DEFAULTS", "false")

import asyncio  # noqa: E402
from dataclasses import replace  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402
from functools import partial  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import Dict, List, Optional, Set, Tuple  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from application.services.auth_service import AuthenticationService  # noqa: E402
from application.services.role_permission_service import RolePermissionResolver  # noqa: E402
from application.services.token_service import TokenRotationService  # noqa: E402
from application.services.user_service import UserApplicationService  # noqa: E402
from domain.common.exceptions import UserAlreadyExistsException  # noqa: E402
from domain.common.unit_of_work import AbstractUnitOfWork  # noqa: E402
from domain.rbac.entity import Permission, Role  # noqa: E402
from domain.rbac.repository import RbacRepository  # noqa: E402
from domain.user.entity import User  # noqa: E402
from domain.user.refresh_token import RefreshToken  # noqa: E402
from domain.user.refresh_token_repository import RefreshTokenRepository  # noqa: E402
from domain.user.repository import UserRepository  # noqa: E402
from domain.user.service import PasswordHasher  # noqa: E402
from infrastructure.database import build_engine, create_tables  # noqa: E402
from infrastructure.security.jwt_issuer import JwtAccessTokenIssuer  # noqa: E402
from infrastructure.seeding import seed_defaults  # noqa: E402
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork  # noqa: E402


# ---------------------------------------------------------------------------
# In-memory unit of work
#
# Writers take a store-wide lock on their first write and hold it until
# commit/rollback, like a row lock held to the end of a transaction. Reads
# yield to the event loop so concurrent calls interleave.
# ---------------------------------------------------------------------------


class InMemoryStore:
    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.tokens: Dict[str, RefreshToken] = {}
        self.roles: Dict[str, Role] = {}
        self.permissions: Dict[str, Permission] = {}
        self.user_roles: Set[Tuple[str, str]] = set()
        self.role_permissions: Set[Tuple[str, str]] = set()
        self.lock = asyncio.Lock()
        # 测试钩子
        self.add_gate: Optional[asyncio.Event] = None
        self.add_started = asyncio.Event()
        self.rbac_error: Optional[Exception] = None


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store
        self._undo: List = []
        self._holds_lock = False

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self.user_repository = InMemoryUserRepository(self)
        self.refresh_token_repository = InMemoryRefreshTokenRepository(self)
        self.rbac_repository = InMemoryRbacRepository(self)
        return self

    async def begin_write(self) -> None:
        if self._readonly:
            raise RuntimeError("write in read-only unit of work")
        if not self._holds_lock:
            await self.store.lock.acquire()
            self._holds_lock = True

    def record(self, undo) -> None:
        self._undo.append(undo)

    def _release(self) -> None:
        self._undo.clear()
        if self._holds_lock:
            self.store.lock.release()
            self._holds_lock = False

    async def commit(self) -> None:
        self._release()
        self._committed = True

    async def rollback(self) -> None:
        for undo in reversed(self._undo):
            undo()
        self._release()
        self._committed = False


class InMemoryUserRepository(UserRepository):
    def __init__(self, uow: InMemoryUnitOfWork):
        self.uow = uow
        self.store = uow.store

    async def create(self, user: User) -> User:
        await self.uow.begin_write()
        if any(u.email == user.email for u in self.store.users.values()):
            raise UserAlreadyExistsException(user.email)
        self.store.users[user.id] = replace(user)
        self.uow.record(lambda: self.store.users.pop(user.id, None))
        return replace(user)

    async def get_by_id(self, user_id: str) -> Optional[User]:
        await asyncio.sleep(0)
        user = self.store.users.get(user_id)
        return replace(user) if user else None

    async def get_by_email(self, email: str) -> Optional[User]:
        await asyncio.sleep(0)
        for user in self.store.users.values():
            if user.email == email.strip().lower():
                return replace(user)
        return None

    async def update(self, user: User) -> User:
        await self.uow.begin_write()
        old = self.store.users[user.id]
        self.store.users[user.id] = replace(user)
        self.uow.record(lambda: self.store.users.__setitem__(user.id, old))
        return replace(user)

    async def exists_by_email(self, email: str) -> bool:
        return await self.get_by_email(email) is not None


class InMemoryRefreshTokenRepository(RefreshTokenRepository):
    def __init__(self, uow: InMemoryUnitOfWork):
        self.uow = uow
        self.store = uow.store

    def _set(self, token: RefreshToken) -> None:
        old = self.store.tokens.get(token.id)
        self.store.tokens[token.id] = token
        if old is None:
            self.uow.record(lambda: self.store.tokens.pop(token.id, None))
        else:
            self.uow.record(lambda: self.store.tokens.__setitem__(token.id, old))

    async def add(self, token: RefreshToken) -> RefreshToken:
        await self.uow.begin_write()
        self.store.add_started.set()
        if self.store.add_gate is not None:
            await self.store.add_gate.wait()
        if any(t.token_value == token.token_value for t in self.store.tokens.values()):
            raise ValueError("duplicate token value")
        self._set(replace(token))
        return token

    async def get_by_id(self, token_id: str) -> Optional[RefreshToken]:
        await asyncio.sleep(0)
        token = self.store.tokens.get(token_id)
        return replace(token) if token else None

    async def get_by_value(self, token_value: str) -> Optional[RefreshToken]:
        await asyncio.sleep(0)
        for token in self.store.tokens.values():
            if token.token_value == token_value:
                return replace(token)
        return None

    async def list_by_family(self, family: str) -> List[RefreshToken]:
        await asyncio.sleep(0)
        tokens = [replace(t) for t in self.store.tokens.values() if t.family == family]
        return sorted(tokens, key=lambda t: t.rotation_count)

    async def list_active_by_user(self, user_id: str, now: datetime) -> List[RefreshToken]:
        await asyncio.sleep(0)
        tokens = [
            replace(t) for t in self.store.tokens.values()
            if t.user_id == user_id and t.is_active(now)
        ]
        return sorted(tokens, key=lambda t: t.created_at, reverse=True)

    async def revoke_if_active(self, token_id, revoked_at, reason=None) -> bool:
        await self.uow.begin_write()
        token = self.store.tokens.get(token_id)
        if token is None or token.revoked_at is not None:
            return False
        self._set(replace(token, revoked_at=revoked_at, revoke_reason=reason))
        return True

    async def link_successor(self, token_id: str, successor_id: str) -> None:
        await self.uow.begin_write()
        token = self.store.tokens[token_id]
        self._set(replace(token, replaced_by_token_id=successor_id))

    async def revoke_family(self, family, revoked_at, reason=None) -> int:
        await self.uow.begin_write()
        count = 0
        for token in list(self.store.tokens.values()):
            if token.family == family and token.revoked_at is None:
                self._set(replace(token, revoked_at=revoked_at, revoke_reason=reason))
                count += 1
        return count


class InMemoryRbacRepository(RbacRepository):
    def __init__(self, uow: InMemoryUnitOfWork):
        self.uow = uow
        self.store = uow.store

    def _check(self) -> None:
        if self.store.rbac_error is not None:
            raise self.store.rbac_error

    async def get_role_names_for_user(self, user_id: str) -> List[str]:
        self._check()
        return [self.store.roles[r].name for u, r in self.store.user_roles if u == user_id]

    async def get_permissions_for_user(self, user_id: str) -> List[Permission]:
        self._check()
        role_ids = {r for u, r in self.store.user_roles if u == user_id}
        # 每条 角色-权限 连接各返回一行，与 SQL 连接查询一致（可能重复）
        return [
            self.store.permissions[p]
            for r, p in self.store.role_permissions
            if r in role_ids
        ]

    async def user_has_permission(self, user_id: str, resource: str, action: str) -> bool:
        return any(p.matches(resource, action) for p in await self.get_permissions_for_user(user_id))

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        self._check()
        return next((r for r in self.store.roles.values() if r.name == name), None)

    async def get_permission_by_name(self, name: str) -> Optional[Permission]:
        self._check()
        return next((p for p in self.store.permissions.values() if p.name == name), None)

    async def list_permissions(self) -> List[Permission]:
        self._check()
        return sorted(self.store.permissions.values(), key=lambda p: p.name)

    async def add_role(self, role: Role) -> Role:
        await self.uow.begin_write()
        self.store.roles[role.id] = role
        self.uow.record(lambda: self.store.roles.pop(role.id, None))
        return role

    async def add_permission(self, permission: Permission) -> Permission:
        await self.uow.begin_write()
        self.store.permissions[permission.id] = permission
        self.uow.record(lambda: self.store.permissions.pop(permission.id, None))
        return permission

    async def grant_permission(self, role_id: str, permission_id: str) -> bool:
        await self.uow.begin_write()
        key = (role_id, permission_id)
        if key in self.store.role_permissions:
            return False
        self.store.role_permissions.add(key)
        self.uow.record(lambda: self.store.role_permissions.discard(key))
        return True

    async def assign_role(self, user_id: str, role_id: str) -> bool:
        await self.uow.begin_write()
        key = (user_id, role_id)
        if key in self.store.user_roles:
            return False
        self.store.user_roles.add(key)
        self.uow.record(lambda: self.store.user_roles.discard(key))
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def memory_uow_factory(memory_store):
    return partial(InMemoryUnitOfWork, memory_store)


@pytest.fixture
async def sqlite_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}")
    await create_tables(bind=engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def sqlite_uow_factory(sqlite_engine):
    session_factory = async_sessionmaker(bind=sqlite_engine, expire_on_commit=False)
    return partial(SQLAlchemyUnitOfWork, session_factory)


@pytest.fixture(params=["memory", "sqlite"])
def uow_factory(request):
    """在内存实现与 SQLite 实现上各跑一遍"""
    return request.getfixturevalue(f"{request.param}_uow_factory")


@pytest.fixture
def password_hasher() -> PasswordHasher:
    return PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def token_issuer() -> JwtAccessTokenIssuer:
    return JwtAccessTokenIssuer(
        "unit-test-secret-0123456789abcdef-0123456789",
        issuer="auth-service",
        audience="auth-service-clients",
        ttl=timedelta(minutes=15),
    )


def build_services(uow_factory, password_hasher, token_issuer) -> SimpleNamespace:
    resolver = RolePermissionResolver(uow_factory)
    tokens = TokenRotationService(uow_factory, token_issuer, resolver, refresh_ttl=timedelta(days=7))
    return SimpleNamespace(
        uow_factory=uow_factory,
        resolver=resolver,
        tokens=tokens,
        auth=AuthenticationService(uow_factory, password_hasher, tokens, resolver, access_token_ttl_seconds=900),
        users=UserApplicationService(uow_factory, password_hasher, tokens, default_role="User"),
        issuer=token_issuer,
        hasher=password_hasher,
    )


@pytest.fixture
def service_builder():
    return build_services


@pytest.fixture
async def services(uow_factory, password_hasher, token_issuer):
    await seed_defaults(uow_factory)
    return build_services(uow_factory, password_hasher, token_issuer)


@pytest.fixture
async def memory_services(memory_uow_factory, password_hasher, token_issuer):
    await seed_defaults(memory_uow_factory)
    return build_services(memory_uow_factory, password_hasher, token_issuer)


@pytest.fixture
async def sqlite_services(sqlite_uow_factory, password_hasher, token_issuer):
    await seed_defaults(sqlite_uow_factory)
    return build_services(sqlite_uow_factory, password_hasher, token_issuer)


@pytest.fixture
def make_user():
    """注册用户并返回 UserResponseDTO"""
    from application.dto import UserCreateDTO

    async def _make(svc, email: str = "a@x.com", password: str = "Secret123"):
        return await svc.users.register_user(UserCreateDTO(email=email, password=password))

    return _make
