"""
API依赖项 - 服务装配、认证和授权
"""
from datetime import timedelta
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from application.ports.access_token import AccessTokenIssuer
from application.services.auth_service import AuthenticationService
from application.services.role_permission_service import RolePermissionResolver
from application.services.token_service import TokenRotationService
from application.services.user_service import UserApplicationService
from core.config import settings
from domain.common.exceptions import PermissionDeniedException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.user.service import PasswordHasher
from infrastructure.security.jwt_issuer import JwtAccessTokenIssuer
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return SQLAlchemyUnitOfWork


@lru_cache
def get_password_hasher() -> PasswordHasher:
    return PasswordHasher.from_settings(settings.password_hash)


@lru_cache
def get_token_issuer() -> AccessTokenIssuer:
    return JwtAccessTokenIssuer.from_settings(settings)


def get_resolver(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> RolePermissionResolver:
    return RolePermissionResolver(uow_factory)


def get_token_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    issuer: AccessTokenIssuer = Depends(get_token_issuer),
    resolver: RolePermissionResolver = Depends(get_resolver),
) -> TokenRotationService:
    return TokenRotationService(
        uow_factory,
        issuer,
        resolver,
        refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def get_auth_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    hasher: PasswordHasher = Depends(get_password_hasher),
    token_service: TokenRotationService = Depends(get_token_service),
    resolver: RolePermissionResolver = Depends(get_resolver),
) -> AuthenticationService:
    return AuthenticationService(
        uow_factory,
        hasher,
        token_service,
        resolver,
        access_token_ttl_seconds=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


def get_user_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    hasher: PasswordHasher = Depends(get_password_hasher),
    token_service: TokenRotationService = Depends(get_token_service),
) -> UserApplicationService:
    return UserApplicationService(
        uow_factory, hasher, token_service, default_role=settings.DEFAULT_ROLE
    )


def get_client_context(request: Request) -> tuple:
    """(客户端IP, User-Agent)；IP 优先使用 RequestIDMiddleware 解析的结果"""
    ip_address: Optional[str] = getattr(request.state, "client_ip", None)
    if not ip_address and request.client:
        ip_address = request.client.host
    return ip_address, request.headers.get("user-agent")


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> str:
    """从 Authorization: Bearer 头中提取token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    token: str = Depends(get_token),
    issuer: AccessTokenIssuer = Depends(get_token_issuer),
) -> str:
    """校验访问令牌并返回用户ID（过期令牌由 TokenExpiredException 处理）"""
    claims = issuer.verify(token)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims.user_id


def require_permission(resource: str, action: str):
    """按 resource + action 实时检查当前用户权限（不信任令牌中的缓存声明）"""

    async def _checker(
        user_id: str = Depends(get_current_user_id),
        resolver: RolePermissionResolver = Depends(get_resolver),
    ) -> str:
        if not await resolver.user_has_permission(user_id, resource, action):
            raise PermissionDeniedException(resource, action)
        return user_id

    return _checker
