"""
认证应用服务 - 登录、刷新、登出、授权检查

所有操作以 ServiceResult 返回预期内的失败，不向调用方抛出领域异常。
"""
from typing import Callable, Optional

from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import (
    AccountDisabledException,
    AuthenticationFailedException,
    BusinessException,
    DomainValidationException,
    UserNotFoundException,
)
from domain.user.service import PasswordHasher, UserDomainService
from application.dto import (
    AuthorizationContextDTO,
    AuthorizationResultDTO,
    LoginResponseDTO,
    LogoutResponseDTO,
    TokenPairDTO,
)
from application.result import ServiceResult
from application.services.role_permission_service import RolePermissionResolver
from application.services.token_service import TokenRotationService
from core.logging_config import get_logger


logger = get_logger(__name__)


class AuthenticationService:
    """认证应用服务"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        password_hasher: PasswordHasher,
        token_service: TokenRotationService,
        resolver: RolePermissionResolver,
        access_token_ttl_seconds: int,
    ):
        self._uow_factory = uow_factory
        self._password_hasher = password_hasher
        self._token_service = token_service
        self._resolver = resolver
        self._expires_in = access_token_ttl_seconds

    async def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ServiceResult[LoginResponseDTO]:
        """
        邮箱 + 密码登录

        用户不存在与密码错误返回同一失败（并对虚拟哈希做一次校验以对齐耗时）。
        """
        if not email or not email.strip() or not password:
            return ServiceResult.fail(
                DomainValidationException("Email and password are required")
            )

        normalized = email.strip().lower()
        try:
            async with self._uow_factory() as uow:
                user = await uow.user_repository.get_by_email(normalized)
                if user is None:
                    await self._password_hasher.burn_verification_async(password)
                    logger.info("login_failed", reason="unknown_user", ip=ip_address)
                    return ServiceResult.fail(AuthenticationFailedException())

                if not user.is_active:
                    logger.info("login_failed", reason="inactive", user_id=user.id, ip=ip_address)
                    return ServiceResult.fail(AccountDisabledException())

                if not await self._password_hasher.verify_password_async(password, user.hashed_password):
                    logger.info("login_failed", reason="bad_password", user_id=user.id, ip=ip_address)
                    return ServiceResult.fail(AuthenticationFailedException())

                # 哈希参数调整后，登录成功时透明升级
                if self._password_hasher.needs_rehash(user.hashed_password):
                    user.change_password(await self._password_hasher.hash_password_async(password))
                    logger.info("password_rehashed", user_id=user.id)

                user.record_login()
                await uow.user_repository.update(user)
                refresh = await self._token_service.issue_family(
                    user.id, ip_address, user_agent, uow=uow
                )
                await uow.commit()

            access_token = await self._token_service.mint_access_token(user.id)
        except BusinessException as exc:
            return self._failure("login", exc)

        logger.info("login_succeeded", user_id=user.id, family=refresh.family, ip=ip_address)
        return ServiceResult.ok(
            LoginResponseDTO(
                user_id=user.id,
                email=user.email,
                access_token=access_token,
                refresh_token=refresh.token_value,
                token_type="bearer",
                expires_in=self._expires_in,
            )
        )

    async def refresh(
        self,
        refresh_token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ServiceResult[TokenPairDTO]:
        """用刷新令牌换取新的令牌对"""
        try:
            access_token, successor = await self._token_service.refresh_token(
                refresh_token, ip_address, user_agent
            )
        except BusinessException as exc:
            return self._failure("refresh", exc)

        return ServiceResult.ok(
            TokenPairDTO(
                user_id=successor.user_id,
                access_token=access_token,
                refresh_token=successor.token_value,
                token_type="bearer",
                expires_in=self._expires_in,
            )
        )

    async def logout(self, user_id: str) -> ServiceResult[LogoutResponseDTO]:
        """登出：撤销该用户的全部活跃令牌家族"""
        if not user_id:
            return ServiceResult.fail(DomainValidationException("user_id is required"))
        try:
            count = await self._token_service.revoke_all_user_tokens(user_id, "User logout")
        except BusinessException as exc:
            return self._failure("logout", exc)
        logger.info("logout_succeeded", user_id=user_id, revoked_count=count)
        return ServiceResult.ok(LogoutResponseDTO(success=True, revoked_count=count))

    async def authorize(self, user_id: str, resource: str, action: str) -> AuthorizationResultDTO:
        if not user_id or not resource or not action:
            return AuthorizationResultDTO(allowed=False)
        allowed = await self._resolver.user_has_permission(user_id, resource, action)
        return AuthorizationResultDTO(allowed=allowed)

    async def get_authorization_context(self, user_id: str) -> ServiceResult[AuthorizationContextDTO]:
        if not user_id:
            return ServiceResult.fail(DomainValidationException("user_id is required"))
        context = await self._resolver.get_authorization_context(user_id)
        if context is None:
            return ServiceResult.fail(UserNotFoundException(user_id))
        return ServiceResult.ok(context)

    async def change_password(
        self,
        user_id: str,
        old_password: str,
        new_password: str,
    ) -> ServiceResult[LogoutResponseDTO]:
        """修改密码并撤销该用户全部刷新令牌家族（所有设备需重新登录）"""
        try:
            async with self._uow_factory() as uow:
                domain_service = UserDomainService(uow.user_repository, self._password_hasher)
                await domain_service.change_user_password(user_id, old_password, new_password)
                count = await self._token_service.revoke_all_user_tokens(
                    user_id, "Password changed", uow=uow
                )
                for event in domain_service.get_domain_events():
                    logger.info("domain_event", event_type=type(event).__name__, user_id=user_id)
        except BusinessException as exc:
            return self._failure("change_password", exc)
        return ServiceResult.ok(LogoutResponseDTO(success=True, revoked_count=count))

    @staticmethod
    def _failure(operation: str, exc: BusinessException) -> ServiceResult:
        logger.info(
            "auth_operation_failed",
            operation=operation,
            error_type=exc.error_type,
            code=int(exc.code),
        )
        return ServiceResult.fail(exc)
