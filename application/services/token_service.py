"""
令牌服务 - 刷新令牌轮转（Refresh Token Rotation）与重用检测
"""
from typing import Optional, Callable, List, Tuple
from datetime import timedelta

from domain.user.refresh_token import RefreshToken, utcnow
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import (
    AccountDisabledException,
    InvalidTokenException,
    TokenExpiredException,
    TokenReuseDetectedException,
)
from application.ports.access_token import AccessTokenIssuer
from application.services.role_permission_service import RolePermissionResolver
from core.logging_config import get_logger


logger = get_logger(__name__)


REASON_ROTATED = "Rotated"
REASON_REUSE = "Token reuse detected"
REASON_LOGOUT = "User logout"


class TokenRotationService:
    """
    令牌服务 - 实现刷新令牌轮转

    安全特性：
    1. 每次使用刷新令牌时，旧令牌立即失效，生成同一家族的新令牌
    2. 检测令牌重用：已撤销的令牌再次出现时，撤销整个令牌家族并提交
    3. 并发轮转以条件更新（revoked_at IS NULL）作为唯一仲裁，落败方按重用处理
    4. 旧令牌撤销与新令牌写入处于同一事务，失败或取消时整体回滚
    """

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        token_issuer: AccessTokenIssuer,
        resolver: RolePermissionResolver,
        refresh_ttl: timedelta,
    ):
        self._uow_factory = uow_factory
        self._token_issuer = token_issuer
        self._resolver = resolver
        self._refresh_ttl = refresh_ttl

    async def issue_family(
        self,
        user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        *,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> RefreshToken:
        """登录时签发新家族的首个刷新令牌（rotation_count = 0）"""
        token = RefreshToken.issue(
            user_id,
            self._refresh_ttl,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        if uow is None:
            async with self._uow_factory() as uow_local:
                await uow_local.refresh_token_repository.add(token)
        else:
            await uow.refresh_token_repository.add(token)

        logger.info(
            "refresh_token_family_issued",
            user_id=user_id,
            family=token.family,
            token_id=token.id,
        )
        return token

    async def mint_access_token(self, user_id: str) -> str:
        """按用户当前的角色/权限签发访问令牌；解析失败时不附带任何授权"""
        context = await self._resolver.get_authorization_context(user_id)
        roles = context.roles if context else []
        permissions = context.permissions if context else []
        return self._token_issuer.mint(user_id, roles, permissions)

    async def refresh_token(
        self,
        token_value: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[str, RefreshToken]:
        """
        刷新令牌轮转 - 核心安全逻辑

        流程：
        1. 按令牌值查找，不存在则 InvalidToken
        2. 已过期则 TokenExpired，不做任何修改
        3. 已撤销则视为重用：撤销整个家族并提交后抛出 TokenReuseDetected
        4. 所属用户不存在或已停用则 AccountDisabled
        5. 条件撤销旧令牌；影响 0 行说明并发轮转已抢先，按重用处理
        6. 写入继任令牌并回填 replaced_by_token_id，一次提交
        7. 提交后按最新角色/权限签发访问令牌

        Returns:
            (访问令牌, 继任刷新令牌)
        """
        if not token_value:
            raise InvalidTokenException()

        async with self._uow_factory() as uow:
            repo = uow.refresh_token_repository
            token = await repo.get_by_value(token_value)
            if token is None:
                logger.warning("refresh_token_not_found", ip=ip_address)
                raise InvalidTokenException()

            now = utcnow()
            if token.is_expired(now):
                logger.info(
                    "refresh_token_expired",
                    token_id=token.id,
                    family=token.family,
                    user_id=token.user_id,
                )
                raise TokenExpiredException("Refresh token expired")

            if token.is_revoked:
                await self._handle_reuse(uow, token, ip_address, user_agent)

            user = await uow.user_repository.get_by_id(token.user_id)
            if user is None or not user.is_active:
                logger.warning(
                    "refresh_token_owner_disabled",
                    user_id=token.user_id,
                    family=token.family,
                )
                raise AccountDisabledException()

            claimed = await repo.revoke_if_active(token.id, now, REASON_ROTATED)
            if not claimed:
                # 并发轮转落败：对方已消费该令牌
                await self._handle_reuse(uow, token, ip_address, user_agent)

            successor = token.successor(
                self._refresh_ttl,
                ip_address=ip_address,
                user_agent=user_agent,
                now=now,
            )
            await repo.add(successor)
            await repo.link_successor(token.id, successor.id)
            await uow.commit()

        logger.info(
            "refresh_token_rotated",
            user_id=successor.user_id,
            family=successor.family,
            old_token_id=token.id,
            new_token_id=successor.id,
            rotation_count=successor.rotation_count,
        )

        access_token = await self.mint_access_token(successor.user_id)
        return access_token, successor

    async def _handle_reuse(
        self,
        uow: AbstractUnitOfWork,
        token: RefreshToken,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        """撤销整个家族并立即提交，随后抛出 TokenReuseDetectedException"""
        revoked_count = await uow.refresh_token_repository.revoke_family(
            token.family, utcnow(), REASON_REUSE
        )
        await uow.commit()
        logger.error(
            "refresh_token_reuse_detected",
            ip=ip_address,
            user_agent=user_agent,
            family=token.family,
            user_id=token.user_id,
            token_id=token.id,
            revoked_count=revoked_count,
        )
        raise TokenReuseDetectedException(family=token.family, revoked_count=revoked_count)

    async def revoke_token(self, token_id: str, reason: Optional[str] = None) -> bool:
        """撤销单个刷新令牌；未知或已撤销的令牌返回 False"""
        async with self._uow_factory() as uow:
            success = await uow.refresh_token_repository.revoke_if_active(
                token_id, utcnow(), reason or "Revoked"
            )
        if success:
            logger.info("refresh_token_revoked_manual", token_id=token_id, reason=reason)
        return success

    async def revoke_token_family(self, family: str, reason: Optional[str] = None) -> int:
        """撤销整个令牌家族，返回本次新撤销的令牌数"""
        async with self._uow_factory() as uow:
            return await uow.refresh_token_repository.revoke_family(
                family, utcnow(), reason or "Family revoked"
            )

    async def revoke_all_user_tokens(
        self,
        user_id: str,
        reason: Optional[str] = None,
        *,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> int:
        """撤销用户所有活跃家族（登出所有设备）"""
        if uow is None:
            async with self._uow_factory() as uow_local:
                return await self.revoke_all_user_tokens(user_id, reason, uow=uow_local)

        now = utcnow()
        tokens = await uow.refresh_token_repository.list_active_by_user(user_id, now)
        count = 0
        for family in sorted({t.family for t in tokens}):
            count += await uow.refresh_token_repository.revoke_family(
                family, now, reason or REASON_LOGOUT
            )
        logger.info("user_tokens_revoked", user_id=user_id, count=count, reason=reason)
        return count

    async def validate_refresh_token(self, token_value: str) -> Optional[RefreshToken]:
        """只读校验：仅当令牌处于活跃状态时返回，不触发重用处理"""
        if not token_value:
            return None
        async with self._uow_factory(readonly=True) as uow:
            token = await uow.refresh_token_repository.get_by_value(token_value)
        if token is None or not token.is_active():
            return None
        return token

    async def get_active_sessions(self, user_id: str) -> List[RefreshToken]:
        """获取用户的活跃会话列表（每个家族只保留最新的令牌）"""
        async with self._uow_factory(readonly=True) as uow:
            tokens = await uow.refresh_token_repository.list_active_by_user(user_id, utcnow())

        families = {}
        for token in tokens:
            current = families.get(token.family)
            if current is None or token.rotation_count > current.rotation_count:
                families[token.family] = token
        return sorted(families.values(), key=lambda t: t.created_at, reverse=True)
