"""
刷新令牌仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_

from domain.user.refresh_token import RefreshToken
from domain.user.refresh_token_repository import RefreshTokenRepository
from infrastructure.models.refresh_token import RefreshTokenModel
from infrastructure.repositories.utils import as_utc
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyRefreshTokenRepository(RefreshTokenRepository):
    """刷新令牌仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefreshTokenModel) -> RefreshToken:
        return RefreshToken(
            id=model.id,
            user_id=model.user_id,
            token_value=model.token_value,
            family=model.family,
            rotation_count=model.rotation_count,
            expires_at=as_utc(model.expires_at),
            revoked_at=as_utc(model.revoked_at),
            replaced_by_token_id=model.replaced_by_token_id,
            revoke_reason=model.revoke_reason,
            ip_address=model.ip_address,
            user_agent=model.user_agent,
            created_at=as_utc(model.created_at),
        )

    async def add(self, token: RefreshToken) -> RefreshToken:
        """插入刷新令牌记录"""
        db_token = RefreshTokenModel(
            id=token.id,
            token_value=token.token_value,
            user_id=token.user_id,
            family=token.family,
            rotation_count=token.rotation_count,
            replaced_by_token_id=token.replaced_by_token_id,
            ip_address=token.ip_address,
            user_agent=token.user_agent,
            created_at=token.created_at,
            expires_at=token.expires_at,
            revoked_at=token.revoked_at,
            revoke_reason=token.revoke_reason,
        )
        self.session.add(db_token)
        await self.session.flush()

        logger.debug(
            "refresh_token_inserted",
            token_id=token.id,
            user_id=token.user_id,
            family=token.family,
            rotation_count=token.rotation_count,
        )
        return token

    async def get_by_id(self, token_id: str) -> Optional[RefreshToken]:
        result = await self.session.execute(
            select(RefreshTokenModel).where(RefreshTokenModel.id == token_id)
        )
        db_token = result.scalar_one_or_none()
        return self._to_entity(db_token) if db_token else None

    async def get_by_value(self, token_value: str) -> Optional[RefreshToken]:
        result = await self.session.execute(
            select(RefreshTokenModel).where(RefreshTokenModel.token_value == token_value)
        )
        db_token = result.scalar_one_or_none()
        return self._to_entity(db_token) if db_token else None

    async def list_by_family(self, family: str) -> List[RefreshToken]:
        result = await self.session.execute(
            select(RefreshTokenModel)
            .where(RefreshTokenModel.family == family)
            .order_by(RefreshTokenModel.rotation_count.asc())
        )
        return [self._to_entity(row) for row in result.scalars().all()]

    async def list_active_by_user(self, user_id: str, now: datetime) -> List[RefreshToken]:
        result = await self.session.execute(
            select(RefreshTokenModel)
            .where(
                and_(
                    RefreshTokenModel.user_id == user_id,
                    RefreshTokenModel.revoked_at.is_(None),
                    RefreshTokenModel.expires_at > now,
                )
            )
            .order_by(RefreshTokenModel.created_at.desc())
        )
        return [self._to_entity(row) for row in result.scalars().all()]

    async def revoke_if_active(
        self,
        token_id: str,
        revoked_at: datetime,
        reason: Optional[str] = None,
    ) -> bool:
        """条件撤销；受影响行数为 0 说明已被其他事务抢先撤销/轮转"""
        result = await self.session.execute(
            update(RefreshTokenModel)
            .where(
                and_(
                    RefreshTokenModel.id == token_id,
                    RefreshTokenModel.revoked_at.is_(None),
                )
            )
            .values(revoked_at=revoked_at, revoke_reason=reason)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def link_successor(self, token_id: str, successor_id: str) -> None:
        await self.session.execute(
            update(RefreshTokenModel)
            .where(RefreshTokenModel.id == token_id)
            .values(replaced_by_token_id=successor_id)
            .execution_options(synchronize_session=False)
        )

    async def revoke_family(
        self,
        family: str,
        revoked_at: datetime,
        reason: Optional[str] = None,
    ) -> int:
        """撤销整个令牌家族

        先锁定目标行再更新，避免与并发轮转交错；更新条件仍保留 revoked_at IS NULL。
        """
        ids_result = await self.session.execute(
            select(RefreshTokenModel.id)
            .where(
                and_(
                    RefreshTokenModel.family == family,
                    RefreshTokenModel.revoked_at.is_(None),
                )
            )
            .with_for_update()
        )
        ids = [row[0] for row in ids_result.all()]
        if not ids:
            return 0

        result = await self.session.execute(
            update(RefreshTokenModel)
            .where(
                and_(
                    RefreshTokenModel.id.in_(ids),
                    RefreshTokenModel.revoked_at.is_(None),
                )
            )
            .values(
                revoked_at=revoked_at,
                revoke_reason=reason or "Family revoked",
            )
            .execution_options(synchronize_session=False)
        )

        logger.warning(
            "refresh_token_family_revoked",
            family=family,
            count=result.rowcount,
            reason=reason,
        )
        return result.rowcount
