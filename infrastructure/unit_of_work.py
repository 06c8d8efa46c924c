"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import PersistenceException
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.repositories.user_repository import SQLAlchemyUserRepository
from infrastructure.repositories.refresh_token_repository import (
    SQLAlchemyRefreshTokenRepository,
)
from infrastructure.repositories.rbac_repository import SQLAlchemyRbacRepository
from core.logging_config import get_logger


logger = get_logger(__name__)


def _default_session_factory() -> AsyncSession:
    from infrastructure.database import AsyncSessionLocal
    return AsyncSessionLocal()


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work

    任意 SQLAlchemyError 在回滚后统一转换为 PersistenceException。
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = _default_session_factory,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.user_repository = SQLAlchemyUserRepository(self.session)
        self.refresh_token_repository = SQLAlchemyRefreshTokenRepository(self.session)
        self.rbac_repository = SQLAlchemyRbacRepository(self.session)
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            try:
                self._transaction = await self.session.begin()
            except SQLAlchemyError as exc:
                await self._close()
                logger.error("unit_of_work_begin_failed", error=str(exc))
                raise PersistenceException() from exc
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            await self._close()
        if isinstance(exc, SQLAlchemyError):
            logger.error("unit_of_work_rolled_back", error=str(exc), error_type=type(exc).__name__)
            raise PersistenceException() from exc

    async def _close(self) -> None:
        # 事务在 commit/rollback 后通常会结束，这里仅在仍然活动时做安全关闭
        tx = getattr(self, "_transaction", None)
        if tx is not None and getattr(tx, "is_active", False):
            close = getattr(tx, "close", None)
            if callable(close):
                res = close()
                if inspect.isawaitable(res):
                    await res
        if self._external_session is None and self.session is not None:
            await self.session.close()
            self.session = None
        self.user_repository = None
        self.refresh_token_repository = None
        self.rbac_repository = None

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            try:
                await self.session.commit()
            except SQLAlchemyError as exc:
                await self.rollback()
                logger.error("unit_of_work_commit_failed", error=str(exc))
                raise PersistenceException() from exc
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
