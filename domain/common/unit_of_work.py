"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.user.repository import UserRepository
from domain.user.refresh_token_repository import RefreshTokenRepository
from domain.rbac.repository import RbacRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象

    - 正常退出：非只读且未显式提交时自动提交
    - 异常退出（含取消）：回滚，已写入但未提交的修改全部丢弃
    """

    user_repository: UserRepository
    refresh_token_repository: RefreshTokenRepository
    rbac_repository: RbacRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.user_repository = None  # type: ignore[assignment]
        self.refresh_token_repository = None  # type: ignore[assignment]
        self.rbac_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
