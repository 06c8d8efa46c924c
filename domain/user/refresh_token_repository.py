"""
刷新令牌仓储接口 - 定义刷新令牌数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List
from datetime import datetime

from .refresh_token import RefreshToken


class RefreshTokenRepository(ABC):
    """刷新令牌仓储抽象接口

    所有写操作都是条件更新（仅作用于 revoked_at 为空的行），
    返回值即为实际受影响的行数，供调用方判断并发竞争结果。
    """

    @abstractmethod
    async def add(self, token: RefreshToken) -> RefreshToken:
        """插入刷新令牌记录"""
        pass

    @abstractmethod
    async def get_by_id(self, token_id: str) -> Optional[RefreshToken]:
        """根据ID获取令牌记录"""
        pass

    @abstractmethod
    async def get_by_value(self, token_value: str) -> Optional[RefreshToken]:
        """根据令牌值获取令牌记录"""
        pass

    @abstractmethod
    async def list_by_family(self, family: str) -> List[RefreshToken]:
        """获取同一家族的全部令牌（按 rotation_count 升序）"""
        pass

    @abstractmethod
    async def list_active_by_user(self, user_id: str, now: datetime) -> List[RefreshToken]:
        """获取用户当前有效（未撤销且未过期）的令牌"""
        pass

    @abstractmethod
    async def revoke_if_active(
        self,
        token_id: str,
        revoked_at: datetime,
        reason: Optional[str] = None,
    ) -> bool:
        """
        条件撤销：UPDATE ... WHERE id = :id AND revoked_at IS NULL

        Returns:
            True 表示本次调用完成了撤销；False 表示令牌不存在或已被撤销
        """
        pass

    @abstractmethod
    async def link_successor(self, token_id: str, successor_id: str) -> None:
        """记录轮转关系（replaced_by_token_id）"""
        pass

    @abstractmethod
    async def revoke_family(
        self,
        family: str,
        revoked_at: datetime,
        reason: Optional[str] = None,
    ) -> int:
        """
        撤销整个令牌家族中尚未撤销的令牌

        Returns:
            本次撤销的令牌数量
        """
        pass
