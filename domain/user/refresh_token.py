"""
刷新令牌领域实体 - 令牌轮转状态机

状态：Active -> Rotated | Revoked | Expired
- Rotated / Revoked 为终态（写入 revoked_at）；Rotated 额外记录 replaced_by_token_id
- Expired 为派生状态，由 expires_at 计算得出，从不写入
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
import secrets
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_token_value() -> str:
    """生成不透明的随机令牌值（384 bit）"""
    return secrets.token_urlsafe(48)


def generate_family_id() -> str:
    """生成令牌家族ID（同一登录会话共享）"""
    return str(uuid.uuid4())


class RefreshTokenState(str, Enum):
    ACTIVE = "active"
    ROTATED = "rotated"
    REVOKED = "revoked"
    EXPIRED = "expired"


@dataclass
class RefreshToken:
    """刷新令牌实体"""

    user_id: str
    token_value: str
    family: str
    expires_at: datetime
    rotation_count: int = 0
    revoked_at: Optional[datetime] = None
    replaced_by_token_id: Optional[str] = None
    revoke_reason: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("user_id is required")
        if not self.token_value:
            raise ValueError("token_value is required")
        if not self.family:
            raise ValueError("family is required")
        if self.rotation_count < 0:
            raise ValueError("rotation_count must be >= 0")

    @classmethod
    def issue(
        cls,
        user_id: str,
        ttl: timedelta,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "RefreshToken":
        """登录时签发：新家族，rotation_count = 0"""
        now = now or utcnow()
        return cls(
            user_id=user_id,
            token_value=generate_token_value(),
            family=generate_family_id(),
            expires_at=now + ttl,
            rotation_count=0,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
        )

    def successor(
        self,
        ttl: timedelta,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "RefreshToken":
        """轮转时生成继任令牌：同一家族，rotation_count + 1"""
        now = now or utcnow()
        return RefreshToken(
            user_id=self.user_id,
            token_value=generate_token_value(),
            family=self.family,
            expires_at=now + ttl,
            rotation_count=self.rotation_count + 1,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
        )

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return not self.is_revoked and not self.is_expired(now)

    def state(self, now: Optional[datetime] = None) -> RefreshTokenState:
        if self.revoked_at is not None:
            if self.replaced_by_token_id is not None:
                return RefreshTokenState.ROTATED
            return RefreshTokenState.REVOKED
        if self.is_expired(now):
            return RefreshTokenState.EXPIRED
        return RefreshTokenState.ACTIVE
