"""
刷新令牌数据库模型 - SQLAlchemy ORM模型
支持令牌轮转（Refresh Token Rotation）
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, Text
from datetime import datetime, timezone

from .base import Base


class RefreshTokenModel(Base):
    """
    刷新令牌数据库模型

    - token_value 全局唯一（含历史令牌）
    - 同一 family 内任一时刻至多一个有效令牌
    - replaced_by_token_id 仅在被成功轮转时写入
    - 记录永不由核心物理删除，保留用于审计与重用检测
    """
    __tablename__ = "refresh_tokens"

    # 主键
    id = Column(String(36), primary_key=True)

    # 令牌值（不透明随机串）
    token_value = Column(String(128), unique=True, index=True, nullable=False, comment="令牌值")

    # 用户关联：不级联删除，令牌须显式撤销
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="用户ID"
    )

    # 令牌家族（Token Family）- 用于检测令牌重用
    family = Column(String(64), index=True, nullable=False, comment="令牌家族ID，同一登录会话共享")
    rotation_count = Column(Integer, default=0, nullable=False, comment="轮转次数")

    # 轮转链
    replaced_by_token_id = Column(
        String(36),
        ForeignKey("refresh_tokens.id", ondelete="RESTRICT"),
        nullable=True,
        comment="继任令牌ID（仅轮转时写入）"
    )

    # 设备信息（用于安全审计）
    ip_address = Column(String(45), nullable=True, comment="IP地址（支持IPv6）")
    user_agent = Column(Text, nullable=True, comment="User-Agent")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True, comment="过期时间")
    revoked_at = Column(DateTime(timezone=True), nullable=True, comment="撤销时间")
    revoke_reason = Column(String(200), nullable=True, comment="撤销原因")

    __table_args__ = (
        Index("ix_refresh_tokens_user_revoked", "user_id", "revoked_at"),
        Index("ix_refresh_tokens_family_revoked", "family", "revoked_at"),
    )

    def __repr__(self):
        return (
            f"<RefreshTokenModel(id={self.id}, user_id={self.user_id}, "
            f"family='{self.family}', rotation_count={self.rotation_count}, revoked_at={self.revoked_at})>"
        )
