"""
角色/权限数据库模型

UserRole / RolePermission 为纯连接表（双外键组合主键），没有独立生命周期。
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime, timezone

from .base import Base


class RoleModel(Base):
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True)
    name = Column(String(100), unique=True, index=True, nullable=False, comment="角色名")
    description = Column(String(500), nullable=True, comment="描述")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    def __repr__(self):
        return f"<RoleModel(id={self.id}, name='{self.name}')>"


class PermissionModel(Base):
    __tablename__ = "permissions"

    id = Column(String(36), primary_key=True)
    name = Column(String(100), unique=True, index=True, nullable=False, comment="权限名，如 user.read")
    resource = Column(String(100), nullable=False, comment="资源")
    action = Column(String(50), nullable=False, comment="动作")
    description = Column(String(500), nullable=True, comment="描述")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        UniqueConstraint("resource", "action", name="uq_permissions_resource_action"),
    )

    def __repr__(self):
        return f"<PermissionModel(id={self.id}, name='{self.name}')>"


class UserRoleModel(Base):
    __tablename__ = "user_roles"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id = Column(String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True, index=True)


class RolePermissionModel(Base):
    __tablename__ = "role_permissions"

    role_id = Column(String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
    permission_id = Column(
        String(36), ForeignKey("permissions.id", ondelete="RESTRICT"), primary_key=True, index=True
    )
