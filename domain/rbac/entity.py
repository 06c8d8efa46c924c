"""
角色/权限领域实体

权限以 resource + action 标识一项授权能力，name 为其可读唯一名（如 user.read）。
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class Role:
    name: str
    description: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Role name is required")


@dataclass
class Permission:
    name: str
    resource: str
    action: str
    description: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Permission name is required")
        if not self.resource or not self.resource.strip():
            raise ValueError("Resource is required")
        if not self.action or not self.action.strip():
            raise ValueError("Action is required")

    def matches(self, resource: str, action: str) -> bool:
        return self.resource == resource and self.action == action
