"""
用户领域实体 - 包含核心业务规则
"""
from datetime import datetime, timezone
from typing import Optional
from dataclasses import dataclass
import re
import uuid


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class User:
    """用户实体 - 领域核心"""

    id: str
    email: str
    hashed_password: str
    full_name: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    def __post_init__(self):
        """初始化后的业务规则验证"""
        self.email = self.email.strip().lower()
        self.validate_email()

    def validate_email(self) -> None:
        """业务规则：邮箱格式验证"""
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, self.email):
            raise ValueError(f"无效的邮箱格式: {self.email}")

    def activate(self) -> None:
        """业务规则：激活用户"""
        if self.is_active:
            raise ValueError("用户已经是激活状态")
        self.is_active = True
        self.updated_at = datetime.now(timezone.utc)

    def deactivate(self) -> None:
        """业务规则：停用用户"""
        if not self.is_active:
            raise ValueError("用户已经是停用状态")
        self.is_active = False
        self.updated_at = datetime.now(timezone.utc)

    def change_password(self, new_password_hash: str) -> None:
        """业务规则：修改密码"""
        if not new_password_hash:
            raise ValueError("密码不能为空")
        self.hashed_password = new_password_hash
        self.updated_at = datetime.now(timezone.utc)

    def record_login(self) -> None:
        """业务规则：记录登录时间"""
        self.last_login = datetime.now(timezone.utc)
