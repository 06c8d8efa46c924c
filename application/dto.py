"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import BaseModel, EmailStr, Field, field_validator, model_serializer, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class UserCreateDTO(DTOBase):
    """用户注册DTO"""
    email: EmailStr = Field(..., description="邮箱地址")
    password: str = Field(..., min_length=8, max_length=128, description="密码，至少8位")
    full_name: Optional[str] = Field(None, max_length=100, description="全名")


class UserResponseDTO(DTOBase):
    """用户响应DTO"""
    id: str
    email: str
    full_name: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime
    last_login: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class LoginDTO(DTOBase):
    """登录DTO"""
    email: str = Field(..., max_length=255, description="邮箱")
    password: str = Field(..., max_length=128, description="密码")


class RefreshTokenDTO(DTOBase):
    """刷新令牌请求 DTO"""
    refresh_token: str = Field(..., max_length=256)


class TokenPairDTO(DTOBase):
    """令牌对DTO（刷新接口返回）"""
    user_id: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # 秒


class LoginResponseDTO(TokenPairDTO):
    """登录响应DTO"""
    email: str


class LogoutResponseDTO(DTOBase):
    success: bool
    revoked_count: int = 0


class AuthorizationResultDTO(DTOBase):
    allowed: bool


class AuthorizationContextDTO(DTOBase):
    user_id: str
    roles: List[str]
    permissions: List[str]


class SessionDTO(DTOBase):
    """活跃登录会话（每个令牌家族一条）"""
    family: str
    rotation_count: int
    created_at: datetime
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class ChangePasswordDTO(DTOBase):
    """修改密码DTO"""
    old_password: str = Field(..., description="原密码")
    new_password: str = Field(..., min_length=8, max_length=128, description="新密码")

    @field_validator('new_password')
    def validate_password_strength(cls, v):
        if not any(c.isupper() for c in v):
            raise ValueError('password must contain an uppercase letter')
        if not any(c.islower() for c in v):
            raise ValueError('password must contain a lowercase letter')
        if not any(c.isdigit() for c in v):
            raise ValueError('password must contain a digit')
        return v


class MessageDTO(DTOBase):
    """通用消息DTO"""
    message: str
