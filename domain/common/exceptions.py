"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


# 认证失败统一文案，避免泄露“用户不存在”与“密码错误”的区别
GENERIC_AUTH_FAILURE_MESSAGE = "Invalid email or password"


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class AuthenticationFailedException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.AUTHENTICATION_FAILED,
            message=GENERIC_AUTH_FAILURE_MESSAGE,
            error_type="AuthenticationFailed",
        )


class AccountDisabledException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.ACCOUNT_DISABLED,
            message="User account is inactive",
            error_type="AccountDisabled",
        )


class InvalidTokenException(BusinessException):
    def __init__(self, message: str = "Invalid refresh token"):
        super().__init__(
            code=BusinessCode.TOKEN_INVALID,
            message=message,
            error_type="InvalidToken",
        )


class TokenExpiredException(BusinessException):
    def __init__(self, message: str = "Token expired"):
        super().__init__(
            code=BusinessCode.TOKEN_EXPIRED,
            message=message,
            error_type="TokenExpired",
        )


class TokenReuseDetectedException(BusinessException):
    """已消费/已撤销的刷新令牌被再次使用，整个令牌家族已被撤销"""

    def __init__(self, family: Optional[str] = None, revoked_count: Optional[int] = None):
        details = None
        if revoked_count is not None:
            details = {"revoked_count": revoked_count}
        self.family = family
        super().__init__(
            code=BusinessCode.TOKEN_REUSE_DETECTED,
            message="Refresh token reuse detected, please sign in again",
            error_type="TokenReuseDetected",
            details=details,
        )


class PersistenceException(BusinessException):
    def __init__(self, message: str = "Persistence layer unavailable"):
        super().__init__(
            code=BusinessCode.DATABASE_ERROR,
            message=message,
            error_type="PersistenceError",
        )


class UserNotFoundException(BusinessException):
    def __init__(self, user_id: Optional[str] = None):
        details = {"user_id": user_id} if user_id else None
        super().__init__(
            code=BusinessCode.USER_NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class UserAlreadyExistsException(BusinessException):
    def __init__(self, email: str):
        super().__init__(
            code=BusinessCode.USER_ALREADY_EXISTS,
            message=f"Email {email} already registered",
            error_type="UserAlreadyExists",
            details={"email": email},
            field="email",
        )


class PermissionDeniedException(BusinessException):
    def __init__(self, resource: str, action: str):
        super().__init__(
            code=BusinessCode.PERMISSION_ERROR,
            message="Permission denied",
            error_type="PermissionDenied",
            details={"resource": resource, "action": action},
        )


class UserAlreadyActiveException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.BUSINESS_ERROR,
            message="User already active",
            error_type="UserAlreadyActive",
        )


class UserAlreadyInactiveException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.BUSINESS_ERROR,
            message="User already inactive",
            error_type="UserAlreadyInactive",
        )


class NewPasswordSameAsOldException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.BUSINESS_ERROR,
            message="New password must differ from old password",
            error_type="NewPasswordSameAsOld",
            field="new_password",
        )
