"""
应用层返回结果 - 将预期内的领域失败作为类型化结果返回给调用方

认证相关的失败（凭据错误、令牌过期、令牌重用等）是不可信输入的正常结果，
不应作为未捕获异常向上传播；表现层再按需通过 unwrap() 交给全局异常处理器渲染。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from domain.common.exceptions import BusinessException


T = TypeVar("T")


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    data: Optional[T] = None
    error: Optional[BusinessException] = None

    @classmethod
    def ok(cls, data: T) -> "ServiceResult[T]":
        return cls(data=data)

    @classmethod
    def fail(cls, error: BusinessException) -> "ServiceResult[T]":
        return cls(error=error)

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def error_type(self) -> Optional[str]:
        return self.error.error_type if self.error else None

    def unwrap(self) -> T:
        """成功时返回数据，失败时抛出对应的业务异常"""
        if self.error is not None:
            raise self.error
        return self.data  # type: ignore[return-value]
