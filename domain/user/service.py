"""
用户领域服务 - 处理复杂的业务逻辑
"""
from typing import Optional, List
from datetime import datetime, timezone
import asyncio

from argon2 import PasswordHasher as Argon2Hasher, Type
from argon2.exceptions import InvalidHash, VerificationError

from .entity import User, new_id
from .repository import UserRepository
from .events import UserCreated, UserActivated, UserDeactivated, PasswordChanged
from domain.common.exceptions import (
    DomainValidationException,
    UserAlreadyExistsException,
    UserNotFoundException,
    AuthenticationFailedException,
    NewPasswordSameAsOldException,
    UserAlreadyActiveException,
    UserAlreadyInactiveException,
)


class PasswordHasher:
    """密码服务 - argon2id 单向哈希

    输出为自描述的 PHC 字符串（算法 + 参数 + 盐 + 摘要），每次调用使用随机盐。
    """

    def __init__(
        self,
        *,
        time_cost: int = 3,
        memory_cost: int = 64 * 1024,
        parallelism: int = 4,
        hash_len: int = 32,
        salt_len: int = 16,
    ) -> None:
        self._hasher = Argon2Hasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_len,
            salt_len=salt_len,
            type=Type.ID,
        )
        # 用于“用户不存在”分支的等时校验
        self._dummy_hash: Optional[str] = None

    @classmethod
    def from_settings(cls, cfg) -> "PasswordHasher":
        return cls(
            time_cost=cfg.time_cost,
            memory_cost=cfg.memory_cost,
            parallelism=cfg.parallelism,
            hash_len=cfg.hash_len,
            salt_len=cfg.salt_len,
        )

    def hash_password(self, password: str) -> str:
        """密码哈希"""
        if not password:
            raise DomainValidationException("Password cannot be empty", field="password")
        return self._hasher.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """验证密码（恒定时间比较；格式错误的哈希返回 False）"""
        if not plain_password or not hashed_password:
            return False
        try:
            return self._hasher.verify(hashed_password, plain_password)
        except (VerificationError, InvalidHash):
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        try:
            return self._hasher.check_needs_rehash(hashed_password)
        except (InvalidHash, ValueError):
            return False

    def burn_verification(self, plain_password: str) -> None:
        """对虚拟哈希执行一次校验，使未知用户分支与密码错误分支耗时一致"""
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash("dummy-password-for-timing")
        self.verify_password(plain_password or "x", self._dummy_hash)

    # argon2 计算为 CPU 密集型，异步调用方须经线程池执行，避免阻塞事件循环
    async def hash_password_async(self, password: str) -> str:
        return await asyncio.to_thread(self.hash_password, password)

    async def verify_password_async(self, plain_password: str, hashed_password: str) -> bool:
        return await asyncio.to_thread(self.verify_password, plain_password, hashed_password)

    async def burn_verification_async(self, plain_password: str) -> None:
        await asyncio.to_thread(self.burn_verification, plain_password)

    @staticmethod
    def validate_password_strength(password: str) -> None:
        """业务规则：密码强度验证"""
        if len(password) < 8:
            raise DomainValidationException("Password must be at least 8 characters", field="password")
        if not any(c.isupper() for c in password):
            raise DomainValidationException("Password must contain an uppercase letter", field="password")
        if not any(c.islower() for c in password):
            raise DomainValidationException("Password must contain a lowercase letter", field="password")
        if not any(c.isdigit() for c in password):
            raise DomainValidationException("Password must contain a digit", field="password")


class UserDomainService:
    """用户领域服务 - 编排复杂的业务流程"""

    def __init__(self, user_repository: UserRepository, password_hasher: PasswordHasher):
        self.user_repository = user_repository
        self.password_hasher = password_hasher
        self.events: List = []  # 领域事件收集

    async def register_user(self,
                            email: str,
                            password: str,
                            full_name: Optional[str] = None) -> User:
        """用户注册的业务流程"""
        self.password_hasher.validate_password_strength(password)

        normalized = email.strip().lower()
        if await self.user_repository.exists_by_email(normalized):
            raise UserAlreadyExistsException(normalized)

        hashed_password = await self.password_hasher.hash_password_async(password)
        now = datetime.now(timezone.utc)
        try:
            user = User(
                id=new_id(),
                email=normalized,
                hashed_password=hashed_password,
                full_name=full_name,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
        except ValueError as exc:
            raise DomainValidationException(str(exc), field="email")

        created_user = await self.user_repository.create(user)
        self.events.append(UserCreated(user_id=created_user.id, email=created_user.email))
        return created_user

    async def change_user_password(self, user_id: str,
                                   old_password: str,
                                   new_password: str) -> User:
        """修改密码的业务流程"""
        user = await self.user_repository.get_by_id(user_id)
        if not user:
            raise UserNotFoundException(user_id)

        if not await self.password_hasher.verify_password_async(old_password, user.hashed_password):
            raise AuthenticationFailedException()

        self.password_hasher.validate_password_strength(new_password)

        if old_password == new_password:
            raise NewPasswordSameAsOldException()

        user.change_password(await self.password_hasher.hash_password_async(new_password))
        updated_user = await self.user_repository.update(user)
        self.events.append(PasswordChanged(user_id=user_id))
        return updated_user

    async def activate_user(self, user_id: str) -> User:
        """激活用户"""
        user = await self.user_repository.get_by_id(user_id)
        if not user:
            raise UserNotFoundException(user_id)
        if user.is_active:
            raise UserAlreadyActiveException()

        user.activate()
        updated_user = await self.user_repository.update(user)
        self.events.append(UserActivated(user_id=user_id))
        return updated_user

    async def deactivate_user(self, user_id: str) -> User:
        """停用用户"""
        user = await self.user_repository.get_by_id(user_id)
        if not user:
            raise UserNotFoundException(user_id)
        if not user.is_active:
            raise UserAlreadyInactiveException()

        user.deactivate()
        updated_user = await self.user_repository.update(user)
        self.events.append(UserDeactivated(user_id=user_id))
        return updated_user

    def get_domain_events(self) -> List:
        """获取并清空领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
