"""
用户应用服务（application/services）- 编排领域服务和处理应用逻辑
"""
from typing import Callable, List

from domain.user.entity import User
from domain.user.service import PasswordHasher, UserDomainService
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import UserNotFoundException
from application.dto import UserCreateDTO, UserResponseDTO
from application.services.token_service import TokenRotationService
from core.logging_config import get_logger


logger = get_logger(__name__)


class UserApplicationService:
    """用户应用服务 - 处理应用层逻辑"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        password_hasher: PasswordHasher,
        token_service: TokenRotationService,
        default_role: str = "User",
    ):
        self._uow_factory = uow_factory
        self._password_hasher = password_hasher
        self._token_service = token_service
        self._default_role = default_role

    async def register_user(self, user_data: UserCreateDTO) -> UserResponseDTO:
        """注册新用户；默认角色存在时自动分配"""
        async with self._uow_factory() as uow:
            domain_service = UserDomainService(uow.user_repository, self._password_hasher)
            user = await domain_service.register_user(
                email=str(user_data.email),
                password=user_data.password,
                full_name=user_data.full_name,
            )

            role = await uow.rbac_repository.get_role_by_name(self._default_role)
            if role is not None:
                await uow.rbac_repository.assign_role(user.id, role.id)
            else:
                logger.warning("default_role_missing", role=self._default_role, user_id=user.id)

            self._publish(domain_service.get_domain_events())
            return self._to_response_dto(user)

    async def get_user(self, user_id: str) -> UserResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            user = await uow.user_repository.get_by_id(user_id)
        if not user:
            raise UserNotFoundException(user_id)
        return self._to_response_dto(user)

    async def activate_user(self, user_id: str) -> UserResponseDTO:
        async with self._uow_factory() as uow:
            domain_service = UserDomainService(uow.user_repository, self._password_hasher)
            user = await domain_service.activate_user(user_id)
            self._publish(domain_service.get_domain_events())
        return self._to_response_dto(user)

    async def deactivate_user(self, user_id: str) -> UserResponseDTO:
        """停用用户，同时撤销其全部刷新令牌"""
        async with self._uow_factory() as uow:
            domain_service = UserDomainService(uow.user_repository, self._password_hasher)
            user = await domain_service.deactivate_user(user_id)
            await self._token_service.revoke_all_user_tokens(
                user_id, "User deactivated", uow=uow
            )
            self._publish(domain_service.get_domain_events())
        return self._to_response_dto(user)

    def _publish(self, events: List) -> None:
        # 当前仅记录日志，尚无外部事件总线
        for event in events:
            logger.info("domain_event", event_type=type(event).__name__, user_id=event.user_id)

    def _to_response_dto(self, user: User) -> UserResponseDTO:
        """转换为响应DTO"""
        return UserResponseDTO(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
            last_login=user.last_login,
        )
