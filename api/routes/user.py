"""
用户API路由 - FastAPI表现层
"""
from fastapi import APIRouter, Depends

from application.services.user_service import UserApplicationService
from application.dto import UserCreateDTO, UserResponseDTO
from api.dependencies import (
    get_current_user_id,
    get_user_service,
    require_permission,
)
from core.response import success_response, Response as ApiResponse

router = APIRouter(
    prefix="/users",
    tags=["用户管理"]
)


@router.post("/register", summary="用户注册", response_model=ApiResponse[UserResponseDTO])
async def register(
    user_data: UserCreateDTO,
    service: UserApplicationService = Depends(get_user_service)
):
    """
    注册新用户

    - **email**: 邮箱地址
    - **password**: 密码（至少8位，包含大小写字母和数字）
    - **full_name**: 全名（可选）
    """
    user = await service.register_user(user_data)
    return success_response(data=user, message="User registered")


@router.get("/me", summary="获取当前用户信息", response_model=ApiResponse[UserResponseDTO])
async def get_current_user_info(
    user_id: str = Depends(get_current_user_id),
    service: UserApplicationService = Depends(get_user_service)
):
    return success_response(data=await service.get_user(user_id))


@router.post("/{user_id}/deactivate", summary="停用用户", response_model=ApiResponse[UserResponseDTO])
async def deactivate_user(
    user_id: str,
    _: str = Depends(require_permission("user", "update")),
    service: UserApplicationService = Depends(get_user_service)
):
    """停用用户并撤销其全部刷新令牌"""
    user = await service.deactivate_user(user_id)
    return success_response(data=user, message="User deactivated")


@router.post("/{user_id}/activate", summary="激活用户", response_model=ApiResponse[UserResponseDTO])
async def activate_user(
    user_id: str,
    _: str = Depends(require_permission("user", "update")),
    service: UserApplicationService = Depends(get_user_service)
):
    user = await service.activate_user(user_id)
    return success_response(data=user, message="User activated")
