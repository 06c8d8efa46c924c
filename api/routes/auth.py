"""
认证API路由 - 登录、刷新、登出、授权检查
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from application.services.auth_service import AuthenticationService
from application.services.token_service import TokenRotationService
from application.dto import (
    AuthorizationContextDTO,
    AuthorizationResultDTO,
    ChangePasswordDTO,
    LoginDTO,
    LoginResponseDTO,
    LogoutResponseDTO,
    RefreshTokenDTO,
    SessionDTO,
    TokenPairDTO,
)
from api.dependencies import (
    get_auth_service,
    get_client_context,
    get_current_user_id,
    get_token_service,
)
from core.response import success_response, Response as ApiResponse

router = APIRouter(
    prefix="/auth",
    tags=["认证"]
)


@router.post("/login", summary="用户登录", response_model=ApiResponse[LoginResponseDTO])
async def login(
    body: LoginDTO,
    client: tuple = Depends(get_client_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    """
    邮箱 + 密码登录，返回访问令牌与新家族的刷新令牌

    凭据错误时无论用户是否存在都返回同一错误。
    """
    ip_address, user_agent = client
    result = await service.login(body.email, body.password, ip_address, user_agent)
    return success_response(data=result.unwrap(), message="Login successful")


@router.post("/refresh", summary="刷新访问令牌", response_model=ApiResponse[TokenPairDTO])
async def refresh(
    body: RefreshTokenDTO,
    client: tuple = Depends(get_client_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    """
    使用刷新令牌换取新的令牌对

    - 旧刷新令牌立即失效，返回同一家族的新刷新令牌
    - 已使用过的刷新令牌再次出现时撤销整个令牌家族
    """
    ip_address, user_agent = client
    result = await service.refresh(body.refresh_token, ip_address, user_agent)
    return success_response(data=result.unwrap(), message="Token refreshed")


@router.post("/logout", summary="登出（撤销所有刷新令牌）", response_model=ApiResponse[LogoutResponseDTO])
async def logout(
    user_id: str = Depends(get_current_user_id),
    service: AuthenticationService = Depends(get_auth_service),
):
    result = await service.logout(user_id)
    return success_response(data=result.unwrap(), message="Logged out")


@router.get("/authorize", summary="权限检查", response_model=ApiResponse[AuthorizationResultDTO])
async def authorize(
    resource: str = Query(..., min_length=1, max_length=100),
    action: str = Query(..., min_length=1, max_length=50),
    user_id: str = Depends(get_current_user_id),
    service: AuthenticationService = Depends(get_auth_service),
):
    return success_response(data=await service.authorize(user_id, resource, action))


@router.get("/context", summary="当前用户的角色与权限", response_model=ApiResponse[AuthorizationContextDTO])
async def authorization_context(
    user_id: str = Depends(get_current_user_id),
    service: AuthenticationService = Depends(get_auth_service),
):
    result = await service.get_authorization_context(user_id)
    return success_response(data=result.unwrap())


@router.get("/sessions", summary="活跃登录会话", response_model=ApiResponse[List[SessionDTO]])
async def sessions(
    user_id: str = Depends(get_current_user_id),
    token_service: TokenRotationService = Depends(get_token_service),
):
    """每个令牌家族返回最新的活跃令牌信息（不含令牌值）"""
    tokens = await token_service.get_active_sessions(user_id)
    data = [
        SessionDTO(
            family=t.family,
            rotation_count=t.rotation_count,
            created_at=t.created_at,
            expires_at=t.expires_at,
            ip_address=t.ip_address,
            user_agent=t.user_agent,
        )
        for t in tokens
    ]
    return success_response(data=data)


@router.post("/change-password", summary="修改密码", response_model=ApiResponse[LogoutResponseDTO])
async def change_password(
    body: ChangePasswordDTO,
    user_id: str = Depends(get_current_user_id),
    service: AuthenticationService = Depends(get_auth_service),
):
    """修改密码成功后，该用户所有设备上的刷新令牌均被撤销"""
    result = await service.change_password(user_id, body.old_password, body.new_password)
    return success_response(data=result.unwrap(), message="Password changed")
