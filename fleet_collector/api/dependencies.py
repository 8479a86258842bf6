"""
依赖注入模块

提供 FastAPI 依赖项。
"""

from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ..config import DEFAULT_ADMIN_TOKEN, get_config
from ..service import FleetService
from ..storage import Store, get_store as _get_global_store


async def get_store() -> Store:
    """获取存储实例"""
    return _get_global_store()


async def get_service(store: Store = Depends(get_store)) -> FleetService:
    """按当前配置构造业务服务"""
    config = get_config()
    return FleetService(
        store,
        offline_after=timedelta(seconds=config.liveness.offline_after_seconds),
        unique_names=config.registration.unique_names,
    )


async def get_api_key(authorization: Optional[str] = Header(None)) -> str:
    """
    解析 Agent 凭据

    Args:
        authorization: Authorization 头，格式为 "Bearer <apiKey>"

    Returns:
        凭据字符串（是否有效由服务层判断）

    Raises:
        HTTPException: 缺少或格式错误时抛出 401
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return parts[1]


async def get_optional_api_key(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """可选凭据：未携带时返回 None，格式错误仍返回 401"""
    if not authorization:
        return None
    return await get_api_key(authorization)


async def verify_admin_token(x_admin_token: Optional[str] = Header(None)):
    """
    验证管理员 Token

    用于保护凭据管理、设置修改等操作。
    """
    config = get_config()
    expected_token = config.api.admin_token

    # 如果配置为默认值，跳过验证（开发环境）
    if expected_token == DEFAULT_ADMIN_TOKEN:
        return

    if x_admin_token != expected_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token"
        )
