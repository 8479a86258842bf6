"""
工具函数模块
"""

import secrets
import uuid
from typing import Optional


def generate_token(length: int = 32) -> str:
    """
    生成随机 Token

    Args:
        length: 随机字节数

    Returns:
        URL 安全的随机字符串
    """
    return secrets.token_urlsafe(length)


def new_id() -> str:
    """生成记录 ID"""
    return uuid.uuid4().hex


def mask_key(api_key: Optional[str]) -> Optional[str]:
    """截断凭据用于日志和审计，只保留前 8 位"""
    if not api_key:
        return None
    return api_key[:8] + "..."
