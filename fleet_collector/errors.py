"""
错误类型定义

服务层抛出领域异常，由 API 层统一转换为 HTTP 响应。
"""

from fastapi import status


class FleetError(Exception):
    """所有领域异常的基类"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FleetError):
    """请求字段缺失或格式错误（在修改状态前拒绝）"""

    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(FleetError):
    """缺少或不匹配的凭据"""

    status_code = status.HTTP_401_UNAUTHORIZED


class NotFound(FleetError):
    """未知的凭据或机器标识"""

    status_code = status.HTTP_404_NOT_FOUND


class Conflict(FleetError):
    """名称重复（启用唯一名称策略时）"""

    status_code = status.HTTP_409_CONFLICT


class UpstreamUnavailable(FleetError):
    """存储后端不可用"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
