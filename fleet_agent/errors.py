"""
Agent 异常定义
"""

from typing import Optional


class AgentError(Exception):
    """Agent 异常基类"""


class TransportError(AgentError):
    """
    与中心节点通信失败

    包括网络错误、超时和非 2xx 响应。非 2xx 时 status_code 为响应状态码。
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RegistrationError(AgentError):
    """注册握手失败，Agent 不会启动任何循环"""


class ReconnectFailed(AgentError):
    """重连次数用尽"""

    def __init__(self, attempts: int):
        super().__init__(f"Reconnect failed after {attempts} attempts")
        self.attempts = attempts
