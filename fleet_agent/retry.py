"""
重试策略

心跳的连续失败上限和启动时的重连探测共用同一个 RetryPolicy。
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from .client import CollectorClient
from .errors import ReconnectFailed, TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    重试策略

    Attributes:
        max_attempts: 连续失败上限
        backoff: "fixed" 每次等待 delay；"linear" 第 n 次失败后等待 delay * n
        delay: 基础间隔（秒）
    """
    max_attempts: int = 5
    backoff: str = "linear"
    delay: float = 5.0

    def delay_for(self, attempt: int) -> float:
        """第 attempt 次失败后的等待时间（attempt 从 1 开始）"""
        if self.backoff == "linear":
            return self.delay * attempt
        return self.delay

    def exhausted(self, failures: int) -> bool:
        """连续失败次数是否已达上限"""
        return failures >= self.max_attempts


class Reconnector:
    """
    重连探测

    反复请求 /api/health 直到成功；次数用尽时抛出 ReconnectFailed，不再无限重试。
    """

    def __init__(
        self,
        client: CollectorClient,
        policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.policy = policy
        self._sleep = sleep

    async def run(self) -> int:
        """
        执行探测

        Returns:
            成功时所用的尝试次数

        Raises:
            ReconnectFailed: 所有尝试均失败
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                await self.client.health()
            except TransportError as e:
                if self.policy.exhausted(attempt):
                    logger.error(f"Collector unreachable after {attempt} attempts: {e}")
                    raise ReconnectFailed(attempt) from e

                delay = self.policy.delay_for(attempt)
                logger.warning(f"Collector unreachable (attempt {attempt}/{self.policy.max_attempts}), retrying in {delay}s: {e}")
                await self._sleep(delay)
                continue

            if attempt > 1:
                logger.info(f"Reconnected to collector after {attempt} attempts")
            return attempt
