"""
错误上报器

相同 (type, message) 的错误在冷却时间内只上报一次。
"""

import hashlib
import logging
import time
from typing import Any, Callable, Dict, Optional

from .client import CollectorClient
from .errors import TransportError

logger = logging.getLogger(__name__)


class ErrorReporter:
    """带去重的错误上报器"""

    def __init__(
        self,
        client: CollectorClient,
        cooldown: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.cooldown = cooldown
        self._clock = clock
        self._last_reported: Dict[str, float] = {}

    @staticmethod
    def fingerprint(error_type: str, message: str) -> str:
        return hashlib.md5(f"{error_type}:{message}".encode("utf-8")).hexdigest()

    async def report(
        self,
        error_type: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        上报错误

        上报失败只记录日志，不影响心跳的失败计数。

        Returns:
            是否实际发送成功
        """
        key = self.fingerprint(error_type, message)
        now = self._clock()

        last = self._last_reported.get(key)
        if last is not None and now - last < self.cooldown:
            logger.debug(f"Suppressed duplicate error report: {error_type} - {message}")
            return False

        try:
            await self.client.report_error(error_type, message, details)
        except TransportError as e:
            logger.warning(f"Failed to report error '{message}': {e}")
            return False

        self._last_reported[key] = now
        logger.info(f"Error reported: {error_type} - {message}")
        return True
