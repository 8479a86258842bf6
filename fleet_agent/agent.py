"""
Agent 主体

启动流程：
1. 重连探测（/api/health）
2. 注册握手（已有凭据时跳过）
3. 心跳循环与应用清单循环并发运行

每个周期独立启动一个任务，慢请求不会推迟下一次调度。
心跳连续失败达到上限后停止所有循环（fail-stop）。
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .client import CollectorClient
from .collectors import collect_applications, collect_system_metrics
from .config import AgentConfig, save_config
from .errors import RegistrationError, TransportError
from .reporter import ErrorReporter
from .retry import Reconnector, RetryPolicy

logger = logging.getLogger(__name__)

MetricsCollector = Callable[[], Awaitable[Dict[str, Any]]]
AppsCollector = Callable[[int], Awaitable[List[Dict[str, Any]]]]


class FleetAgent:
    """被监控主机上运行的 Agent"""

    def __init__(
        self,
        config: AgentConfig,
        client: Optional[CollectorClient] = None,
        config_path: Optional[str] = None,
        collect_metrics: MetricsCollector = collect_system_metrics,
        collect_apps: AppsCollector = collect_applications,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            config: Agent 配置
            client: Collector 客户端，默认按配置创建
            config_path: 注册成功后凭据写回的配置文件
            collect_metrics: 系统指标采集函数
            collect_apps: 进程清单采集函数
            sleep: 重连等待函数
        """
        self.config = config
        self.config_path = config_path
        self.client = client or CollectorClient(
            config.server_url,
            api_key=config.api_key,
            timeout=config.request_timeout,
        )
        if config.api_key and not self.client.api_key:
            self.client.api_key = config.api_key

        self.policy = RetryPolicy(
            max_attempts=config.max_failures,
            backoff=config.retry_backoff,
            delay=config.retry_delay,
        )
        self.reconnector = Reconnector(self.client, self.policy, sleep=sleep)
        self.reporter = ErrorReporter(self.client, cooldown=config.error_cooldown)

        self._collect_metrics = collect_metrics
        self._collect_apps = collect_apps

        self.failures = 0
        self.stopped = False
        self.stop_reason: Optional[str] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: Set[asyncio.Task] = set()

    # =========================================================================
    # 注册
    # =========================================================================

    async def ensure_registered(self):
        """
        确保持有凭据

        已持久化的凭据直接使用；否则执行注册握手并写回配置文件。

        Raises:
            RegistrationError: 注册失败
        """
        if self.config.registered:
            self.client.api_key = self.config.api_key
            logger.info(f"Using saved credentials for PC {self.config.pc_name} ({self.config.pc_id})")
            return

        try:
            data = await self.client.register(self.config.pc_name, pc_id=self.config.pc_id)
        except (TransportError, KeyError) as e:
            raise RegistrationError(f"Registration failed: {e}") from e

        self.config.pc_id = data["id"]
        self.config.api_key = data["apiKey"]
        logger.info(f"Registered as {data['name']} ({data['id']})")

        try:
            path = save_config(self.config, self.config_path)
            logger.info(f"Credentials saved to {path}")
        except OSError as e:
            logger.warning(f"Failed to save credentials: {e}")

    # =========================================================================
    # 周期任务
    # =========================================================================

    async def send_heartbeat(self) -> bool:
        """
        发送一次心跳

        成功时清零连续失败计数；指标采集失败或请求失败时加一，
        达到上限即停止 Agent。

        Returns:
            是否成功
        """
        if self.stopped:
            return False

        try:
            metrics = await self._collect_metrics()
        except Exception as e:
            self._record_failure(f"Metrics collection failed: {e!r}")
            return False

        cpu = metrics.get("cpu", 0.0)
        payload = dict(metrics)
        payload["status"] = "WAITING" if cpu > self.config.cpu_alert_threshold else "ONLINE"

        # 采集期间可能已停止
        if self.stopped:
            return False

        try:
            await self.client.heartbeat(payload)
        except TransportError as e:
            self._record_failure(f"Heartbeat failed: {e}")
            return False

        if self.failures:
            logger.info(f"Heartbeat recovered after {self.failures} failure(s)")
        self.failures = 0

        await self._check_thresholds(metrics)
        return True

    def _record_failure(self, reason: str):
        self.failures += 1
        logger.warning(f"{reason} ({self.failures}/{self.policy.max_attempts})")
        if self.policy.exhausted(self.failures):
            self.stop(f"{self.failures} consecutive heartbeat failures")

    async def _check_thresholds(self, metrics: Dict[str, Any]):
        """CPU / 内存超过阈值时上报 WARNING"""
        cpu = metrics.get("cpu", 0.0)
        memory = metrics.get("memory", 0.0)

        if cpu > self.config.cpu_alert_threshold:
            await self.reporter.report(
                "WARNING",
                "High CPU usage",
                {"cpu": cpu, "threshold": self.config.cpu_alert_threshold},
            )
        if memory > self.config.memory_alert_threshold:
            await self.reporter.report(
                "WARNING",
                "High memory usage",
                {"memory": memory, "threshold": self.config.memory_alert_threshold},
            )

    async def send_apps_status(self) -> bool:
        """
        上报一次应用清单

        失败只记录日志，不计入心跳失败次数。
        """
        if self.stopped:
            return False

        applications = await self._collect_apps(self.config.max_apps)
        try:
            data = await self.client.apps_status(applications, timeout=self.config.apps_timeout)
        except TransportError as e:
            logger.warning(f"Apps status report failed: {e}")
            return False

        logger.debug(f"Apps status reported: {data.get('appsUpdated')} applications")
        return True

    def _spawn(self, tick: Callable[[], Awaitable[bool]]):
        task = asyncio.create_task(tick())
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Periodic task failed: {task.exception()!r}")

    async def _run_periodic(self, interval: float, tick: Callable[[], Awaitable[bool]]):
        """固定周期调度，首次立即执行"""
        while not self.stopped:
            self._spawn(tick)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    # =========================================================================
    # 生命周期
    # =========================================================================

    def stop(self, reason: str = "stop requested"):
        """停止所有循环"""
        if self.stopped:
            return
        self.stopped = True
        self.stop_reason = reason
        logger.warning(f"Agent stopping: {reason}")
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self):
        """
        运行 Agent，直到 fail-stop 或被取消

        Raises:
            ReconnectFailed: Collector 不可达
            RegistrationError: 注册失败
        """
        self._stop_event = asyncio.Event()
        if self.stopped:
            return

        await self.reconnector.run()
        await self.ensure_registered()

        logger.info(
            f"Agent started: heartbeat every {self.config.heartbeat_interval}s, "
            f"apps every {self.config.apps_check_interval}s"
        )

        try:
            await asyncio.gather(
                self._run_periodic(self.config.heartbeat_interval, self.send_heartbeat),
                self._run_periodic(self.config.apps_check_interval, self.send_apps_status),
            )
        finally:
            # 取消尚未完成的周期任务
            pending = list(self._tasks)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
