"""
业务逻辑层

处理注册握手、心跳、错误/应用上报，以及读取时的在线状态修正。
只抛出 errors 模块中定义的领域异常，不直接依赖 HTTP。
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from .errors import Conflict, NotFound, Unauthorized, ValidationError
from .liveness import reconcile, utc_now
from .models import (
    AppRecord,
    AppsStatusRequest,
    AuditEntry,
    DashboardSettings,
    ErrorRecord,
    ErrorReportRequest,
    HeartbeatRequest,
    PCRecord,
    RegisterRequest,
    SettingsUpdate,
    Status,
)
from .storage import Store
from .utils import generate_token, mask_key, new_id

logger = logging.getLogger(__name__)


class FleetService:
    """中心节点业务服务"""

    def __init__(
        self,
        store: Store,
        offline_after: timedelta = timedelta(seconds=120),
        unique_names: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            store: 存储实现
            offline_after: 超过该时长无心跳即视为离线
            unique_names: 注册时是否拒绝重复名称
            clock: 时间来源（测试时可替换）
        """
        self.store = store
        self.offline_after = offline_after
        self.unique_names = unique_names
        self.clock = clock

    # =========================================================================
    # 注册握手
    # =========================================================================

    async def register(
        self, request: RegisterRequest, api_key: Optional[str] = None
    ) -> Tuple[PCRecord, bool]:
        """
        注册机器

        携带已知 id 的重注册必须出示该机器当前的凭据。

        Args:
            request: 注册请求
            api_key: 请求头中的 Bearer 凭据（可选）

        Returns:
            (机器记录, 是否新建)

        Raises:
            ValidationError: 名称为空
            Unauthorized: 重注册时凭据缺失或不匹配
            Conflict: 启用唯一名称策略且名称已被其他机器占用
        """
        name = request.name.strip()
        if not name:
            raise ValidationError("PC name is required")

        now = self.clock()

        # 已知 ID 的重注册：只刷新 last_seen 和元数据
        if request.id:
            existing = await self.store.get_pc(request.id)
            if existing is not None:
                # 已吊销的机器不能通过重注册取回凭据
                if existing.api_key is None:
                    raise NotFound(f"PC {existing.id} has been revoked")
                if api_key != existing.api_key:
                    raise Unauthorized(f"API key required to re-register PC {existing.id}")
                if self.unique_names:
                    await self._check_name_free(name, exclude_id=existing.id)
                record = await self.store.touch_pc(existing.id, name, now)
                if record is None:
                    raise NotFound(f"PC {request.id} not found")
                logger.info(f"PC re-registered: {name} ({record.id})")
                return record, False

        if self.unique_names:
            await self._check_name_free(name)

        record = PCRecord(
            id=new_id(),
            name=name,
            api_key=generate_token(),
            status=Status.ONLINE,
            last_seen=now,
            registered_at=now,
            updated_at=now,
        )
        await self.store.create_pc(record)
        logger.info(f"PC registered: {name} ({record.id})")
        return record, True

    async def _check_name_free(self, name: str, exclude_id: Optional[str] = None):
        existing = await self.store.get_pc_by_name(name)
        if existing is not None and existing.id != exclude_id:
            raise Conflict(f"PC name '{name}' already exists")

    # =========================================================================
    # Agent 上报
    # =========================================================================

    async def authenticate(self, api_key: str) -> PCRecord:
        """根据凭据定位机器，未知或已吊销时抛出 NotFound"""
        record = await self.store.get_pc_by_key(api_key)
        if record is None:
            raise NotFound("PC not found for API key")
        return record

    async def heartbeat(self, api_key: str, request: HeartbeatRequest) -> PCRecord:
        """
        处理心跳

        无条件置为 ONLINE 并刷新 last_seen（后写者胜出，不做陈旧检查）。
        """
        fields = {
            "cpu": request.cpu,
            "memory": request.memory,
            "uptime": request.uptime,
            "platform": request.platform,
            "os": request.os,
            "reported_status": request.status,
        }
        record = await self.store.apply_heartbeat(api_key, fields, self.clock())
        if record is None:
            raise NotFound("PC not found for API key")

        logger.debug(f"Heartbeat received for PC {record.name}: cpu={record.cpu} memory={record.memory}")
        return record

    async def report_error(self, api_key: str, request: ErrorReportRequest) -> ErrorRecord:
        """追加错误记录"""
        if not request.type.strip() or not request.message.strip():
            raise ValidationError("Error type and message are required")

        pc = await self.authenticate(api_key)
        record = ErrorRecord(
            id=new_id(),
            pc_id=pc.id,
            pc_name=pc.name,
            type=request.type.strip().upper(),
            message=request.message,
            details=request.details,
            timestamp=self.clock(),
        )
        await self.store.add_error(record)

        logger.warning(f"Error reported for PC {pc.name}: {record.type} - {record.message}")
        return record

    async def update_apps(self, api_key: str, request: AppsStatusRequest) -> Tuple[PCRecord, int, datetime]:
        """整体替换应用清单"""
        pc = await self.authenticate(api_key)
        now = self.clock()
        apps = [
            AppRecord(pc_id=pc.id, pc_name=pc.name, last_updated=now, **app.model_dump())
            for app in request.applications
        ]
        count = await self.store.replace_apps(pc.id, apps)

        logger.info(f"Apps updated for PC {pc.name}: {count} applications")
        return pc, count, now

    # =========================================================================
    # 读取与状态修正
    # =========================================================================

    async def _reconcile(self, record: PCRecord) -> Tuple[PCRecord, bool]:
        """
        修正单条记录的状态

        Returns:
            (修正后的记录, 本次是否写入了 OFFLINE)
        """
        updated, transitioned = reconcile(record, self.clock(), self.offline_after)
        if not transitioned:
            return updated, False

        # 比较并设置：并发心跳已刷新 last_seen 时不覆盖
        persisted = await self.store.mark_offline(record.id, record.last_seen)
        if persisted:
            logger.warning(f"PC {record.name} ({record.id}) went offline, last seen {record.last_seen}")
        return updated, persisted

    async def list_pcs(self) -> List[PCRecord]:
        """获取所有机器（状态已按 last_seen 修正）"""
        return [(await self._reconcile(record))[0] for record in await self.store.list_pcs()]

    async def get_pc(self, pc_id: str) -> PCRecord:
        record = await self.store.get_pc(pc_id)
        if record is None:
            raise NotFound(f"PC {pc_id} not found")
        updated, _ = await self._reconcile(record)
        return updated

    async def sweep(self) -> int:
        """
        后台巡检：对所有记录做一次状态修正

        Returns:
            本次实际写入 OFFLINE 的数量
        """
        count = 0
        for record in await self.store.list_pcs():
            _, persisted = await self._reconcile(record)
            if persisted:
                count += 1
        return count

    async def list_errors(self, pc_id: Optional[str] = None, limit: int = 50) -> Tuple[List[ErrorRecord], int]:
        return await self.store.list_errors(pc_id=pc_id, limit=limit)

    async def resolve_error(self, error_id: str) -> ErrorRecord:
        record = await self.store.resolve_error(error_id, self.clock())
        if record is None:
            raise NotFound(f"Error {error_id} not found")
        logger.info(f"Error resolved: {error_id}")
        return record

    async def list_apps(self, pc_id: Optional[str] = None, limit: int = 100) -> Tuple[List[AppRecord], int]:
        return await self.store.list_apps(pc_id=pc_id, limit=limit)

    # =========================================================================
    # 设置
    # =========================================================================

    async def get_settings(self) -> DashboardSettings:
        """获取设置，未保存过时返回默认值"""
        settings = await self.store.get_settings()
        return settings if settings is not None else DashboardSettings()

    async def save_settings(self, update: SettingsUpdate) -> DashboardSettings:
        settings = DashboardSettings(updated_at=self.clock(), **update.model_dump())
        await self.store.save_settings(settings)
        logger.info(f"Settings updated: {update.model_dump()}")
        return settings

    # =========================================================================
    # 凭据管理
    # =========================================================================

    async def regenerate_key(self, pc_id: str) -> PCRecord:
        """生成新凭据，旧凭据立即失效"""
        now = self.clock()
        previous = await self.store.get_pc(pc_id)
        if previous is None:
            raise NotFound(f"PC {pc_id} not found")

        record = await self.store.rotate_key(pc_id, generate_token(), now)
        if record is None:
            raise NotFound(f"PC {pc_id} not found")

        await self.store.add_audit(AuditEntry(
            action="regenerate",
            pc_id=record.id,
            pc_name=record.name,
            key_prefix=mask_key(previous.api_key),
            timestamp=now,
        ))
        logger.info(f"API key regenerated for PC {record.name}")
        return record

    async def revoke_key(self, pc_id: str) -> PCRecord:
        """吊销凭据，之后该机器的心跳返回 NotFound"""
        now = self.clock()
        previous = await self.store.get_pc(pc_id)
        if previous is None:
            raise NotFound(f"PC {pc_id} not found")

        record = await self.store.revoke_key(pc_id, now)
        if record is None:
            raise NotFound(f"PC {pc_id} not found")

        await self.store.add_audit(AuditEntry(
            action="revoke",
            pc_id=record.id,
            pc_name=record.name,
            key_prefix=mask_key(previous.api_key),
            timestamp=now,
        ))
        logger.warning(f"API key revoked for PC {record.name}")
        return record

    async def list_audit(self, limit: int = 100) -> Tuple[List[AuditEntry], int]:
        return await self.store.list_audit(limit=limit)
