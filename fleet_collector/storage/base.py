"""
存储接口

服务层只依赖这里定义的抽象接口，具体实现可以是内存或 SQLite。
每个操作只涉及一条机器记录，不存在跨记录事务。
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..models import AppRecord, AuditEntry, DashboardSettings, ErrorRecord, PCRecord


class Store(ABC):
    """存储抽象基类"""

    # =========================================================================
    # 机器记录
    # =========================================================================

    @abstractmethod
    async def create_pc(self, record: PCRecord) -> PCRecord:
        """新建机器记录"""

    @abstractmethod
    async def get_pc(self, pc_id: str) -> Optional[PCRecord]:
        """根据 ID 获取机器记录"""

    @abstractmethod
    async def get_pc_by_key(self, api_key: str) -> Optional[PCRecord]:
        """根据凭据获取机器记录"""

    @abstractmethod
    async def get_pc_by_name(self, name: str) -> Optional[PCRecord]:
        """根据名称获取机器记录"""

    @abstractmethod
    async def list_pcs(self) -> List[PCRecord]:
        """获取所有机器记录（按最后心跳时间倒序）"""

    @abstractmethod
    async def touch_pc(self, pc_id: str, name: str, now: datetime) -> Optional[PCRecord]:
        """重注册：更新名称和 last_seen，状态置为 ONLINE"""

    @abstractmethod
    async def apply_heartbeat(
        self, api_key: str, fields: Dict[str, Any], now: datetime
    ) -> Optional[PCRecord]:
        """
        按凭据定位记录并写入心跳数据

        查找和更新在同一步内完成，凭据未知时返回 None。
        """

    @abstractmethod
    async def mark_offline(self, pc_id: str, last_seen: Optional[datetime]) -> bool:
        """
        惰性状态修正：仅当记录仍为 ONLINE 且 last_seen 未变化时置为 OFFLINE

        Returns:
            是否发生了修改
        """

    @abstractmethod
    async def rotate_key(self, pc_id: str, new_key: str, now: datetime) -> Optional[PCRecord]:
        """原子替换凭据，旧凭据立即失效"""

    @abstractmethod
    async def revoke_key(self, pc_id: str, now: datetime) -> Optional[PCRecord]:
        """吊销凭据"""

    # =========================================================================
    # 错误记录
    # =========================================================================

    @abstractmethod
    async def add_error(self, record: ErrorRecord) -> ErrorRecord:
        """追加错误记录"""

    @abstractmethod
    async def list_errors(self, pc_id: Optional[str] = None, limit: int = 50) -> Tuple[List[ErrorRecord], int]:
        """获取错误记录（按时间倒序），返回 (记录列表, 总数)"""

    @abstractmethod
    async def resolve_error(self, error_id: str, now: datetime) -> Optional[ErrorRecord]:
        """标记已解决；已解决的记录保持原 resolved_at"""

    # =========================================================================
    # 应用清单
    # =========================================================================

    @abstractmethod
    async def replace_apps(self, pc_id: str, apps: List[AppRecord]) -> int:
        """整体替换某台机器的应用清单，返回写入数量"""

    @abstractmethod
    async def list_apps(self, pc_id: Optional[str] = None, limit: int = 100) -> Tuple[List[AppRecord], int]:
        """获取应用清单（按更新时间倒序），返回 (记录列表, 总数)"""

    # =========================================================================
    # 设置 / 审计
    # =========================================================================

    @abstractmethod
    async def get_settings(self) -> Optional[DashboardSettings]:
        """获取已保存的设置，未保存时返回 None"""

    @abstractmethod
    async def save_settings(self, settings: DashboardSettings) -> DashboardSettings:
        """整体替换设置"""

    @abstractmethod
    async def add_audit(self, entry: AuditEntry):
        """追加审计记录"""

    @abstractmethod
    async def list_audit(self, limit: int = 100) -> Tuple[List[AuditEntry], int]:
        """获取最近的审计记录（按时间正序），返回 (记录列表, 总数)"""
