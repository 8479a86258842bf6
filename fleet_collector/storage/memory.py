"""
内存存储

进程重启后数据丢失，用于测试和单机演示。
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..models import AppRecord, AuditEntry, DashboardSettings, ErrorRecord, PCRecord, Status
from .base import Store


def _sort_by_last_seen(records: List[PCRecord]) -> List[PCRecord]:
    # 从未心跳的记录排在最后
    return sorted(
        records,
        key=lambda r: (r.last_seen is not None, r.last_seen or r.registered_at),
        reverse=True,
    )


class MemoryStore(Store):
    """
    内存存储实现

    管理：
    - pcs: {pc_id: PCRecord}
    - key_index: {api_key: pc_id}，凭据到记录的索引
    - errors: 错误记录列表（追加）
    - apps: {pc_id: [AppRecord, ...]}
    """

    def __init__(self):
        self._pcs: Dict[str, PCRecord] = {}
        self._key_index: Dict[str, str] = {}
        self._errors: List[ErrorRecord] = []
        self._apps: Dict[str, List[AppRecord]] = defaultdict(list)
        self._settings: Optional[DashboardSettings] = None
        self._audit: List[AuditEntry] = []

        self._lock = asyncio.Lock()

    async def create_pc(self, record: PCRecord) -> PCRecord:
        async with self._lock:
            self._pcs[record.id] = record
            if record.api_key:
                self._key_index[record.api_key] = record.id
            return record

    async def get_pc(self, pc_id: str) -> Optional[PCRecord]:
        async with self._lock:
            return self._pcs.get(pc_id)

    async def get_pc_by_key(self, api_key: str) -> Optional[PCRecord]:
        async with self._lock:
            pc_id = self._key_index.get(api_key)
            return self._pcs.get(pc_id) if pc_id else None

    async def get_pc_by_name(self, name: str) -> Optional[PCRecord]:
        async with self._lock:
            for record in self._pcs.values():
                if record.name == name:
                    return record
            return None

    async def list_pcs(self) -> List[PCRecord]:
        async with self._lock:
            return _sort_by_last_seen(list(self._pcs.values()))

    async def touch_pc(self, pc_id: str, name: str, now: datetime) -> Optional[PCRecord]:
        async with self._lock:
            record = self._pcs.get(pc_id)
            if record is None:
                return None
            record = record.model_copy(update={
                "name": name,
                "last_seen": now,
                "status": Status.ONLINE,
                "updated_at": now,
            })
            self._pcs[pc_id] = record
            return record

    async def apply_heartbeat(
        self, api_key: str, fields: Dict[str, Any], now: datetime
    ) -> Optional[PCRecord]:
        async with self._lock:
            pc_id = self._key_index.get(api_key)
            if pc_id is None:
                return None
            update = dict(fields)
            update.update({"last_seen": now, "status": Status.ONLINE, "updated_at": now})
            record = self._pcs[pc_id].model_copy(update=update)
            self._pcs[pc_id] = record
            return record

    async def mark_offline(self, pc_id: str, last_seen: Optional[datetime]) -> bool:
        async with self._lock:
            record = self._pcs.get(pc_id)
            if record is None or record.status != Status.ONLINE or record.last_seen != last_seen:
                return False
            self._pcs[pc_id] = record.model_copy(update={"status": Status.OFFLINE})
            return True

    async def rotate_key(self, pc_id: str, new_key: str, now: datetime) -> Optional[PCRecord]:
        async with self._lock:
            record = self._pcs.get(pc_id)
            if record is None:
                return None
            if record.api_key:
                self._key_index.pop(record.api_key, None)
            self._key_index[new_key] = pc_id
            record = record.model_copy(update={"api_key": new_key, "updated_at": now})
            self._pcs[pc_id] = record
            return record

    async def revoke_key(self, pc_id: str, now: datetime) -> Optional[PCRecord]:
        async with self._lock:
            record = self._pcs.get(pc_id)
            if record is None:
                return None
            if record.api_key:
                self._key_index.pop(record.api_key, None)
            record = record.model_copy(update={"api_key": None, "updated_at": now})
            self._pcs[pc_id] = record
            return record

    async def add_error(self, record: ErrorRecord) -> ErrorRecord:
        async with self._lock:
            self._errors.append(record)
            return record

    async def list_errors(self, pc_id: Optional[str] = None, limit: int = 50) -> Tuple[List[ErrorRecord], int]:
        async with self._lock:
            matched = [e for e in self._errors if pc_id is None or e.pc_id == pc_id]
            matched.sort(key=lambda e: e.timestamp, reverse=True)
            return matched[:limit], len(matched)

    async def resolve_error(self, error_id: str, now: datetime) -> Optional[ErrorRecord]:
        async with self._lock:
            for index, record in enumerate(self._errors):
                if record.id != error_id:
                    continue
                if record.resolved:
                    return record
                record = record.model_copy(update={"resolved": True, "resolved_at": now})
                self._errors[index] = record
                return record
            return None

    async def replace_apps(self, pc_id: str, apps: List[AppRecord]) -> int:
        async with self._lock:
            self._apps[pc_id] = list(apps)
            return len(apps)

    async def list_apps(self, pc_id: Optional[str] = None, limit: int = 100) -> Tuple[List[AppRecord], int]:
        async with self._lock:
            if pc_id is not None:
                matched = list(self._apps.get(pc_id, []))
            else:
                matched = [app for apps in self._apps.values() for app in apps]
            matched.sort(key=lambda a: a.last_updated, reverse=True)
            return matched[:limit], len(matched)

    async def get_settings(self) -> Optional[DashboardSettings]:
        async with self._lock:
            return self._settings

    async def save_settings(self, settings: DashboardSettings) -> DashboardSettings:
        async with self._lock:
            self._settings = settings
            return settings

    async def add_audit(self, entry: AuditEntry):
        async with self._lock:
            self._audit.append(entry)

    async def list_audit(self, limit: int = 100) -> Tuple[List[AuditEntry], int]:
        async with self._lock:
            return list(self._audit[-limit:]), len(self._audit)
