"""
SQLite 存储

封装所有 SQLite 操作。每次操作使用一个短连接，首次创建时自动建表。
异步接口通过 asyncio.to_thread 在线程池中执行同步的 sqlite3 调用。
"""

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from ..errors import UpstreamUnavailable
from ..models import AppRecord, AuditEntry, DashboardSettings, ErrorRecord, PCRecord, Status
from .base import Store

logger = logging.getLogger(__name__)

T = TypeVar("T")


SCHEMA = """
CREATE TABLE IF NOT EXISTS pcs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    api_key TEXT UNIQUE,
    status TEXT NOT NULL,
    reported_status TEXT,
    cpu REAL DEFAULT 0,
    memory REAL DEFAULT 0,
    uptime REAL DEFAULT 0,
    platform TEXT,
    os TEXT,
    last_seen TEXT,
    registered_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS errors (
    id TEXT PRIMARY KEY,
    pc_id TEXT NOT NULL,
    pc_name TEXT NOT NULL,
    type TEXT NOT NULL,
    message TEXT NOT NULL,
    details TEXT,
    timestamp TEXT NOT NULL,
    resolved INTEGER DEFAULT 0,
    resolved_at TEXT
);

CREATE TABLE IF NOT EXISTS apps (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pc_id TEXT NOT NULL,
    pc_name TEXT NOT NULL,
    name TEXT NOT NULL,
    status TEXT NOT NULL,
    version TEXT,
    memory_usage TEXT,
    cpu_usage TEXT,
    pid INTEGER,
    command TEXT,
    last_updated TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS settings (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS key_audit (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    action TEXT NOT NULL,
    pc_id TEXT NOT NULL,
    pc_name TEXT NOT NULL,
    key_prefix TEXT,
    timestamp TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_pcs_last_seen ON pcs(last_seen DESC);
CREATE INDEX IF NOT EXISTS idx_errors_pc_ts ON errors(pc_id, timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_apps_pc ON apps(pc_id);
"""

PC_COLUMNS = (
    "id, name, api_key, status, reported_status, cpu, memory, uptime, "
    "platform, os, last_seen, registered_at, updated_at"
)

# 心跳允许写入的列
HEARTBEAT_FIELDS = ("cpu", "memory", "uptime", "platform", "os", "reported_status")


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_pc(row: sqlite3.Row) -> PCRecord:
    data = dict(row)
    data["status"] = Status(data["status"])
    data["last_seen"] = _parse_ts(data["last_seen"])
    data["registered_at"] = _parse_ts(data["registered_at"])
    data["updated_at"] = _parse_ts(data["updated_at"])
    return PCRecord(**data)


def _row_to_error(row: sqlite3.Row) -> ErrorRecord:
    data = dict(row)
    data["details"] = json.loads(data["details"]) if data["details"] else None
    data["resolved"] = bool(data["resolved"])
    data["timestamp"] = _parse_ts(data["timestamp"])
    data["resolved_at"] = _parse_ts(data["resolved_at"])
    return ErrorRecord(**data)


def _row_to_app(row: sqlite3.Row) -> AppRecord:
    data = dict(row)
    data.pop("id", None)
    data["last_updated"] = _parse_ts(data["last_updated"])
    return AppRecord(**data)


class SqliteStore(Store):
    """SQLite 存储实现"""

    def __init__(self, db_path: str, timeout: int = 30):
        """
        初始化数据库

        Args:
            db_path: 数据库文件路径，目录不存在时自动创建
            timeout: 连接锁等待超时（秒）
        """
        self.db_path = Path(db_path)
        self.timeout = timeout

        # 确保目录存在
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.get_conn() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def get_conn(self):
        """
        获取数据库连接（上下文管理器）

        使用方式：
            with store.get_conn() as conn:
                cursor = conn.execute("SELECT ...")

        sqlite3 的错误统一转换为 UpstreamUnavailable，事务回滚，不留下部分写入。
        """
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        except sqlite3.Error as e:
            raise UpstreamUnavailable(f"Database unavailable: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise UpstreamUnavailable(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetch_pc(self, conn: sqlite3.Connection, where: str, params: tuple) -> Optional[PCRecord]:
        cursor = conn.execute(f"SELECT {PC_COLUMNS} FROM pcs WHERE {where}", params)
        row = cursor.fetchone()
        return _row_to_pc(row) if row else None

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """在线程池中打开连接并执行 fn(conn)，不阻塞事件循环"""
        def _call():
            with self.get_conn() as conn:
                return fn(conn)

        return await asyncio.to_thread(_call)

    # =========================================================================
    # 机器记录
    # =========================================================================

    async def create_pc(self, record: PCRecord) -> PCRecord:
        def _insert(conn):
            conn.execute(f"""
                INSERT INTO pcs ({PC_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.id, record.name, record.api_key, record.status.value, record.reported_status,
                record.cpu, record.memory, record.uptime, record.platform, record.os,
                _ts(record.last_seen), _ts(record.registered_at), _ts(record.updated_at),
            ))

        await self._run(_insert)
        return record

    async def get_pc(self, pc_id: str) -> Optional[PCRecord]:
        return await self._run(lambda conn: self._fetch_pc(conn, "id = ?", (pc_id,)))

    async def get_pc_by_key(self, api_key: str) -> Optional[PCRecord]:
        return await self._run(lambda conn: self._fetch_pc(conn, "api_key = ?", (api_key,)))

    async def get_pc_by_name(self, name: str) -> Optional[PCRecord]:
        return await self._run(
            lambda conn: self._fetch_pc(conn, "name = ? ORDER BY registered_at LIMIT 1", (name,))
        )

    async def list_pcs(self) -> List[PCRecord]:
        def _select(conn):
            cursor = conn.execute(f"""
                SELECT {PC_COLUMNS} FROM pcs
                ORDER BY last_seen IS NULL, last_seen DESC, registered_at DESC
            """)
            return [_row_to_pc(row) for row in cursor.fetchall()]

        return await self._run(_select)

    async def touch_pc(self, pc_id: str, name: str, now: datetime) -> Optional[PCRecord]:
        def _update(conn):
            cursor = conn.execute("""
                UPDATE pcs SET name = ?, last_seen = ?, status = ?, updated_at = ?
                WHERE id = ?
            """, (name, _ts(now), Status.ONLINE.value, _ts(now), pc_id))
            if cursor.rowcount == 0:
                return None
            return self._fetch_pc(conn, "id = ?", (pc_id,))

        return await self._run(_update)

    async def apply_heartbeat(
        self, api_key: str, fields: Dict[str, Any], now: datetime
    ) -> Optional[PCRecord]:
        updates = []
        params: List[Any] = []
        for column in HEARTBEAT_FIELDS:
            if column in fields:
                updates.append(f"{column} = ?")
                params.append(fields[column])
        updates.extend(["last_seen = ?", "status = ?", "updated_at = ?"])
        params.extend([_ts(now), Status.ONLINE.value, _ts(now), api_key])

        def _update(conn):
            cursor = conn.execute(
                f"UPDATE pcs SET {', '.join(updates)} WHERE api_key = ?", params
            )
            if cursor.rowcount == 0:
                return None
            return self._fetch_pc(conn, "api_key = ?", (api_key,))

        return await self._run(_update)

    async def mark_offline(self, pc_id: str, last_seen: Optional[datetime]) -> bool:
        def _update(conn):
            cursor = conn.execute("""
                UPDATE pcs SET status = ?
                WHERE id = ? AND status = ? AND last_seen IS ?
            """, (Status.OFFLINE.value, pc_id, Status.ONLINE.value, _ts(last_seen)))
            return cursor.rowcount > 0

        return await self._run(_update)

    async def rotate_key(self, pc_id: str, new_key: str, now: datetime) -> Optional[PCRecord]:
        # 单条 UPDATE，旧凭据与新凭据不会同时有效
        def _update(conn):
            cursor = conn.execute(
                "UPDATE pcs SET api_key = ?, updated_at = ? WHERE id = ?",
                (new_key, _ts(now), pc_id),
            )
            if cursor.rowcount == 0:
                return None
            return self._fetch_pc(conn, "id = ?", (pc_id,))

        return await self._run(_update)

    async def revoke_key(self, pc_id: str, now: datetime) -> Optional[PCRecord]:
        def _update(conn):
            cursor = conn.execute(
                "UPDATE pcs SET api_key = NULL, updated_at = ? WHERE id = ?",
                (_ts(now), pc_id),
            )
            if cursor.rowcount == 0:
                return None
            return self._fetch_pc(conn, "id = ?", (pc_id,))

        return await self._run(_update)

    # =========================================================================
    # 错误记录
    # =========================================================================

    async def add_error(self, record: ErrorRecord) -> ErrorRecord:
        def _insert(conn):
            conn.execute("""
                INSERT INTO errors (id, pc_id, pc_name, type, message, details, timestamp, resolved, resolved_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.id, record.pc_id, record.pc_name, record.type, record.message,
                json.dumps(record.details) if record.details is not None else None,
                _ts(record.timestamp), 1 if record.resolved else 0, _ts(record.resolved_at),
            ))

        await self._run(_insert)
        return record

    async def list_errors(self, pc_id: Optional[str] = None, limit: int = 50) -> Tuple[List[ErrorRecord], int]:
        where = "WHERE pc_id = ?" if pc_id is not None else ""
        params: tuple = (pc_id,) if pc_id is not None else ()

        def _select(conn):
            total = conn.execute(f"SELECT COUNT(*) FROM errors {where}", params).fetchone()[0]
            cursor = conn.execute(f"""
                SELECT id, pc_id, pc_name, type, message, details, timestamp, resolved, resolved_at
                FROM errors {where}
                ORDER BY timestamp DESC
                LIMIT ?
            """, params + (limit,))
            return [_row_to_error(row) for row in cursor.fetchall()], total

        return await self._run(_select)

    async def resolve_error(self, error_id: str, now: datetime) -> Optional[ErrorRecord]:
        def _update(conn):
            conn.execute(
                "UPDATE errors SET resolved = 1, resolved_at = ? WHERE id = ? AND resolved = 0",
                (_ts(now), error_id),
            )
            cursor = conn.execute("""
                SELECT id, pc_id, pc_name, type, message, details, timestamp, resolved, resolved_at
                FROM errors WHERE id = ?
            """, (error_id,))
            row = cursor.fetchone()
            return _row_to_error(row) if row else None

        return await self._run(_update)

    # =========================================================================
    # 应用清单
    # =========================================================================

    async def replace_apps(self, pc_id: str, apps: List[AppRecord]) -> int:
        # 删除与插入在同一事务中完成
        def _replace(conn):
            conn.execute("DELETE FROM apps WHERE pc_id = ?", (pc_id,))
            conn.executemany("""
                INSERT INTO apps (pc_id, pc_name, name, status, version, memory_usage, cpu_usage, pid, command, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (
                    app.pc_id, app.pc_name, app.name, app.status, app.version,
                    app.memory_usage, app.cpu_usage, app.pid, app.command, _ts(app.last_updated),
                )
                for app in apps
            ])

        await self._run(_replace)
        return len(apps)

    async def list_apps(self, pc_id: Optional[str] = None, limit: int = 100) -> Tuple[List[AppRecord], int]:
        where = "WHERE pc_id = ?" if pc_id is not None else ""
        params: tuple = (pc_id,) if pc_id is not None else ()

        def _select(conn):
            total = conn.execute(f"SELECT COUNT(*) FROM apps {where}", params).fetchone()[0]
            cursor = conn.execute(f"""
                SELECT id, pc_id, pc_name, name, status, version, memory_usage, cpu_usage, pid, command, last_updated
                FROM apps {where}
                ORDER BY last_updated DESC, id ASC
                LIMIT ?
            """, params + (limit,))
            return [_row_to_app(row) for row in cursor.fetchall()], total

        return await self._run(_select)

    # =========================================================================
    # 设置 / 审计
    # =========================================================================

    async def get_settings(self) -> Optional[DashboardSettings]:
        def _select(conn):
            row = conn.execute("SELECT data FROM settings WHERE id = 1").fetchone()
            return DashboardSettings.model_validate_json(row["data"]) if row else None

        return await self._run(_select)

    async def save_settings(self, settings: DashboardSettings) -> DashboardSettings:
        await self._run(lambda conn: conn.execute(
            "INSERT OR REPLACE INTO settings (id, data) VALUES (1, ?)",
            (settings.model_dump_json(),),
        ))
        return settings

    async def add_audit(self, entry: AuditEntry):
        def _insert(conn):
            conn.execute("""
                INSERT INTO key_audit (action, pc_id, pc_name, key_prefix, timestamp)
                VALUES (?, ?, ?, ?, ?)
            """, (entry.action, entry.pc_id, entry.pc_name, entry.key_prefix, _ts(entry.timestamp)))

        await self._run(_insert)

    async def list_audit(self, limit: int = 100) -> Tuple[List[AuditEntry], int]:
        def _select(conn):
            total = conn.execute("SELECT COUNT(*) FROM key_audit").fetchone()[0]
            cursor = conn.execute("""
                SELECT action, pc_id, pc_name, key_prefix, timestamp FROM (
                    SELECT * FROM key_audit ORDER BY id DESC LIMIT ?
                ) ORDER BY id ASC
            """, (limit,))
            entries = []
            for row in cursor.fetchall():
                data = dict(row)
                data["timestamp"] = _parse_ts(data["timestamp"])
                entries.append(AuditEntry(**data))
            return entries, total

        return await self._run(_select)
