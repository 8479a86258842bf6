"""
数据模型定义

包括：
- 存储层记录（机器、错误、应用清单、设置、审计）
- 各端点的请求/响应模型

JSON 字段统一使用 camelCase（如 apiKey、lastSeen），Python 侧使用 snake_case。
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """以 camelCase 序列化、同时接受两种命名的基类"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Status(str, Enum):
    """机器在线状态"""
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


# =============================================================================
# 存储层记录
# =============================================================================

class PCRecord(CamelModel):
    """机器记录（每台被监控主机一条）"""
    id: str
    name: str
    api_key: Optional[str] = None  # 吊销后为 None
    status: Status = Status.ONLINE  # 持久化字段，读取时会按 last_seen 修正
    reported_status: Optional[str] = None  # Agent 自报状态（如 WAITING）
    cpu: float = 0.0
    memory: float = 0.0
    uptime: float = 0.0
    platform: Optional[str] = None
    os: Optional[str] = None
    last_seen: Optional[datetime] = None
    registered_at: datetime
    updated_at: datetime


class ErrorRecord(CamelModel):
    """错误/事件记录（只追加，仅 resolved 字段可变）"""
    id: str
    pc_id: str
    pc_name: str
    type: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime
    resolved: bool = False
    resolved_at: Optional[datetime] = None


class AppRecord(CamelModel):
    """应用清单中的单个应用"""
    pc_id: str
    pc_name: str
    name: str
    status: str = "UNKNOWN"
    version: Optional[str] = None
    memory_usage: Optional[str] = None
    cpu_usage: Optional[str] = None
    pid: Optional[int] = None
    command: Optional[str] = None
    last_updated: datetime


class DashboardSettings(CamelModel):
    """仪表盘全局设置"""
    refresh_rate: int = Field(default=5, ge=1)
    alert_threshold: str = "medium"
    theme: str = "futuristic"
    animations: bool = True
    updated_at: Optional[datetime] = None


class AuditEntry(CamelModel):
    """凭据操作审计记录"""
    action: str
    pc_id: str
    pc_name: str
    key_prefix: Optional[str] = None
    timestamp: datetime


# =============================================================================
# 请求模型
# =============================================================================

class RegisterRequest(CamelModel):
    """注册请求；携带已知 id 时为幂等重注册"""
    name: str
    id: Optional[str] = None


class HeartbeatRequest(CamelModel):
    """心跳请求"""
    status: Optional[str] = None
    cpu: float = Field(..., ge=0, le=100)
    memory: float = Field(..., ge=0, le=100)
    uptime: float = Field(default=0, ge=0)
    platform: Optional[str] = None
    os: Optional[str] = None


class ErrorReportRequest(CamelModel):
    """错误上报请求"""
    type: str
    message: str
    details: Optional[Dict[str, Any]] = None


class AppInfo(CamelModel):
    """上报的单个应用信息"""
    name: str
    status: str = "UNKNOWN"
    version: Optional[str] = None
    memory_usage: Optional[str] = None
    cpu_usage: Optional[str] = None
    pid: Optional[int] = None
    command: Optional[str] = None


class AppsStatusRequest(CamelModel):
    """应用清单上报请求"""
    applications: List[AppInfo]


class KeyActionRequest(CamelModel):
    """凭据管理请求"""
    pc_id: str


class SettingsUpdate(CamelModel):
    """设置保存请求"""
    refresh_rate: int = Field(default=5, ge=1)
    alert_threshold: str = "medium"
    theme: str = "futuristic"
    animations: bool = True


# =============================================================================
# 响应模型
# =============================================================================

class RegisterResponse(CamelModel):
    """注册响应"""
    id: str
    api_key: str
    name: str
    registration_date: datetime
    created: bool  # True 表示新建，False 表示已存在


class HeartbeatResponse(CamelModel):
    """心跳响应"""
    status: Status
    timestamp: datetime


class ErrorReportResponse(CamelModel):
    """错误上报响应"""
    error_id: str
    timestamp: datetime


class AppsStatusResponse(CamelModel):
    """应用清单上报响应"""
    pc_name: str
    apps_updated: int
    timestamp: datetime


class PCView(CamelModel):
    """对外展示的机器信息（不含凭据）"""
    id: str
    name: str
    status: Status
    reported_status: Optional[str] = None
    cpu: float
    memory: float
    uptime: float
    platform: Optional[str] = None
    os: Optional[str] = None
    last_seen: Optional[datetime] = None
    registration_date: datetime

    @classmethod
    def from_record(cls, record: PCRecord) -> "PCView":
        return cls(
            id=record.id,
            name=record.name,
            status=record.status,
            reported_status=record.reported_status,
            cpu=record.cpu,
            memory=record.memory,
            uptime=record.uptime,
            platform=record.platform,
            os=record.os,
            last_seen=record.last_seen,
            registration_date=record.registered_at,
        )


class PCListResponse(CamelModel):
    items: List[PCView] = Field(default_factory=list)
    total: int


class ErrorListResponse(CamelModel):
    items: List[ErrorRecord] = Field(default_factory=list)
    total: int


class AppListResponse(CamelModel):
    items: List[AppRecord] = Field(default_factory=list)
    total: int
    filtered_by_pc: Optional[str] = None


class KeyView(CamelModel):
    """管理端看到的机器凭据"""
    id: str
    name: str
    api_key: Optional[str] = None
    status: Status
    last_seen: Optional[datetime] = None
    registration_date: datetime


class KeyListResponse(CamelModel):
    keys: List[KeyView] = Field(default_factory=list)
    total: int


class RegenerateResponse(CamelModel):
    pc_id: str
    pc_name: str
    new_api_key: str
    timestamp: datetime


class RevokeResponse(CamelModel):
    pc_id: str
    pc_name: str
    timestamp: datetime


class AuditListResponse(CamelModel):
    items: List[AuditEntry] = Field(default_factory=list)
    total: int


class HealthResponse(CamelModel):
    """健康检查响应"""
    status: str
    timestamp: datetime
    version: str
