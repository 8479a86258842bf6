"""
在线状态判定

所有读路径统一调用 compute_status，不在各处重复比较时间。
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from .models import PCRecord, Status


def utc_now() -> datetime:
    """当前 UTC 时间（带时区）"""
    return datetime.now(timezone.utc)


def compute_status(last_seen: Optional[datetime], now: datetime, threshold: timedelta) -> Status:
    """
    根据最后心跳时间计算状态

    Args:
        last_seen: 最后一次心跳时间，None 表示从未收到
        now: 当前时间
        threshold: 离线阈值

    Returns:
        now - last_seen <= threshold 时为 ONLINE，否则 OFFLINE
    """
    if last_seen is None:
        return Status.OFFLINE
    if now - last_seen <= threshold:
        return Status.ONLINE
    return Status.OFFLINE


def reconcile(record: PCRecord, now: datetime, threshold: timedelta) -> Tuple[PCRecord, bool]:
    """
    修正记录的状态字段

    Returns:
        (修正后的记录, 是否需要持久化)。仅当持久化字段为 ONLINE
        而计算结果为 OFFLINE 时返回 True；最后的指标值保持不变。
    """
    computed = compute_status(record.last_seen, now, threshold)
    if computed == record.status:
        return record, False

    updated = record.model_copy(update={"status": computed})
    return updated, record.status == Status.ONLINE and computed == Status.OFFLINE
