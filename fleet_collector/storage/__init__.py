"""
存储模块

按配置选择内存或 SQLite 实现。
"""

from typing import Optional

from ..config import AppConfig, get_config
from .base import Store
from .memory import MemoryStore
from .sqlite import SqliteStore

__all__ = [
    "Store",
    "MemoryStore",
    "SqliteStore",
    "create_store",
    "get_store",
    "reset_store",
]


def create_store(config: AppConfig) -> Store:
    """根据配置创建存储实例"""
    if config.database.backend == "memory":
        return MemoryStore()
    return SqliteStore(config.database.path, timeout=config.database.timeout)


# 全局存储实例（延迟加载）
_store: Optional[Store] = None


def get_store() -> Store:
    """获取全局存储实例"""
    global _store
    if _store is None:
        _store = create_store(get_config())
    return _store


def reset_store():
    """重置存储实例（主要用于测试）"""
    global _store
    _store = None
