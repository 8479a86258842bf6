"""
数据采集器模块

包含系统指标和进程清单采集器
"""

from .apps import collect_applications
from .system import collect_system_metrics

__all__ = [
    "collect_applications",
    "collect_system_metrics",
]
