"""
系统指标采集器

通过 psutil 采集 CPU、内存使用率和开机时长
"""

import platform
import sys
import time
from typing import Any, Dict

import psutil


async def collect_system_metrics() -> Dict[str, Any]:
    """
    采集心跳所需的系统指标

    CPU 使用率为距上次调用以来的平均值（非阻塞），首次调用返回 0。

    Returns:
        {"cpu": ..., "memory": ..., "uptime": ..., "platform": ..., "os": ...}
    """
    cpu = psutil.cpu_percent(interval=None)
    memory = psutil.virtual_memory().percent
    uptime = max(0.0, time.time() - psutil.boot_time())

    return {
        "cpu": round(cpu, 2),
        "memory": round(memory, 2),
        "uptime": round(uptime),
        "platform": sys.platform,
        "os": f"{platform.system()} {platform.release()}",
    }
