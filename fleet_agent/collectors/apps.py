"""
进程清单采集器

按内存占用取前 N 个进程，作为应用清单上报
"""

from typing import Any, Dict, List

import psutil


# psutil 进程状态 -> 上报状态
_STOPPED_STATES = {
    psutil.STATUS_STOPPED,
    psutil.STATUS_TRACING_STOP,
    psutil.STATUS_DEAD,
}
_NOT_RESPONDING_STATES = {
    psutil.STATUS_ZOMBIE,
}


def map_process_status(status: str) -> str:
    """将 psutil 状态映射为 RUNNING / NOT_RESPONDING / STOPPED"""
    if status in _STOPPED_STATES:
        return "STOPPED"
    if status in _NOT_RESPONDING_STATES:
        return "NOT_RESPONDING"
    return "RUNNING"


async def collect_applications(limit: int = 20) -> List[Dict[str, Any]]:
    """
    采集进程清单

    Args:
        limit: 最多返回的进程数

    Returns:
        应用信息列表，格式:
        [{"name": ..., "status": ..., "memoryUsage": "12.3 MB", "cpuUsage": "0.5%", "pid": ..., "command": ...}]
    """
    processes = []

    for proc in psutil.process_iter(["pid", "name", "status", "memory_info", "cpu_percent", "cmdline"]):
        info = proc.info
        memory_info = info.get("memory_info")
        if memory_info is None:
            # 无权限读取的进程
            continue
        processes.append(info)

    processes.sort(key=lambda p: p["memory_info"].rss, reverse=True)

    result = []
    for info in processes[:limit]:
        cmdline = info.get("cmdline") or []
        result.append({
            "name": info.get("name") or str(info["pid"]),
            "status": map_process_status(info.get("status")),
            "memoryUsage": f"{info['memory_info'].rss / 1024 / 1024:.1f} MB",
            "cpuUsage": f"{info.get('cpu_percent') or 0.0:.1f}%",
            "pid": info["pid"],
            "command": " ".join(cmdline) or None,
        })

    return result
