"""
Fleet Agent - 被监控机器上的上报代理

注册一次后，周期性向中心节点推送心跳、应用清单和错误。
"""

__version__ = "1.0.0"
