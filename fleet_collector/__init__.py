"""
Fleet Collector - 中心节点服务

负责：
- 接收 Agent 注册、心跳、错误上报、应用清单上报
- 根据心跳时间推导在线/离线状态
- 提供 REST API 给前端仪表盘轮询
"""

__version__ = "1.0.0"
