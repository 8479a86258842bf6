"""
配置管理模块

从 YAML 文件加载配置，支持环境变量覆盖。
注册成功后，凭据会写回同一个配置文件。
"""

import os
import socket
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


DEFAULT_CONFIG_PATH = "~/.fleet-agent.yaml"

# 环境变量名 -> 配置字段
ENV_OVERRIDES = {
    "SERVER_URL": "server_url",
    "HEARTBEAT_INTERVAL": "heartbeat_interval",
    "APPS_CHECK_INTERVAL": "apps_check_interval",
    "PC_NAME": "pc_name",
}


class AgentConfig(BaseModel):
    """Agent 配置模型"""

    server_url: str = Field(default="http://localhost:3000", description="中心节点地址")
    pc_name: str = Field(default_factory=socket.gethostname, description="本机名称")
    heartbeat_interval: float = Field(default=30, gt=0, description="心跳间隔（秒）")
    apps_check_interval: float = Field(default=60, gt=0, description="应用清单上报间隔（秒）")
    request_timeout: float = Field(default=10, gt=0, description="普通请求超时（秒）")
    apps_timeout: float = Field(default=15, gt=0, description="应用清单请求超时（秒）")
    max_failures: int = Field(default=5, ge=1, description="连续失败上限，达到后停止")
    retry_backoff: Literal["fixed", "linear"] = Field(default="linear", description="重试间隔策略")
    retry_delay: float = Field(default=5, ge=0, description="重试基础间隔（秒）")
    max_apps: int = Field(default=20, ge=1, description="上报的进程数量上限")
    cpu_alert_threshold: float = Field(default=90, description="CPU 告警阈值（%）")
    memory_alert_threshold: float = Field(default=90, description="内存告警阈值（%）")
    error_cooldown: float = Field(default=60, ge=0, description="相同错误重复上报的冷却时间（秒）")
    pc_id: Optional[str] = Field(default=None, description="注册后获得的机器 ID")
    api_key: Optional[str] = Field(default=None, description="注册后获得的凭据")
    log_level: str = Field(default="INFO", description="日志级别")
    log_file: Optional[str] = Field(default=None, description="日志文件（可选）")

    @property
    def registered(self) -> bool:
        """是否已持有凭据"""
        return bool(self.pc_id and self.api_key)


def resolve_config_path(config_path: Optional[str] = None) -> Path:
    """确定配置文件路径：参数 > FLEET_AGENT_CONFIG > ~/.fleet-agent.yaml"""
    if config_path is None:
        config_path = os.getenv("FLEET_AGENT_CONFIG", DEFAULT_CONFIG_PATH)
    return Path(config_path).expanduser()


def load_config(config_path: Optional[str] = None) -> AgentConfig:
    """
    加载配置文件

    文件不存在时使用默认值（首次运行会在注册后创建该文件）。

    Args:
        config_path: 配置文件路径

    Returns:
        AgentConfig 实例
    """
    config_file = resolve_config_path(config_path)

    config_data = {}
    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

    # 环境变量覆盖文件中的值
    for env_name, field in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config_data[field] = value

    return AgentConfig(**config_data)


def save_config(config: AgentConfig, config_path: Optional[str] = None) -> Path:
    """
    将配置写回 YAML 文件

    Returns:
        实际写入的路径
    """
    config_file = resolve_config_path(config_path)
    config_file.parent.mkdir(parents=True, exist_ok=True)

    with open(config_file, "w", encoding="utf-8") as f:
        yaml.safe_dump(config.model_dump(), f, allow_unicode=True, sort_keys=False)

    return config_file
