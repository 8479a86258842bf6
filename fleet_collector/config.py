"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。

环境变量使用 FLEET_ 前缀，嵌套字段用双下划线分隔，例如：
    FLEET_API__PORT=9000
    FLEET_LIVENESS__OFFLINE_AFTER_SECONDS=60
"""

import os
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ADMIN_TOKEN = "CHANGE_ME_IN_PRODUCTION"


class DatabaseConfig(BaseModel):
    """存储配置"""
    backend: Literal["memory", "sqlite"] = "sqlite"
    path: str = "data/fleet.db"
    timeout: int = 30


class APIConfig(BaseModel):
    """API 服务配置"""
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    admin_token: str = DEFAULT_ADMIN_TOKEN


class FrontendConfig(BaseModel):
    """前端配置"""
    path: str = "frontend"
    enabled: bool = True


class LivenessConfig(BaseModel):
    """在线状态判定配置"""
    offline_after_seconds: int = Field(default=120, ge=1)
    # 0 表示不启用后台巡检，仅在读取时惰性修正
    sweep_interval_seconds: int = Field(default=0, ge=0)


class RegistrationConfig(BaseModel):
    """注册策略"""
    unique_names: bool = True


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseSettings):
    """应用配置（完整配置）"""

    model_config = SettingsConfigDict(env_prefix="FLEET_", env_nested_delimiter="__")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    frontend: FrontendConfig = Field(default_factory=FrontendConfig)
    liveness: LivenessConfig = Field(default_factory=LivenessConfig)
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # 环境变量优先于 YAML 文件
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 FLEET_COLLECTOR_CONFIG
    3. 默认路径 config.yaml（当前目录）

    配置文件中的相对路径以配置文件所在目录为基准。
    """
    if config_path is None:
        config_path = os.environ.get("FLEET_COLLECTOR_CONFIG", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
        if raw_config:
            # 空段（如 "logging:"）按默认值处理
            raw_config = {k: v for k, v in raw_config.items() if v is not None}
            base_dir = config_file.resolve().parent

            def _resolve_path(value: Optional[str]) -> Optional[str]:
                if not value:
                    return value
                path = Path(value)
                if path.is_absolute():
                    return str(path)
                return str((base_dir / path).resolve())

            for section, key in (("database", "path"), ("frontend", "path"), ("logging", "file")):
                section_data = raw_config.get(section) or {}
                if key in section_data:
                    section_data[key] = _resolve_path(section_data[key])
                    raw_config[section] = section_data

            return AppConfig(**raw_config)

    # 配置文件不存在时使用默认配置
    return AppConfig()


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
