"""
测试配置加载
"""

from pathlib import Path

import yaml

from fleet_agent.config import load_config as load_agent_config
from fleet_agent.config import save_config
from fleet_collector.config import DEFAULT_ADMIN_TOKEN, load_config


class TestCollectorConfig:
    """Collector 配置"""

    def test_defaults_when_missing(self, tmp_path):
        config = load_config(str(tmp_path / "missing.yaml"))

        assert config.api.port == 3000
        assert config.api.admin_token == DEFAULT_ADMIN_TOKEN
        assert config.liveness.offline_after_seconds == 120
        assert config.registration.unique_names is True
        assert config.database.backend == "sqlite"

    def test_yaml_with_relative_paths(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump({
            "database": {"backend": "memory", "path": "data/fleet.db"},
            "liveness": {"offline_after_seconds": 30},
        }), encoding="utf-8")

        config = load_config(str(config_file))

        assert config.database.backend == "memory"
        assert Path(config.database.path) == (tmp_path / "data" / "fleet.db").resolve()
        assert config.liveness.offline_after_seconds == 30

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump({"api": {"port": 8000}}), encoding="utf-8")
        monkeypatch.setenv("FLEET_API__PORT", "9000")

        config = load_config(str(config_file))

        assert config.api.port == 9000


class TestAgentConfig:
    """Agent 配置"""

    def test_defaults_when_missing(self, tmp_path):
        config = load_agent_config(str(tmp_path / "agent.yaml"))

        assert config.server_url == "http://localhost:3000"
        assert config.heartbeat_interval == 30
        assert config.apps_check_interval == 60
        assert config.max_failures == 5
        assert config.pc_name
        assert config.registered is False

    def test_env_overrides(self, tmp_path, monkeypatch):
        config_file = tmp_path / "agent.yaml"
        config_file.write_text(yaml.safe_dump({"server_url": "http://file:3000", "pc_name": "from-file"}), encoding="utf-8")
        monkeypatch.setenv("SERVER_URL", "http://env:3000")
        monkeypatch.setenv("HEARTBEAT_INTERVAL", "5")
        monkeypatch.setenv("PC_NAME", "from-env")

        config = load_agent_config(str(config_file))

        assert config.server_url == "http://env:3000"
        assert config.heartbeat_interval == 5
        assert config.pc_name == "from-env"

    def test_env_config_path(self, tmp_path, monkeypatch):
        config_file = tmp_path / "custom.yaml"
        config_file.write_text(yaml.safe_dump({"pc_name": "custom"}), encoding="utf-8")
        monkeypatch.setenv("FLEET_AGENT_CONFIG", str(config_file))

        assert load_agent_config().pc_name == "custom"

    def test_save_credentials(self, tmp_path):
        config_file = tmp_path / "nested" / "agent.yaml"
        config = load_agent_config(str(config_file))
        config.pc_id = "abc"
        config.api_key = "secret-key"

        save_config(config, str(config_file))
        reloaded = load_agent_config(str(config_file))

        assert reloaded.pc_id == "abc"
        assert reloaded.api_key == "secret-key"
        assert reloaded.registered is True
