"""
测试 Agent 命令行
"""

import yaml
from typer.testing import CliRunner

from fleet_agent.__main__ import app


def write_config(tmp_path, **data):
    config_file = tmp_path / "agent.yaml"
    config_file.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(config_file)


def test_status_unregistered(tmp_path):
    runner = CliRunner()
    path = write_config(tmp_path, server_url="http://collector:3000", pc_name="lab-01")

    result = runner.invoke(app, ["--status", "--config-file", path])

    assert result.exit_code == 0
    assert "server_url=http://collector:3000" in result.output
    assert "pc_name=lab-01" in result.output
    assert "registered=no" in result.output


def test_status_registered(tmp_path):
    runner = CliRunner()
    path = write_config(tmp_path, pc_name="lab-01", pc_id="abc123", api_key="0123456789abcdef")

    result = runner.invoke(app, ["--status", "--config-file", path])

    assert result.exit_code == 0
    assert "registered=yes pc_id=abc123" in result.output


def test_config_masks_api_key(tmp_path):
    runner = CliRunner()
    path = write_config(tmp_path, pc_name="lab-01", pc_id="abc123", api_key="0123456789abcdef")

    result = runner.invoke(app, ["--config", "--config-file", path])

    assert result.exit_code == 0
    assert "01234567..." in result.output
    assert "0123456789abcdef" not in result.output
    assert "heartbeat_interval: 30" in result.output


def test_stop_prints_hint(tmp_path):
    runner = CliRunner()
    path = write_config(tmp_path, pc_name="lab-01")

    result = runner.invoke(app, ["--stop", "--config-file", path])

    assert result.exit_code == 0
    assert "Ctrl-C" in result.output


def test_invalid_config(tmp_path):
    runner = CliRunner()
    path = write_config(tmp_path, heartbeat_interval=-1)

    result = runner.invoke(app, ["--status", "--config-file", path])

    assert result.exit_code == 1


def test_unreachable_collector_exits_1(tmp_path):
    """Collector 不可达时重连失败，退出码为 1"""
    runner = CliRunner()
    path = write_config(
        tmp_path,
        server_url="http://127.0.0.1:9",
        pc_name="lab-01",
        max_failures=1,
        request_timeout=2,
    )

    result = runner.invoke(app, ["--config-file", path])

    assert result.exit_code == 1
