"""
测试公共夹具
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from fleet_collector.api.app import create_app
from fleet_collector.api.dependencies import get_service
from fleet_collector.config import reset_config
from fleet_collector.service import FleetService
from fleet_collector.storage import MemoryStore, reset_store


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, start: datetime = datetime(2026, 1, 20, 10, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """每个测试使用默认配置，不读取工作目录下的 config.yaml"""
    monkeypatch.setenv("FLEET_COLLECTOR_CONFIG", str(tmp_path / "missing.yaml"))
    for name in ("SERVER_URL", "HEARTBEAT_INTERVAL", "APPS_CHECK_INTERVAL", "PC_NAME", "FLEET_AGENT_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    reset_store()
    yield
    reset_config()
    reset_store()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def service(store, clock):
    return FleetService(store, offline_after=timedelta(seconds=120), clock=clock)


@pytest.fixture
def app(service):
    """创建测试应用（使用内存存储和可控时钟）"""
    app = create_app()

    async def _override_service():
        return service

    app.dependency_overrides[get_service] = _override_service
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def register(client, name="pc-01", **extra):
    """注册一台机器，返回响应 JSON"""
    response = client.post("/api/pcs/register", json={"name": name, **extra})
    assert response.status_code in (200, 201), response.text
    return response.json()


def auth(api_key):
    return {"Authorization": f"Bearer {api_key}"}


def heartbeat_payload(cpu=12.5, memory=40.0, **extra):
    payload = {"cpu": cpu, "memory": memory, "uptime": 3600, "platform": "linux", "os": "Linux 6.1"}
    payload.update(extra)
    return payload
