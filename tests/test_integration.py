"""
端到端测试

Agent 通过 httpx.ASGITransport 直接调用 Collector 应用，不经过网络。
"""

import asyncio

import httpx
import pytest
import yaml

from fleet_agent.agent import FleetAgent
from fleet_agent.client import CollectorClient
from fleet_agent.config import AgentConfig
from fleet_agent.errors import RegistrationError


async def fake_metrics():
    return {"cpu": 12.5, "memory": 48.0, "uptime": 7200, "platform": "linux", "os": "Linux 6.1"}


async def fake_apps(limit):
    return [
        {"name": "nginx", "status": "RUNNING", "memoryUsage": "20.0 MB", "cpuUsage": "0.3%", "pid": 10},
        {"name": "sshd", "status": "RUNNING", "memoryUsage": "4.0 MB", "cpuUsage": "0.0%", "pid": 11},
    ][:limit]


def make_agent(app, tmp_path, **overrides):
    config = AgentConfig(server_url="http://collector", pc_name="lab-01", **overrides)
    client = CollectorClient(config.server_url, transport=httpx.ASGITransport(app=app))
    return FleetAgent(
        config,
        client=client,
        config_path=str(tmp_path / "agent.yaml"),
        collect_metrics=fake_metrics,
        collect_apps=fake_apps,
    )


def test_agent_reports_to_collector(app, client, tmp_path):
    """注册 → 心跳 → 应用清单，Collector 侧可查询到结果"""

    async def scenario():
        agent = make_agent(app, tmp_path)
        await agent.reconnector.run()
        await agent.ensure_registered()
        assert await agent.send_heartbeat() is True
        assert await agent.send_apps_status() is True
        return agent

    agent = asyncio.run(scenario())

    pcs = client.get("/api/pcs").json()
    assert pcs["total"] == 1
    assert pcs["items"][0]["id"] == agent.config.pc_id
    assert pcs["items"][0]["status"] == "ONLINE"
    assert pcs["items"][0]["cpu"] == 12.5
    assert pcs["items"][0]["reportedStatus"] == "ONLINE"

    apps = client.get("/api/apps-status", params={"pcId": agent.config.pc_id}).json()
    assert apps["total"] == 2


def test_reregistration_with_saved_credentials(app, client, tmp_path):
    """携带 id 和当前凭据重注册，取回同一条记录"""

    async def scenario():
        first = make_agent(app, tmp_path)
        await first.ensure_registered()

        collector = CollectorClient(
            "http://collector",
            api_key=first.config.api_key,
            transport=httpx.ASGITransport(app=app),
        )
        async with collector:
            data = await collector.register("lab-01", pc_id=first.config.pc_id)
        return first, data

    first, data = asyncio.run(scenario())

    assert data["created"] is False
    assert data["id"] == first.config.pc_id
    assert data["apiKey"] == first.config.api_key
    assert client.get("/api/pcs").json()["total"] == 1


def test_lost_credentials_cannot_reclaim_id(app, client, tmp_path):
    """只保留 id 而丢失凭据时，注册被拒绝且不新增记录"""

    async def scenario():
        first = make_agent(app, tmp_path)
        await first.ensure_registered()

        second = make_agent(app, tmp_path, pc_id=first.config.pc_id)
        with pytest.raises(RegistrationError):
            await second.ensure_registered()
        return second

    second = asyncio.run(scenario())

    assert second.config.api_key is None
    assert client.get("/api/pcs").json()["total"] == 1


def test_revoked_agent_fail_stops(app, client, tmp_path):
    """凭据被吊销后心跳返回 404，连续失败达到上限后停止"""

    async def register_agent():
        agent = make_agent(app, tmp_path, max_failures=3)
        await agent.ensure_registered()
        return agent.config.pc_id

    pc_id = asyncio.run(register_agent())
    assert client.post("/api/keys/revoke", json={"pcId": pc_id}).status_code == 200

    # 从配置文件读取旧凭据
    saved_key = yaml.safe_load((tmp_path / "agent.yaml").read_text(encoding="utf-8"))["api_key"]

    async def scenario():
        agent = make_agent(app, tmp_path, max_failures=3, pc_id=pc_id, api_key=saved_key)
        while not agent.stopped:
            await agent.send_heartbeat()
        return agent

    agent = asyncio.run(scenario())

    assert agent.stopped is True
    assert agent.failures == 3
