"""
测试存储层

内存和 SQLite 实现跑同一组用例。
"""

import asyncio
import threading
from datetime import datetime, timedelta, timezone

import pytest

from fleet_collector.models import AppRecord, AuditEntry, DashboardSettings, ErrorRecord, PCRecord, Status
from fleet_collector.storage import MemoryStore, SqliteStore


NOW = datetime(2026, 1, 20, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return SqliteStore(str(tmp_path / "fleet.db"))


def make_pc(pc_id="pc1", name="pc-01", api_key="key-1", last_seen=NOW):
    return PCRecord(
        id=pc_id,
        name=name,
        api_key=api_key,
        status=Status.ONLINE,
        last_seen=last_seen,
        registered_at=NOW - timedelta(hours=1),
        updated_at=NOW - timedelta(hours=1),
    )


def make_error(error_id, pc_id="pc1", minutes=0):
    return ErrorRecord(
        id=error_id,
        pc_id=pc_id,
        pc_name="pc-01",
        type="CRITICAL",
        message=f"error {error_id}",
        details={"disk": "/"},
        timestamp=NOW + timedelta(minutes=minutes),
    )


def make_app(name, pc_id="pc1"):
    return AppRecord(
        pc_id=pc_id,
        pc_name="pc-01",
        name=name,
        status="RUNNING",
        memory_usage="10.0 MB",
        cpu_usage="1.0%",
        pid=100,
        last_updated=NOW,
    )


def run(coro):
    return asyncio.run(coro)


class TestPCRecords:
    """机器记录"""

    def test_create_and_lookup(self, store):
        run(store.create_pc(make_pc()))

        assert run(store.get_pc("pc1")).name == "pc-01"
        assert run(store.get_pc_by_key("key-1")).id == "pc1"
        assert run(store.get_pc_by_name("pc-01")).id == "pc1"
        assert run(store.get_pc("missing")) is None
        assert run(store.get_pc_by_key("missing")) is None

    def test_list_sorted_by_last_seen(self, store):
        run(store.create_pc(make_pc("a", "a", "ka", last_seen=NOW - timedelta(minutes=5))))
        run(store.create_pc(make_pc("b", "b", "kb", last_seen=NOW)))
        run(store.create_pc(make_pc("c", "c", "kc", last_seen=None)))

        ids = [r.id for r in run(store.list_pcs())]
        assert ids == ["b", "a", "c"]

    def test_apply_heartbeat(self, store):
        run(store.create_pc(make_pc()))
        later = NOW + timedelta(seconds=30)

        record = run(store.apply_heartbeat(
            "key-1",
            {"cpu": 42.0, "memory": 63.5, "uptime": 100, "platform": "linux", "os": "Linux", "reported_status": "WAITING"},
            later,
        ))

        assert record.cpu == 42.0
        assert record.memory == 63.5
        assert record.reported_status == "WAITING"
        assert record.last_seen == later
        assert record.status == Status.ONLINE

    def test_apply_heartbeat_unknown_key(self, store):
        assert run(store.apply_heartbeat("nope", {"cpu": 1.0}, NOW)) is None

    def test_mark_offline_compare_and_set(self, store):
        """last_seen 已被新心跳刷新时不覆盖为 OFFLINE"""
        run(store.create_pc(make_pc()))
        run(store.apply_heartbeat("key-1", {"cpu": 1.0}, NOW + timedelta(seconds=10)))

        assert run(store.mark_offline("pc1", NOW)) is False
        assert run(store.get_pc("pc1")).status == Status.ONLINE

        assert run(store.mark_offline("pc1", NOW + timedelta(seconds=10))) is True
        assert run(store.get_pc("pc1")).status == Status.OFFLINE

        # 已经是 OFFLINE 时不再写入
        assert run(store.mark_offline("pc1", NOW + timedelta(seconds=10))) is False

    def test_rotate_key_invalidates_old(self, store):
        run(store.create_pc(make_pc()))

        record = run(store.rotate_key("pc1", "key-2", NOW))

        assert record.api_key == "key-2"
        assert run(store.get_pc_by_key("key-1")) is None
        assert run(store.get_pc_by_key("key-2")).id == "pc1"
        assert run(store.apply_heartbeat("key-1", {"cpu": 1.0}, NOW)) is None

    def test_revoke_key(self, store):
        run(store.create_pc(make_pc()))

        record = run(store.revoke_key("pc1", NOW))

        assert record.api_key is None
        assert run(store.get_pc_by_key("key-1")) is None
        assert run(store.revoke_key("missing", NOW)) is None

    def test_touch_pc(self, store):
        run(store.create_pc(make_pc(last_seen=NOW - timedelta(hours=1))))

        record = run(store.touch_pc("pc1", "renamed", NOW))

        assert record.name == "renamed"
        assert record.last_seen == NOW
        assert record.api_key == "key-1"
        assert run(store.touch_pc("missing", "x", NOW)) is None


class TestErrors:
    """错误记录"""

    def test_list_newest_first_with_filter_and_limit(self, store):
        run(store.add_error(make_error("e1", minutes=0)))
        run(store.add_error(make_error("e2", minutes=1)))
        run(store.add_error(make_error("e3", pc_id="pc2", minutes=2)))

        items, total = run(store.list_errors())
        assert [e.id for e in items] == ["e3", "e2", "e1"]
        assert total == 3

        items, total = run(store.list_errors(pc_id="pc1", limit=1))
        assert [e.id for e in items] == ["e2"]
        assert total == 2
        assert items[0].details == {"disk": "/"}

    def test_resolve_idempotent(self, store):
        run(store.add_error(make_error("e1")))

        first = run(store.resolve_error("e1", NOW + timedelta(minutes=5)))
        second = run(store.resolve_error("e1", NOW + timedelta(minutes=10)))

        assert first.resolved is True
        assert first.resolved_at == NOW + timedelta(minutes=5)
        assert second.resolved_at == NOW + timedelta(minutes=5)
        assert run(store.resolve_error("missing", NOW)) is None


class TestApps:
    """应用清单"""

    def test_replace_wholesale(self, store):
        run(store.replace_apps("pc1", [make_app("a"), make_app("b")]))
        run(store.replace_apps("pc2", [make_app("x", pc_id="pc2")]))

        count = run(store.replace_apps("pc1", [make_app("c")]))

        assert count == 1
        items, total = run(store.list_apps(pc_id="pc1"))
        assert [a.name for a in items] == ["c"]
        assert total == 1

        _, total = run(store.list_apps())
        assert total == 2

    def test_replace_with_empty_list(self, store):
        run(store.replace_apps("pc1", [make_app("a")]))
        assert run(store.replace_apps("pc1", [])) == 0
        assert run(store.list_apps(pc_id="pc1")) == ([], 0)


class TestSettingsAndAudit:
    """设置与审计"""

    def test_settings_roundtrip(self, store):
        assert run(store.get_settings()) is None

        settings = DashboardSettings(refresh_rate=10, theme="dark", animations=False, updated_at=NOW)
        run(store.save_settings(settings))

        loaded = run(store.get_settings())
        assert loaded.refresh_rate == 10
        assert loaded.theme == "dark"
        assert loaded.animations is False

    def test_audit_keeps_last_entries_in_order(self, store):
        for i in range(5):
            run(store.add_audit(AuditEntry(
                action="regenerate",
                pc_id="pc1",
                pc_name="pc-01",
                key_prefix=f"k{i}...",
                timestamp=NOW + timedelta(seconds=i),
            )))

        items, total = run(store.list_audit(limit=2))

        assert total == 5
        assert [e.key_prefix for e in items] == ["k3...", "k4..."]


def test_sqlite_survives_reopen(tmp_path):
    """SQLite 数据在重新打开后仍然存在"""
    db_path = str(tmp_path / "fleet.db")
    run(SqliteStore(db_path).create_pc(make_pc()))

    reopened = SqliteStore(db_path)
    record = run(reopened.get_pc_by_key("key-1"))

    assert record is not None
    assert record.last_seen == NOW


def test_sqlite_runs_off_event_loop_thread(tmp_path):
    """sqlite3 调用在线程池中执行，事件循环线程不被阻塞"""
    store = SqliteStore(str(tmp_path / "fleet.db"))
    loop_thread = threading.get_ident()
    seen = []
    original = store.get_conn

    def tracking_conn():
        seen.append(threading.get_ident())
        return original()

    store.get_conn = tracking_conn

    async def scenario():
        await store.create_pc(make_pc())
        await store.apply_heartbeat("key-1", {"cpu": 1.0}, NOW)
        return await store.list_pcs()

    records = run(scenario())

    assert len(records) == 1
    assert len(seen) == 3
    assert loop_thread not in seen
