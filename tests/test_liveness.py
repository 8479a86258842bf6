"""
测试在线状态判定
"""

from datetime import datetime, timedelta, timezone

from fleet_collector.liveness import compute_status, reconcile
from fleet_collector.models import PCRecord, Status


NOW = datetime(2026, 1, 20, 10, 0, 0, tzinfo=timezone.utc)
THRESHOLD = timedelta(seconds=120)


def make_record(last_seen, status=Status.ONLINE):
    return PCRecord(
        id="pc1",
        name="pc-01",
        api_key="key",
        status=status,
        cpu=55.0,
        memory=70.0,
        last_seen=last_seen,
        registered_at=NOW - timedelta(days=1),
        updated_at=NOW - timedelta(days=1),
    )


class TestComputeStatus:
    """compute_status 测试"""

    def test_recent_is_online(self):
        assert compute_status(NOW - timedelta(seconds=30), NOW, THRESHOLD) == Status.ONLINE

    def test_exactly_threshold_is_online(self):
        """边界值：等于阈值仍视为在线"""
        assert compute_status(NOW - THRESHOLD, NOW, THRESHOLD) == Status.ONLINE

    def test_stale_is_offline(self):
        assert compute_status(NOW - THRESHOLD - timedelta(seconds=1), NOW, THRESHOLD) == Status.OFFLINE

    def test_never_seen_is_offline(self):
        assert compute_status(None, NOW, THRESHOLD) == Status.OFFLINE

    def test_monotonic_without_heartbeat(self):
        """没有新心跳时，一旦离线，之后的时间点都保持离线"""
        last_seen = NOW - timedelta(seconds=200)
        for offset in (0, 60, 3600, 86400):
            assert compute_status(last_seen, NOW + timedelta(seconds=offset), THRESHOLD) == Status.OFFLINE


class TestReconcile:
    """reconcile 测试"""

    def test_fresh_record_unchanged(self):
        record = make_record(NOW - timedelta(seconds=10))
        updated, persist = reconcile(record, NOW, THRESHOLD)
        assert updated is record
        assert persist is False

    def test_stale_online_record_transitions(self):
        """ONLINE 记录过期时需要持久化 OFFLINE，指标保留"""
        record = make_record(NOW - timedelta(seconds=300))
        updated, persist = reconcile(record, NOW, THRESHOLD)
        assert updated.status == Status.OFFLINE
        assert persist is True
        assert updated.cpu == 55.0
        assert updated.memory == 70.0
        # 原记录不被修改
        assert record.status == Status.ONLINE

    def test_already_offline_not_persisted_again(self):
        record = make_record(NOW - timedelta(seconds=300), status=Status.OFFLINE)
        updated, persist = reconcile(record, NOW, THRESHOLD)
        assert updated.status == Status.OFFLINE
        assert persist is False
