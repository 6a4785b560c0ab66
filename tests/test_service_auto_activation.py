"""Tests for the auto-activation control loop."""
import asyncio
import threading
from unittest.mock import Mock

import pytest
from sqlalchemy import select

from grid_command_center.core.config import Settings
from grid_command_center.grid.feeders import Feeder
from grid_command_center.grid.state import GridState
from grid_command_center.models.audit_log import AuditLog
from grid_command_center.services.auto_activation_monitor import (
    SYSTEM_USER,
    AutoActivationMonitor,
    FeederState,
    classify_feeder_state,
)


@pytest.fixture
def mock_config():
    """Create mock configuration."""
    config = Mock(spec=Settings)
    config.auto_activation_enabled = True
    config.auto_activation_interval_s = 0.05  # Fast for testing
    config.low_threshold_pct = 75.0
    config.high_threshold_pct = 90.0
    return config


@pytest.fixture
def westminster():
    return GridState([
        Feeder("F-1234", "Feeder F-1234", "Westminster Substation", base_load=87.5, capacity=95.0),
        Feeder("F-3456", "Feeder F-3456", "Islington Substation", base_load=35.8, capacity=80.0),
    ])


def test_classify_feeder_state():
    assert classify_feeder_state(95, 0, False, 75, 90) is FeederState.CRITICAL_UNMITIGATED
    assert classify_feeder_state(95, 0, True, 75, 90) is FeederState.CRITICAL_PENDING
    assert classify_feeder_state(95, 2, False, 75, 90) is FeederState.MITIGATING
    assert classify_feeder_state(80, 1, False, 75, 90) is FeederState.MITIGATING
    assert classify_feeder_state(60, 1, False, 75, 90) is FeederState.OVER_MITIGATED
    assert classify_feeder_state(60, 0, False, 75, 90) is FeederState.NORMAL
    assert classify_feeder_state(90, 0, False, 75, 90) is FeederState.NORMAL


def test_monitor_init(westminster, mock_config):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    assert monitor._started is False
    assert monitor._interval == 0.05
    assert monitor._low_threshold == 75.0
    assert monitor._high_threshold == 90.0


def test_over_mitigated_feeder_is_stood_down_then_flagged(westminster, mock_config):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    assert westminster.feeder_snapshot("F-1234").status == "critical"

    westminster.activate("DER-SOLAR-003", "F-1234", 25.0, "ORD-1")
    snapshot = westminster.feeder_snapshot("F-1234")
    assert snapshot.load_percent == pytest.approx(65.8, abs=0.05)
    assert snapshot.status == "normal"

    report = monitor.scan()
    assert [r.order_id for r in report.deactivated["F-1234"]] == ["ORD-1"]
    assert westminster.active_ders("F-1234") == []
    after = westminster.feeder_snapshot("F-1234")
    assert after.active_der_contribution == 0.0
    assert after.current_load == pytest.approx(87.5)
    assert after.status == "critical"
    assert report.flagged == []

    report = monitor.scan()
    assert report.flagged == ["F-1234"]
    assert westminster.is_pending("F-1234")


def test_scan_is_idempotent(westminster, mock_config):
    monitor = AutoActivationMonitor(westminster, config=mock_config)

    first = monitor.scan()
    second = monitor.scan()

    assert first.flagged == ["F-1234"]
    assert second.flagged == []
    assert second.deactivated == {}
    assert second.states["F-1234"] is FeederState.CRITICAL_PENDING
    assert westminster.pending() == ["F-1234"]


def test_mitigating_feeder_is_left_alone(westminster, mock_config):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    westminster.activate("DER-1", "F-1234", 10.0, "ORD-1")  # 81.6%

    report = monitor.scan()

    assert report.states["F-1234"] is FeederState.MITIGATING
    assert report.deactivated == {}
    assert report.flagged == []
    assert westminster.active_ders("F-1234")


def test_pending_flag_never_coexists_with_active_ders(westminster, mock_config):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    monitor.scan()
    assert westminster.is_pending("F-1234")

    westminster.activate("DER-1", "F-1234", 2.0, "ORD-1")
    monitor.scan()

    for snapshot in westminster.snapshot():
        assert not (snapshot.pending_auto_activation and snapshot.active_ders)


def test_stale_flag_cleared_when_load_drops(westminster, mock_config):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    monitor.scan()
    assert westminster.is_pending("F-1234")

    westminster.load_model.get("F-1234").target_load = 50.0
    report = monitor.scan()

    assert report.cleared == ["F-1234"]
    assert not westminster.is_pending("F-1234")


def test_scan_isolates_feeder_errors(westminster, mock_config, monkeypatch):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    original = westminster.feeder_snapshot

    def broken_snapshot(feeder_id):
        if feeder_id == "F-1234":
            raise RuntimeError("sensor offline")
        return original(feeder_id)

    monkeypatch.setattr(westminster, "feeder_snapshot", broken_snapshot)
    westminster.load_model.get("F-3456").target_load = 79.0  # 98.75%

    report = monitor.scan()

    assert [e.feeder_id for e in report.errors] == ["F-1234"]
    assert report.flagged == ["F-3456"]


@pytest.mark.asyncio
async def test_run_once_writes_audit_entries(westminster, mock_config, session_factory):
    monitor = AutoActivationMonitor(westminster, config=mock_config, session_factory=session_factory)
    westminster.activate("DER-BATT-001", "F-1234", 25.0, "ORD-1")

    await monitor.run_once()
    await monitor.run_once()

    async with session_factory() as session:
        result = await session.execute(select(AuditLog).order_by(AuditLog.id))
        logs = list(result.scalars().all())

    assert [log.action for log in logs] == ["DER Auto-Deactivated", "Auto-Activation Requested"]
    assert all(log.user == SYSTEM_USER for log in logs)
    assert logs[0].target == "DER-BATT-001"
    assert logs[1].target == "F-1234"


@pytest.mark.asyncio
async def test_monitor_start_stop(westminster, mock_config):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    try:
        await monitor.start()

        assert monitor._started is True
        assert isinstance(monitor._monitor_task, asyncio.Task)

        await asyncio.sleep(0.2)
        assert not monitor._monitor_task.done()
        assert westminster.is_pending("F-1234")
    finally:
        await monitor.stop()

    assert monitor._started is False
    assert monitor._monitor_task is None


@pytest.mark.asyncio
async def test_monitor_start_idempotent(westminster, mock_config):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    try:
        await monitor.start()
        first_task = monitor._monitor_task
        await monitor.start()
        assert monitor._monitor_task is first_task
    finally:
        await monitor.stop()


@pytest.mark.asyncio
async def test_monitor_stop_without_start(westminster, mock_config):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    await monitor.stop()
    assert monitor._started is False


@pytest.mark.asyncio
async def test_monitor_disabled_does_not_start(westminster, mock_config):
    mock_config.auto_activation_enabled = False
    monitor = AutoActivationMonitor(westminster, config=mock_config)

    await monitor.start()

    assert monitor._started is False
    assert monitor._monitor_task is None


@pytest.mark.asyncio
async def test_monitor_survives_scan_errors(westminster, mock_config, monkeypatch):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    calls = []

    async def failing_run_once():
        calls.append(1)
        raise RuntimeError("boom")

    monkeypatch.setattr(monitor, "run_once", failing_run_once)
    try:
        await monitor.start()
        await asyncio.sleep(0.2)
        assert len(calls) >= 2
        assert not monitor._monitor_task.done()
    finally:
        await monitor.stop()


def test_concurrent_activity_keeps_contribution_consistent(westminster, mock_config):
    monitor = AutoActivationMonitor(westminster, config=mock_config)
    errors = []

    def run(action, rounds=200):
        try:
            for i in range(rounds):
                action(i)
        except Exception as e:
            errors.append(e)

    def activator(prefix):
        def activate(i):
            westminster.activate(f"DER-{prefix}", "F-1234", float(i % 7 + 1), f"ORD-{prefix}-{i}")
        return activate

    def deactivator(i):
        for record in westminster.active_ders("F-1234")[:1]:
            westminster.deactivate(record.order_id)

    threads = [
        threading.Thread(target=run, args=(activator("A"),)),
        threading.Thread(target=run, args=(activator("B"),)),
        threading.Thread(target=run, args=(deactivator,)),
        threading.Thread(target=run, args=(lambda i: westminster.tick(),)),
        threading.Thread(target=run, args=(lambda i: errors.extend(monitor.scan().errors),)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    for feeder_id in westminster.feeder_ids:
        snapshot = westminster.feeder_snapshot(feeder_id)
        outputs = sum(record.output for record in westminster.active_ders(feeder_id))
        assert snapshot.active_der_contribution == pytest.approx(outputs, abs=1e-6)
        assert not (snapshot.pending_auto_activation and snapshot.active_ders)
