"""트레이 메뉴 라벨 및 아이콘 테스트 (pystray 불필요)."""

from __future__ import annotations

from datetime import datetime

from pgtray.models.status import BackupScope, DisplaySnapshot, ProbeResult, ScheduleState
from pgtray.ui.icon import CONNECTED_COLOR, DISCONNECTED_COLOR, draw_icon
from pgtray.ui.menu import backup_enabled, backup_label, info_line, refresh_enabled

NOW = datetime(2026, 3, 10, 12, 0, 0)


def _snapshot(**kwargs) -> DisplaySnapshot:
    return DisplaySnapshot(schedule=ScheduleState(enabled=False, scope=BackupScope.ALL), **kwargs)


class TestMenuLabels:
    def test_idle_labels(self) -> None:
        snapshot = _snapshot()
        assert backup_label(BackupScope.SINGLE, snapshot) == "Backup Database"
        assert backup_label(BackupScope.ALL, snapshot) == "Backup All Databases"
        assert backup_enabled(snapshot) is True

    def test_running_labels_disabled(self) -> None:
        snapshot = _snapshot(running_scope=BackupScope.ALL)
        assert backup_label(BackupScope.SINGLE, snapshot) == "Backup Database (Running...)"
        assert backup_label(BackupScope.ALL, snapshot) == "Backup All Databases (Running...)"
        assert backup_enabled(snapshot) is False

    def test_needs_configuration_disables_commands(self) -> None:
        snapshot = _snapshot(needs_configuration=True)
        assert backup_enabled(snapshot) is False
        assert refresh_enabled(snapshot) is False

    def test_info_lines(self) -> None:
        snapshot = _snapshot(probe=ProbeResult(connected=True, observed_at=NOW))
        assert info_line(snapshot, 0, NOW) == "Status: ✓ Connected"
        assert info_line(snapshot, 3, NOW) == "Last Check: 12:00:00"
        assert info_line(snapshot, 5, NOW) == "Next Backup: Disabled"


class TestDrawIcon:
    def test_connected_is_blue(self) -> None:
        image = draw_icon(True)
        assert image.size == (64, 64)
        assert image.mode == "RGBA"
        assert image.getpixel((32, 32))[:3] == CONNECTED_COLOR

    def test_disconnected_is_gray(self) -> None:
        image = draw_icon(False)
        assert image.getpixel((32, 32))[:3] == DISCONNECTED_COLOR
        assert image.getpixel((0, 0))[3] == 0
