"""트레이 메뉴 라벨 계산.

pystray 없이 테스트할 수 있도록 스냅샷에서 라벨·활성 여부만 계산한다.
"""

from __future__ import annotations

from datetime import datetime

from pgtray.core.status import render_lines
from pgtray.models.status import BackupScope, DisplaySnapshot

BACKUP_LABELS = {
    BackupScope.SINGLE: "Backup Database",
    BackupScope.ALL: "Backup All Databases",
}

RUNNING_SUFFIX = " (Running...)"
REFRESH_LABEL = "Refresh Now"
QUIT_LABEL = "Quit"


def info_line(snapshot: DisplaySnapshot, index: int, now: datetime | None = None) -> str:
    """읽기 전용 정보 라인 (0: 상태 ~ 5: 다음 백업)."""
    return render_lines(snapshot, now).as_list()[index]


def backup_label(scope: BackupScope, snapshot: DisplaySnapshot) -> str:
    """백업 메뉴 라벨. 실행 중이면 ``(Running...)`` 을 붙인다."""
    label = BACKUP_LABELS[scope]
    if snapshot.backup_running:
        return label + RUNNING_SUFFIX
    return label


def backup_enabled(snapshot: DisplaySnapshot) -> bool:
    """백업 메뉴 활성 여부."""
    return not snapshot.backup_running and not snapshot.needs_configuration


def refresh_enabled(snapshot: DisplaySnapshot) -> bool:
    """새로고침 메뉴 활성 여부."""
    return not snapshot.needs_configuration
