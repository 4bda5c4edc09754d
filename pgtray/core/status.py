"""표시 상태 집계기.

헬스 체크 루프, 수동 명령, 스케줄러가 동시에 상태를 갱신하므로
표시 상태의 유일한 소유자를 두고 잠금으로 갱신을 직렬화한다.
생산자는 불변 레코드(:class:`ProbeResult`, :class:`BackupOutcome`,
:class:`ScheduleState`)를 전달할 뿐 필드를 직접 쓰지 않는다.

상대 시간("in 10 hours", "2 hours ago")은 저장하지 않고
:func:`render_lines` 에서 읽는 시점에 절대 시각으로부터 계산한다.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from pgtray.models.status import (
    BackupOutcome,
    BackupScope,
    DisplaySnapshot,
    ProbeResult,
    SchedulePhase,
    ScheduleState,
)
from pgtray.utils import truncate_text

APP_TITLE = "PostgreSQL Monitor"


@dataclass(frozen=True)
class DisplayLines:
    """트레이 메뉴에 표시할 읽기 전용 라인 묶음."""

    status: str
    connections: str
    uptime: str
    last_check: str
    last_backup: str
    next_backup: str
    tooltip: str

    def as_list(self) -> list[str]:
        """메뉴 순서대로 라인 목록 반환 (툴팁 제외)."""
        return [
            self.status,
            self.connections,
            self.uptime,
            self.last_check,
            self.last_backup,
            self.next_backup,
        ]


def format_elapsed(elapsed: timedelta) -> str:
    """경과 시간을 ``"2 hours ago"`` 형식으로 변환."""
    seconds = elapsed.total_seconds()
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{int(seconds // 60)} min ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)} hours ago"
    return f"{int(seconds // 86400)} days ago"


def format_until(until: timedelta) -> str:
    """남은 시간을 ``"in 10 hours"`` 형식으로 변환."""
    seconds = until.total_seconds()
    if seconds < 60:
        return "in < 1 min"
    if seconds < 3600:
        return f"in {int(seconds // 60)} min"
    if seconds < 86400:
        return f"in {int(seconds // 3600)} hours"
    hours = int(seconds // 3600)
    return f"in {hours // 24}d {hours % 24}h"


def _render_status(snapshot: DisplaySnapshot) -> str:
    if snapshot.needs_configuration:
        return "Status: Not configured (edit config and restart)"
    if snapshot.probe is None:
        return "Status: Checking..."
    if snapshot.probe.connected:
        return "Status: ✓ Connected"
    return "Status: ✗ Disconnected"


def _render_last_backup(snapshot: DisplaySnapshot, now: datetime) -> str:
    outcome = snapshot.last_backup
    if outcome is None:
        return "Last Backup: Never"
    if snapshot.last_success_at is None:
        return f"Last Backup: Never ({outcome.status_text})"
    elapsed = format_elapsed(now - snapshot.last_success_at)
    return f"Last Backup: {elapsed} ({outcome.status_text})"


def _render_next_backup(schedule: ScheduleState, now: datetime) -> str:
    if not schedule.enabled:
        return "Next Backup: Disabled"
    if schedule.phase is SchedulePhase.FIRING:
        return f"Next Backup: Running... ({schedule.scope.label})"
    if schedule.next_fire_at is None:
        return "Next Backup: Calculating..."
    return f"Next Backup: {format_until(schedule.next_fire_at - now)} ({schedule.scope.label})"


def _render_tooltip(snapshot: DisplaySnapshot) -> str:
    if snapshot.notice:
        return snapshot.notice
    probe = snapshot.probe
    if snapshot.needs_configuration:
        return f"{APP_TITLE} - Not configured"
    if probe is None:
        return APP_TITLE
    if probe.connected:
        return f"{APP_TITLE} - Connected"
    return f"{APP_TITLE} - Disconnected: {probe.error or 'unknown error'}"


def render_lines(snapshot: DisplaySnapshot, now: datetime | None = None) -> DisplayLines:
    """스냅샷을 사람이 읽는 라인으로 변환.

    Args:
        snapshot: 집계 스냅샷
        now: 상대 시간 계산 기준 (None이면 현재 시각)
    """
    now = now or datetime.now()
    probe = snapshot.probe
    connected = probe is not None and probe.connected

    if connected and probe.active_connections is not None:
        connections = f"Active Connections: {probe.active_connections}"
    else:
        connections = "Active Connections: -"

    if connected:
        uptime = f"DB Uptime: {truncate_text(probe.uptime) if probe.uptime else 'unknown'}"
    else:
        uptime = "Uptime: -"

    last_check = f"Last Check: {probe.observed_at:%H:%M:%S}" if probe else "Last Check: -"

    return DisplayLines(
        status=_render_status(snapshot),
        connections=connections,
        uptime=uptime,
        last_check=last_check,
        last_backup=_render_last_backup(snapshot, now),
        next_backup=_render_next_backup(snapshot.schedule, now),
        tooltip=_render_tooltip(snapshot),
    )


class StatusAggregator:
    """표시 상태의 단일 소유자.

    모든 ``observe_*`` 호출은 잠금 안에서 새 불변 스냅샷으로 교체하므로
    :meth:`snapshot` 은 항상 완전한 스냅샷을 반환한다.
    완료 시각이 현재 값보다 오래된 갱신은 무시한다.

    Args:
        schedule: 초기 스케줄 상태
        needs_configuration: 설정 파일 편집이 필요한 상태인지 여부
    """

    def __init__(self, schedule: ScheduleState, *, needs_configuration: bool = False) -> None:
        self._lock = threading.Lock()
        self._snapshot = DisplaySnapshot(
            schedule=schedule,
            needs_configuration=needs_configuration,
        )

    def snapshot(self) -> DisplaySnapshot:
        """현재 스냅샷."""
        with self._lock:
            return self._snapshot

    def observe_probe(self, result: ProbeResult) -> None:
        """헬스 체크 결과 반영 (연결 상태·지표·마지막 체크 시각)."""
        with self._lock:
            current = self._snapshot.probe
            if current is not None and result.observed_at < current.observed_at:
                return
            self._snapshot = replace(self._snapshot, probe=result)

    def observe_backup_started(self, scope: BackupScope) -> None:
        """백업 시작 반영 (메뉴의 Running 표시)."""
        with self._lock:
            self._snapshot = replace(self._snapshot, running_scope=scope)

    def observe_backup(self, outcome: BackupOutcome) -> None:
        """백업 결과 반영. 실행 중 표시는 항상 해제한다."""
        with self._lock:
            snapshot = replace(self._snapshot, running_scope=None)
            current = snapshot.last_backup
            if current is None or outcome.finished_at >= current.finished_at:
                last_success_at = snapshot.last_success_at
                if outcome.succeeded and (
                    last_success_at is None or outcome.finished_at > last_success_at
                ):
                    last_success_at = outcome.finished_at
                snapshot = replace(
                    snapshot,
                    last_backup=outcome,
                    last_success_at=last_success_at,
                )
            self._snapshot = snapshot

    def observe_schedule(self, state: ScheduleState) -> None:
        """스케줄 상태 반영."""
        with self._lock:
            self._snapshot = replace(self._snapshot, schedule=state)

    def observe_notice(self, notice: str | None) -> None:
        """일시 안내 메시지(툴팁) 반영. None이면 해제."""
        with self._lock:
            self._snapshot = replace(self._snapshot, notice=notice)
