"""자동 백업 스케줄러.

설정된 시각(``HH:MM``, 로컬 시간)에 하루 한 번 백업을 실행한다.

상태 전이::

    IDLE --start()--> ARMED(next_fire_at) --시각 도달--> FIRING --완료--> ARMED(다음 날)

다음 실행 시각은 항상 "지금"에서 다시 계산한다. 오늘 해당 시각이 이미
지났거나 정확히 지금이면 하루를 더한다. 따라서 결과는 항상 현재보다 미래이고,
프로세스가 중간에 재시작되어도 놓친 실행을 몰아서 하지 않는다.
백업이 실패해도 더 일찍 재시도하지 않고 다음 날로 다시 예약한다.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, time, timedelta

from pgtray.config import DEFAULT_BACKUP_TIME, BackupConfig
from pgtray.models.status import BackupScope, SchedulePhase, ScheduleState

logger = logging.getLogger(__name__)

TIME_OF_DAY_FORMAT = "%H:%M"

# 긴 대기를 이 단위로 나눠 종료 신호와 벽시계 변화(절전 복귀 등)를 확인한다
MAX_WAIT_SLICE_SEC = 60.0


def parse_time_of_day(value: str) -> time:
    """``HH:MM`` (24시간) 문자열을 time으로 변환.

    Raises:
        ValueError: 형식 오류
    """
    return datetime.strptime(value.strip(), TIME_OF_DAY_FORMAT).time()


def resolve_time_of_day(value: str) -> time:
    """설정 시각 해석. 잘못된 값이면 경고 후 기본값(02:00) 사용."""
    try:
        return parse_time_of_day(value)
    except ValueError as e:
        logger.warning("Invalid backup time format %r: %s, using %s", value, e, DEFAULT_BACKUP_TIME)
        return parse_time_of_day(DEFAULT_BACKUP_TIME)


def compute_next_fire(time_of_day: time, now: datetime) -> datetime:
    """다음 실행 시각 계산.

    오늘 ``time_of_day`` 가 ``now`` 이전이거나 같으면 내일 같은 시각.

    Args:
        time_of_day: 실행 시각 (초 이하는 무시)
        now: 기준 시각

    Returns:
        ``now`` 보다 엄격히 미래인 실행 시각 (최대 24시간 이후)
    """
    candidate = now.replace(
        hour=time_of_day.hour,
        minute=time_of_day.minute,
        second=0,
        microsecond=0,
    )
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class BackupScheduler:
    """하루 한 번 백업을 실행하는 백그라운드 스케줄러.

    Args:
        config: 백업 설정 (``auto_enabled``, ``time``, ``scope``)
        fire: 실행 시각에 호출할 백업 함수. 완료될 때까지 블록된다.
        on_state: 상태 변경 시 호출되는 콜백 (상태 집계기 등)
        stop_event: 공유 종료 신호
        clock: 현재 시각 제공자
    """

    def __init__(
        self,
        config: BackupConfig,
        fire: Callable[[BackupScope], object],
        *,
        on_state: Callable[[ScheduleState], None] | None = None,
        stop_event: threading.Event | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._enabled = config.auto_enabled
        self._scope = config.scope
        self._time_of_day = resolve_time_of_day(config.time) if config.auto_enabled else None
        self._fire_callback = fire
        self._on_state = on_state
        self._stop_event = stop_event or threading.Event()
        self._clock = clock
        self._lock = threading.Lock()
        self._phase = SchedulePhase.IDLE
        self._next_fire_at: datetime | None = None
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> ScheduleState:
        """현재 스케줄 상태."""
        with self._lock:
            return ScheduleState(
                enabled=self._enabled,
                scope=self._scope,
                phase=self._phase,
                next_fire_at=self._next_fire_at,
            )

    def next_fire_time(self, now: datetime | None = None) -> datetime | None:
        """``now`` 기준 다음 실행 시각 (비활성화면 None)."""
        if self._time_of_day is None:
            return None
        return compute_next_fire(self._time_of_day, now or self._clock())

    def start(self) -> None:
        """스케줄러 스레드 시작. 자동 백업이 꺼져 있으면 상태만 게시한다."""
        if not self._enabled:
            logger.info("Scheduled backups disabled")
            self._publish()
            return
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Scheduler is already running")

        logger.info("Scheduled backups enabled at %s", self._time_of_day)
        self._arm()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="BackupScheduler",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """종료 신호를 보내고 스레드를 기다린다 (실행 중 백업은 기다리지 않음)."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def _arm(self) -> None:
        """다음 실행 시각 계산 후 ARMED 전환."""
        next_fire = self.next_fire_time()
        with self._lock:
            self._phase = SchedulePhase.ARMED
            self._next_fire_at = next_fire
        if next_fire is not None:
            logger.info(
                "Next scheduled backup in %s (at %s)",
                next_fire - self._clock(),
                next_fire.strftime("%Y-%m-%d %H:%M:%S"),
            )
        self._publish()

    def _fire(self) -> None:
        """FIRING 전환 후 백업 실행, 결과와 무관하게 다시 ARMED."""
        with self._lock:
            self._phase = SchedulePhase.FIRING
        self._publish()

        logger.info("Running scheduled backup (%s)...", self._scope.value)
        try:
            self._fire_callback(self._scope)
        except Exception:
            logger.exception("Scheduled backup raised an unexpected error")
        finally:
            self._arm()

    def _run_loop(self) -> None:
        """대기 → 실행 반복. 종료 신호가 오면 다음 깨어나는 시점에 빠져나간다."""
        while True:
            target = self.state.next_fire_at
            if target is None or not self._wait_until(target):
                break
            self._fire()
        logger.debug("Scheduler loop stopped")

    def _wait_until(self, target: datetime) -> bool:
        """``target`` 까지 대기.

        Returns:
            시각에 도달하면 True, 종료 신호를 받으면 False
        """
        while not self._stop_event.is_set():
            remaining = (target - self._clock()).total_seconds()
            if remaining <= 0:
                return True
            if self._stop_event.wait(min(remaining, MAX_WAIT_SLICE_SEC)):
                return False
        return False

    def _publish(self) -> None:
        """상태 콜백 호출."""
        if self._on_state is not None:
            self._on_state(self.state)
