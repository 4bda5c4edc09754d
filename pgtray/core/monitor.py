"""모니터 오케스트레이터.

헬스 체크 주기 루프, 백업 스케줄러, 수동 명령 진입점을 한곳에서 묶는다.
트레이 UI와 헤드리스 모드, 단발 CLI 명령이 모두 같은 진입점을 사용한다.

스레드 구성:
    - ``HealthCheck``: 30초마다 프로브 실행 (자기 자신과 겹치지 않음)
    - ``BackupScheduler``: 대기 후 백업 실행 루프
    - 수동 명령마다 짧게 사는 스레드 1개

모든 스레드는 하나의 종료 이벤트를 공유하고, 상태는
:class:`~pgtray.core.status.StatusAggregator` 로만 주고받는다.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from pgtray.config import AppConfig
from pgtray.core.backup import BackupExecutor, BackupInProgressError
from pgtray.core.prober import HealthProber
from pgtray.core.scheduler import BackupScheduler
from pgtray.core.status import StatusAggregator
from pgtray.models.status import (
    BackupOutcome,
    BackupScope,
    DisplaySnapshot,
    ProbeResult,
    ScheduleState,
    UploadState,
)
from pgtray.notification import (
    NotificationEvent,
    Notifier,
    backup_complete_event,
    backup_failed_event,
    connection_lost_event,
    connection_restored_event,
    upload_failed_event,
)
from pgtray.upload.webdav import WebDAVUploader

logger = logging.getLogger(__name__)

# 헬스 체크 주기 (초)
CHECK_INTERVAL_SEC = 30.0

NOTICE_BACKUP_STARTED = "Creating database backup..."
NOTICE_BACKUP_RUNNING = "Backup already running"
NOTICE_BACKUP_FAILED = "Backup failed - check logs"
NOTICE_NOT_CONFIGURED = "Please edit the config file and restart"


class Monitor:
    """모니터링·백업 엔진.

    Args:
        config: 애플리케이션 설정
        needs_configuration: True이면 프로브·백업을 수행하지 않는다
        prober: 헬스 프로버 (None이면 설정으로 생성)
        executor: 백업 실행기 (None이면 설정으로 생성)
        notifier: 알림 오케스트레이터 (None이면 설정으로 생성)
        interval_sec: 헬스 체크 주기
        clock: 현재 시각 제공자
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        needs_configuration: bool = False,
        prober: HealthProber | None = None,
        executor: BackupExecutor | None = None,
        notifier: Notifier | None = None,
        interval_sec: float = CHECK_INTERVAL_SEC,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config
        self._needs_configuration = needs_configuration
        self._interval_sec = interval_sec
        self._clock = clock
        self._stop_event = threading.Event()
        self._probe_lock = threading.Lock()
        self._health_thread: threading.Thread | None = None
        self._last_connected: bool | None = None

        self._prober = prober or HealthProber(config.database, clock=clock)
        if executor is None:
            uploader = WebDAVUploader(config.remote) if config.remote.is_active else None
            executor = BackupExecutor(config.database, config.backup, uploader=uploader, clock=clock)
        self._executor = executor
        self._notifier = notifier or Notifier(config.notification)

        self._scheduler = BackupScheduler(
            config.backup,
            self.run_backup,
            on_state=self._on_schedule,
            stop_event=self._stop_event,
            clock=clock,
        )
        self._aggregator = StatusAggregator(
            self._scheduler.state,
            needs_configuration=needs_configuration,
        )
        if needs_configuration:
            self._aggregator.observe_notice(NOTICE_NOT_CONFIGURED)

    @property
    def aggregator(self) -> StatusAggregator:
        """상태 집계기."""
        return self._aggregator

    @property
    def scheduler(self) -> BackupScheduler:
        """백업 스케줄러."""
        return self._scheduler

    @property
    def stop_event(self) -> threading.Event:
        """공유 종료 신호."""
        return self._stop_event

    @property
    def needs_configuration(self) -> bool:
        """설정 편집이 필요한 상태인지 여부."""
        return self._needs_configuration

    def snapshot(self) -> DisplaySnapshot:
        """현재 표시 스냅샷."""
        return self._aggregator.snapshot()

    def start(self) -> None:
        """헬스 체크 루프와 스케줄러 시작.

        설정이 필요한 상태면 아무 루프도 시작하지 않는다.
        """
        if self._needs_configuration:
            logger.warning("Configuration required, monitoring not started")
            return

        logger.info(
            "Monitoring %s:%d every %.0fs",
            self._config.database.host,
            self._config.database.port,
            self._interval_sec,
        )
        self._health_thread = threading.Thread(
            target=self._health_loop,
            name="HealthCheck",
            daemon=True,
        )
        self._health_thread.start()
        self._scheduler.start()

    def shutdown(self, timeout: float = 5.0) -> None:
        """모든 루프에 종료 신호를 보낸다. 실행 중인 백업은 기다리지 않는다."""
        logger.info("Shutting down...")
        self._stop_event.set()
        self._prober.abort()
        self._scheduler.stop(timeout=timeout)
        if self._health_thread is not None and self._health_thread.is_alive():
            self._health_thread.join(timeout=timeout)

    # ------------------------------------------------------------------
    # 헬스 체크
    # ------------------------------------------------------------------

    def check_now(self) -> ProbeResult | None:
        """프로브 1회 실행 후 결과 반영.

        Returns:
            프로브 결과. 다른 프로브가 실행 중이거나 설정이 필요하면 None.
        """
        if self._needs_configuration:
            return None
        if not self._probe_lock.acquire(blocking=False):
            logger.debug("Probe already in flight, skipping")
            return None
        try:
            result = self._prober.probe()
            self._aggregator.observe_probe(result)
            event = self._connection_change(result)
        finally:
            self._probe_lock.release()

        if event is not None:
            self._notifier.notify(event)
        return result

    def refresh(self) -> None:
        """수동 새로고침 (별도 스레드에서 프로브 실행)."""
        self._spawn(self._safe_check, "ManualRefresh")

    def _safe_check(self) -> None:
        try:
            self.check_now()
        except Exception:
            logger.exception("Health check raised an unexpected error")

    def _health_loop(self) -> None:
        """주기 루프. 프로브가 끝난 뒤에만 다음 대기가 시작된다."""
        while not self._stop_event.is_set():
            self._safe_check()
            if self._stop_event.wait(self._interval_sec):
                break
        logger.debug("Health check loop stopped")

    def _connection_change(self, result: ProbeResult) -> NotificationEvent | None:
        """연결 상태 전이에 해당하는 알림 이벤트. 최초 관측은 끊김만 알린다.

        프로브 잠금을 쥔 상태에서 호출된다.
        """
        previous = self._last_connected
        self._last_connected = result.connected
        host = self._config.database.host
        if result.connected and previous is False:
            return connection_restored_event(host=host)
        if not result.connected and previous is not False:
            return connection_lost_event(host=host, error=result.error or "")
        return None

    # ------------------------------------------------------------------
    # 백업
    # ------------------------------------------------------------------

    def backup(self, scope: BackupScope) -> None:
        """수동 백업 (별도 스레드에서 실행)."""
        self._spawn(lambda: self._manual_backup(scope), f"ManualBackup-{scope.value}")

    def _manual_backup(self, scope: BackupScope) -> None:
        outcome = self.run_backup(scope)
        if outcome is not None and outcome.succeeded and self._scheduler.state.enabled:
            self._aggregator.observe_schedule(self._scheduler.state)

    def run_backup(self, scope: BackupScope) -> BackupOutcome | None:
        """백업 1회를 동기 실행하고 결과를 상태·알림에 반영.

        스케줄러와 수동 명령이 공유하는 진입점.

        Returns:
            백업 결과. 거절되었으면 None.
        """
        if self._needs_configuration:
            logger.warning("Backup skipped: configuration required")
            self._aggregator.observe_notice(NOTICE_NOT_CONFIGURED)
            return None

        try:
            outcome = self._executor.run(scope, on_start=self._on_backup_started)
        except BackupInProgressError:
            self._aggregator.observe_notice(NOTICE_BACKUP_RUNNING)
            return None
        except Exception:
            logger.exception("Backup raised an unexpected error")
            outcome = BackupOutcome(
                artifact_path=self._executor.backup_dir,
                scope=scope,
                succeeded=False,
                finished_at=self._clock(),
                error="unexpected error",
            )

        self._aggregator.observe_backup(outcome)
        self._aggregator.observe_notice(self._outcome_notice(outcome))
        self._notify_outcome(outcome)
        return outcome

    def _on_backup_started(self, scope: BackupScope) -> None:
        self._aggregator.observe_backup_started(scope)
        self._aggregator.observe_notice(NOTICE_BACKUP_STARTED)

    @staticmethod
    def _outcome_notice(outcome: BackupOutcome) -> str:
        if not outcome.succeeded:
            return NOTICE_BACKUP_FAILED
        if outcome.upload_state is UploadState.UPLOAD_FAILED:
            return f"Backup saved locally ({outcome.size_kb:.2f} KB), upload failed"
        return f"Backup complete: {outcome.size_kb:.2f} KB"

    def _notify_outcome(self, outcome: BackupOutcome) -> None:
        if not outcome.succeeded:
            self._notifier.notify(backup_failed_event(outcome))
            return
        if outcome.upload_state is UploadState.UPLOAD_FAILED:
            self._notifier.notify(upload_failed_event(outcome))
        self._notifier.notify(backup_complete_event(outcome))

    def _on_schedule(self, state: ScheduleState) -> None:
        self._aggregator.observe_schedule(state)

    def _spawn(self, target: Callable[[], None], name: str) -> threading.Thread:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        return thread
