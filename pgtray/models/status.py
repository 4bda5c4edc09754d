"""모니터링·백업 상태 도메인 모델.

헬스 체크, 백업, 스케줄러가 생산하는 불변 레코드와
트레이에 표시되는 집계 스냅샷을 정의한다.

클래스:
    - :class:`BackupScope`: 백업 범위 (단일 DB / 전체 서버)
    - :class:`UploadState`: 원격 저장소 업로드 상태
    - :class:`SchedulePhase`: 스케줄러 상태 (idle → armed → firing)
    - :class:`ProbeResult`: 단일 헬스 체크 결과
    - :class:`BackupOutcome`: 단일 백업 실행 결과
    - :class:`ScheduleState`: 다음 자동 백업 예정 정보
    - :class:`DisplaySnapshot`: 트레이에 표시되는 집계 상태
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

# 덤프는 성공했지만 결과 파일이 비어 있을 때의 오류 메시지
EMPTY_ARTIFACT_ERROR = "backup file is empty"


class BackupScope(Enum):
    """백업 범위."""

    SINGLE = "single"
    ALL = "all"

    @property
    def label(self) -> str:
        """메뉴·상태 표시용 짧은 라벨."""
        return "All DBs" if self is BackupScope.ALL else "DB"


class UploadState(Enum):
    """원격 저장소 업로드 상태."""

    NONE = "none"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"


class SchedulePhase(Enum):
    """스케줄러 상태.

    상태 전이: ``IDLE`` -> ``ARMED`` -> ``FIRING`` -> ``ARMED`` ...
    """

    IDLE = "idle"
    ARMED = "armed"
    FIRING = "firing"


@dataclass(frozen=True)
class ProbeResult:
    """단일 헬스 체크 결과.

    Attributes:
        connected: 연결 및 liveness ping 성공 여부
        observed_at: 체크 완료 시각
        active_connections: 활성 세션 수 (조회 실패 시 ``None``)
        uptime: 서버 가동 시간 문자열 (조회 실패 시 ``None``)
        error: 연결 실패 원인
    """

    connected: bool
    observed_at: datetime
    active_connections: int | None = None
    uptime: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class BackupOutcome:
    """단일 백업 실행 결과.

    Attributes:
        artifact_path: 백업 파일 경로 (실패 시 삭제되었을 수 있음)
        scope: 백업 범위
        succeeded: 덤프 성공 여부 (업로드 실패와 무관)
        finished_at: 실행 완료 시각
        size_bytes: 백업 파일 크기
        upload_state: 업로드 상태
        error: 실패 원인 (stderr 요약 등)
    """

    artifact_path: Path
    scope: BackupScope
    succeeded: bool
    finished_at: datetime
    size_bytes: int = 0
    upload_state: UploadState = UploadState.NONE
    error: str | None = None

    @property
    def size_kb(self) -> float:
        """킬로바이트 단위 크기."""
        return self.size_bytes / 1024.0

    @property
    def status_text(self) -> str:
        """``Last Backup`` 라인에 붙는 결과 요약."""
        if not self.succeeded:
            if self.error == EMPTY_ARTIFACT_ERROR:
                return "Failed (empty file)"
            return "Failed"
        if self.upload_state is UploadState.UPLOADED:
            return f"{self.size_kb:.2f} KB (cloud)"
        if self.upload_state is UploadState.UPLOAD_FAILED:
            return f"{self.size_kb:.2f} KB (local only)"
        return f"{self.size_kb:.2f} KB"


@dataclass(frozen=True)
class ScheduleState:
    """자동 백업 스케줄 상태.

    Attributes:
        enabled: 자동 백업 활성화 여부
        scope: 자동 백업 범위
        phase: 스케줄러 현재 상태
        next_fire_at: 다음 실행 예정 시각 (계산 전이면 ``None``)
    """

    enabled: bool
    scope: BackupScope
    phase: SchedulePhase = SchedulePhase.IDLE
    next_fire_at: datetime | None = None


@dataclass(frozen=True)
class DisplaySnapshot:
    """트레이에 표시되는 집계 상태.

    :class:`~pgtray.core.status.StatusAggregator` 만 생성하며,
    읽는 쪽은 항상 일관된 전체 스냅샷을 받는다.
    상대 시간 문자열은 저장하지 않고 읽는 시점에 계산한다.
    """

    schedule: ScheduleState
    probe: ProbeResult | None = None
    last_backup: BackupOutcome | None = None
    last_success_at: datetime | None = None
    running_scope: BackupScope | None = None
    notice: str | None = None
    needs_configuration: bool = False

    @property
    def connected(self) -> bool:
        """마지막 체크 기준 연결 여부."""
        return self.probe is not None and self.probe.connected

    @property
    def backup_running(self) -> bool:
        """백업 실행 중 여부."""
        return self.running_scope is not None
