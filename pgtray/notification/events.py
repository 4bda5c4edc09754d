"""알림 이벤트 타입 및 데이터 모델.

백업 완료/실패, 업로드 실패, 연결 끊김/복구 이벤트를 나타내는
불변 데이터 모델과 편의 팩토리 함수를 제공한다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pgtray.models.status import BackupOutcome


class EventType(Enum):
    """알림 이벤트 타입.

    값은 ``[notification]`` 섹션의 이벤트별 토글 키와 같다.
    """

    BACKUP_COMPLETE = "on_backup_complete"
    BACKUP_FAILED = "on_backup_failed"
    UPLOAD_FAILED = "on_upload_failed"
    CONNECTION_LOST = "on_connection_lost"
    CONNECTION_RESTORED = "on_connection_restored"


@dataclass(frozen=True)
class NotificationEvent:
    """알림 이벤트 데이터.

    Attributes:
        event_type: 이벤트 종류
        title: 알림 제목 (짧은 한 줄)
        message: 알림 본문
        timestamp: 이벤트 발생 시각
        metadata: 추가 메타데이터 (파일 경로, 크기, 에러 메시지 등)
    """

    event_type: EventType
    title: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, str] = field(default_factory=dict)


def backup_complete_event(outcome: BackupOutcome) -> NotificationEvent:
    """백업 완료 이벤트 생성."""
    return NotificationEvent(
        event_type=EventType.BACKUP_COMPLETE,
        title="Backup complete",
        message=f"{outcome.artifact_path.name}: {outcome.status_text}",
        metadata={
            "artifact_path": str(outcome.artifact_path),
            "scope": outcome.scope.value,
            "size_bytes": str(outcome.size_bytes),
        },
    )


def backup_failed_event(outcome: BackupOutcome) -> NotificationEvent:
    """백업 실패 이벤트 생성. 본문은 오류 첫 줄만 사용한다."""
    error = (outcome.error or "unknown error").strip()
    first_line = error.splitlines()[0] if error else "unknown error"
    return NotificationEvent(
        event_type=EventType.BACKUP_FAILED,
        title="Backup failed",
        message=f"{outcome.scope.label} backup failed: {first_line}",
        metadata={
            "scope": outcome.scope.value,
            "error": error,
        },
    )


def upload_failed_event(outcome: BackupOutcome) -> NotificationEvent:
    """업로드 실패 이벤트 생성 (로컬 백업은 보존됨)."""
    return NotificationEvent(
        event_type=EventType.UPLOAD_FAILED,
        title="Upload failed",
        message=f"Backup saved locally ({outcome.size_kb:.2f} KB), upload failed",
        metadata={
            "artifact_path": str(outcome.artifact_path),
            "size_bytes": str(outcome.size_bytes),
        },
    )


def connection_lost_event(*, host: str, error: str = "") -> NotificationEvent:
    """연결 끊김 이벤트 생성."""
    return NotificationEvent(
        event_type=EventType.CONNECTION_LOST,
        title="Database disconnected",
        message=f"{host} is unreachable" + (f": {error}" if error else ""),
        metadata={"host": host, "error": error},
    )


def connection_restored_event(*, host: str) -> NotificationEvent:
    """연결 복구 이벤트 생성."""
    return NotificationEvent(
        event_type=EventType.CONNECTION_RESTORED,
        title="Database connected",
        message=f"{host} is reachable again",
        metadata={"host": host},
    )
