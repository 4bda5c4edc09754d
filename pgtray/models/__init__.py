"""도메인 모델 패키지."""

from pgtray.models.status import (
    BackupOutcome,
    BackupScope,
    DisplaySnapshot,
    ProbeResult,
    SchedulePhase,
    ScheduleState,
    UploadState,
)

__all__ = [
    "BackupOutcome",
    "BackupScope",
    "DisplaySnapshot",
    "ProbeResult",
    "SchedulePhase",
    "ScheduleState",
    "UploadState",
]
