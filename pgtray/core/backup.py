"""덤프 기반 백업 실행기.

``pg_dump`` (단일 DB) / ``pg_dumpall`` (전체 서버)을 서브프로세스로 실행해
타임스탬프가 붙은 ``.sql`` 파일을 만들고, 설정에 따라 원격 저장소로 업로드한다.

- 비밀번호는 자식 프로세스 환경변수 ``PGPASSWORD`` 로만 전달한다 (argv/로그 제외)
- 종료 코드가 0이 아니거나 결과 파일이 없거나 비어 있으면 실패이며,
  부분 파일은 삭제한다
- 업로드 실패는 백업 실패가 아니다 ("local only"). 로컬 파일은 보존한다
- 시스템 전체에서 동시에 하나의 백업만 실행된다. 실행 중 요청은
  대기하지 않고 :class:`BackupInProgressError` 로 즉시 거절한다
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol

from pgtray.config import BackupConfig, DatabaseConfig
from pgtray.models.status import (
    EMPTY_ARTIFACT_ERROR,
    BackupOutcome,
    BackupScope,
    UploadState,
)
from pgtray.upload.webdav import UploadResult

logger = logging.getLogger(__name__)

# 백업 파일명 타임스탬프 형식: YYYYMMDD_HHMMSS
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# 자식 프로세스에만 주입하는 비밀번호 환경변수 (libpq 규약)
PASSWORD_ENV = "PGPASSWORD"


class BackupToolError(Exception):
    """덤프 도구 실행 실패 (0이 아닌 종료 코드, 타임아웃, 실행 파일 없음).

    Attributes:
        stderr: 덤프 도구 stderr 전체 출력 (디버깅용)
    """

    def __init__(self, message: str, stderr: str | None = None) -> None:
        """초기화."""
        super().__init__(message)
        self.stderr = stderr

    def __str__(self) -> str:
        """에러 메시지와 stderr 마지막 줄들을 함께 표시."""
        base = super().__str__()
        if not self.stderr or not self.stderr.strip():
            return base
        lines = self.stderr.strip().splitlines()
        tail = lines[-10:]
        return f"{base}\n--- stderr (last {len(tail)} lines) ---\n" + "\n".join(tail)


class BackupInProgressError(Exception):
    """다른 백업이 실행 중이라 요청을 거절했을 때 발생하는 예외."""

    def __init__(self, scope: BackupScope) -> None:
        """초기화."""
        super().__init__(f"backup already running (requested scope: {scope.value})")
        self.scope = scope


@dataclass(frozen=True)
class CommandResult:
    """서브프로세스 실행 결과 (stdout/stderr 분리)."""

    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    """서브프로세스 실행 인터페이스 (테스트에서 가짜 구현으로 교체)."""

    def __call__(
        self,
        cmd: list[str],
        *,
        env: dict[str, str],
        timeout: float | None,
    ) -> CommandResult:
        """명령 실행.

        Raises:
            FileNotFoundError: 실행 파일 없음
            subprocess.TimeoutExpired: 제한 시간 초과
        """
        ...


class Uploader(Protocol):
    """백업 파일 업로더 인터페이스."""

    def upload(self, path: Path) -> UploadResult:
        """파일 업로드. 실패해도 예외를 발생시키지 않는다."""
        ...


def run_command(
    cmd: list[str],
    *,
    env: dict[str, str],
    timeout: float | None,
) -> CommandResult:
    """``subprocess.run`` 기반 기본 실행기.

    stderr는 로캘에 따라 UTF-8이 아닐 수 있으므로 디코딩 오류를 치환 문자로 바꾼다.
    """
    result = subprocess.run(
        cmd,
        env=env,
        capture_output=True,
        text=True,
        errors="replace",
        timeout=timeout,
        check=False,
    )
    return CommandResult(
        returncode=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
    )


class BackupExecutor:
    """``pg_dump`` / ``pg_dumpall`` 래퍼.

    Args:
        database: 접속 설정
        backup: 출력 위치·도구 경로·타임아웃 설정
        uploader: 업로더 (None이면 업로드하지 않음)
        runner: 서브프로세스 실행기
        clock: 현재 시각 제공자
    """

    def __init__(
        self,
        database: DatabaseConfig,
        backup: BackupConfig,
        *,
        uploader: Uploader | None = None,
        runner: CommandRunner = run_command,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._database = database
        self._backup = backup
        self._uploader = uploader
        self._runner = runner
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def backup_dir(self) -> Path:
        """백업 출력 디렉토리."""
        return Path(self._backup.directory)

    @property
    def is_running(self) -> bool:
        """백업 실행 중 여부."""
        return self._lock.locked()

    def build_artifact_path(self, scope: BackupScope, timestamp: datetime) -> Path:
        """백업 파일 경로 생성.

        ``<prefix>_<dbname>_backup_<ts>.sql`` (단일) /
        ``<prefix>_all_databases_backup_<ts>.sql`` (전체)
        """
        stamp = timestamp.strftime(TIMESTAMP_FORMAT)
        target = "all_databases" if scope is BackupScope.ALL else self._database.dbname
        return self.backup_dir / f"{self._backup.prefix}_{target}_backup_{stamp}.sql"

    def build_command(self, scope: BackupScope, artifact: Path) -> list[str]:
        """덤프 명령 구성. 비밀번호는 포함하지 않는다."""
        tool = self._backup.pg_dumpall_path if scope is BackupScope.ALL else self._backup.pg_dump_path
        cmd = [
            tool,
            "-h",
            self._database.host,
            "-p",
            str(self._database.port),
            "-U",
            self._database.user,
            # 비밀번호 프롬프트로 대기하지 않음
            "-w",
            "-f",
            str(artifact),
        ]
        if scope is BackupScope.SINGLE:
            cmd.append(self._database.dbname)
        return cmd

    def _build_env(self) -> dict[str, str]:
        """자식 프로세스 환경변수 구성 (현재 프로세스 환경은 변경하지 않음)."""
        env = os.environ.copy()
        env[PASSWORD_ENV] = self._database.password
        return env

    def run(
        self,
        scope: BackupScope,
        *,
        on_start: Callable[[BackupScope], None] | None = None,
    ) -> BackupOutcome:
        """백업 1회 실행.

        Args:
            scope: 백업 범위
            on_start: 실행 권한을 얻은 직후 호출되는 콜백

        Returns:
            BackupOutcome (덤프 실패도 예외 없이 실패 결과로 반환)

        Raises:
            BackupInProgressError: 다른 백업이 실행 중
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("Backup request rejected: already running (%s)", scope.value)
            raise BackupInProgressError(scope)
        try:
            if on_start is not None:
                on_start(scope)
            return self._run_locked(scope)
        finally:
            self._lock.release()

    def _run_locked(self, scope: BackupScope) -> BackupOutcome:
        """잠금을 얻은 상태에서 덤프·검증·업로드 수행."""
        artifact = self.build_artifact_path(scope, self._clock())

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create backup directory: %s", e)
            return self._failed(artifact, scope, f"failed to create backup directory: {e}")

        if scope is BackupScope.ALL:
            logger.info("Starting full server backup to: %s", artifact)
        else:
            logger.info("Starting backup to: %s", artifact)
        logger.info(
            "Connection: host=%s port=%d user=%s",
            self._database.host,
            self._database.port,
            self._database.user,
        )

        try:
            self._dump(scope, artifact)
        except BackupToolError as e:
            logger.error("Backup failed: %s", e)
            self._remove_partial(artifact)
            return self._failed(artifact, scope, str(e))
        except Exception:
            self._remove_partial(artifact)
            raise

        if not artifact.is_file():
            logger.error("Backup file not found: %s", artifact)
            return self._failed(artifact, scope, "backup file not found")

        size = artifact.stat().st_size
        if size == 0:
            logger.warning("WARNING: Backup file is empty (0 bytes): %s", artifact)
            self._remove_partial(artifact)
            return self._failed(artifact, scope, EMPTY_ARTIFACT_ERROR)

        logger.info("Backup completed successfully: %s (%.2f KB)", artifact, size / 1024.0)

        upload_state = UploadState.NONE
        if self._uploader is not None:
            result = self._uploader.upload(artifact)
            if result.success:
                logger.info("Successfully uploaded backup: %s", result.url)
                upload_state = UploadState.UPLOADED
            else:
                logger.warning("Upload failed, backup kept locally: %s", result.message)
                upload_state = UploadState.UPLOAD_FAILED

        return BackupOutcome(
            artifact_path=artifact,
            scope=scope,
            succeeded=True,
            finished_at=self._clock(),
            size_bytes=size,
            upload_state=upload_state,
        )

    def _dump(self, scope: BackupScope, artifact: Path) -> None:
        """덤프 도구 실행.

        Raises:
            BackupToolError: 실행 파일 없음, 타임아웃, 0이 아닌 종료 코드
        """
        cmd = self.build_command(scope, artifact)
        logger.info("Running: %s", " ".join(cmd))
        try:
            result = self._runner(cmd, env=self._build_env(), timeout=self._backup.timeout_sec)
        except FileNotFoundError as e:
            raise BackupToolError(f"{cmd[0]} not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else e.stderr
            raise BackupToolError(
                f"{cmd[0]} timed out after {self._backup.timeout_sec}s",
                stderr=stderr,
            ) from e
        except OSError as e:
            raise BackupToolError(f"{cmd[0]} failed to start: {e}") from e

        if result.stdout.strip():
            logger.info("Backup output: %s", result.stdout.strip())
        if result.returncode != 0:
            raise BackupToolError(
                f"{cmd[0]} failed with exit code {result.returncode}",
                stderr=result.stderr,
            )

    def _remove_partial(self, artifact: Path) -> None:
        """부분/빈 백업 파일 삭제."""
        try:
            artifact.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove partial backup %s: %s", artifact, e)

    def _failed(self, artifact: Path, scope: BackupScope, error: str) -> BackupOutcome:
        """실패 결과 생성."""
        return BackupOutcome(
            artifact_path=artifact,
            scope=scope,
            succeeded=False,
            finished_at=self._clock(),
            error=error,
        )
