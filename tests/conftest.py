"""pytest 설정 및 공통 fixture."""

from __future__ import annotations

import os
import threading
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# 헤드리스 환경(디스플레이 없음)에서 pystray import 가 실패하지 않도록 dummy 백엔드 기본값 사용
os.environ.setdefault("PYSTRAY_BACKEND", "dummy")

from pgtray.config import (
    ENV_BACKUP_DIR,
    ENV_CONFIG_PATH,
    ENV_DB_PASSWORD,
    ENV_HEADLESS,
    ENV_LOG_FILE,
    ENV_REMOTE_PASSWORD,
    BackupConfig,
    DatabaseConfig,
)


class FakeClock:
    """테스트용 수동 시계 (스레드 안전)."""

    def __init__(self, start: datetime) -> None:
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta) -> None:
        with self._lock:
            self._now += delta

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = value


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """테스트 간 PGTRAY_* 환경변수 격리."""
    for key in (
        ENV_CONFIG_PATH,
        ENV_LOG_FILE,
        ENV_DB_PASSWORD,
        ENV_REMOTE_PASSWORD,
        ENV_BACKUP_DIR,
        ENV_HEADLESS,
    ):
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def db_config() -> DatabaseConfig:
    """테스트용 접속 설정."""
    return DatabaseConfig(
        host="db.example.com",
        port=5433,
        user="backup_user",
        password="s3cret-pw",
        dbname="appdb",
    )


@pytest.fixture
def backup_config(tmp_path: Path) -> BackupConfig:
    """tmp_path 아래로 출력하는 백업 설정."""
    return BackupConfig(directory=str(tmp_path / "backups"), prefix="test")


@pytest.fixture
def clock() -> FakeClock:
    """2026-03-10 14:30:00 에서 시작하는 수동 시계."""
    return FakeClock(datetime(2026, 3, 10, 14, 30, 0))
