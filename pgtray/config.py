"""TOML 설정 파일 및 환경변수 기본값 관리.

``~/.pgtray/config.toml`` 에서 접속·백업·업로드·알림 설정을 로드한다.
설정은 프로세스 수명 동안 불변이며 (라이브 리로드 없음),
모든 컴포넌트에 읽기 전용으로 전달된다.

우선순위::

    CLI 옵션 > 환경변수 > config.toml > 기본값

설정 파일이 없거나 해석할 수 없으면 주석 포함 기본 파일을 ``0600`` 권한으로
기록하고, 호출자는 "설정 필요" 상태로 동작한다 (:func:`load_or_init_config`).
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path

from pgtray.models.status import BackupScope

logger = logging.getLogger(__name__)

# 환경변수 매핑
ENV_CONFIG_PATH = "PGTRAY_CONFIG"
ENV_LOG_FILE = "PGTRAY_LOG_FILE"
ENV_DB_PASSWORD = "PGTRAY_DB_PASSWORD"
ENV_REMOTE_PASSWORD = "PGTRAY_REMOTE_PASSWORD"
ENV_BACKUP_DIR = "PGTRAY_BACKUP_DIR"
ENV_HEADLESS = "PGTRAY_HEADLESS"

DEFAULT_BACKUP_TIME = "02:00"
DEFAULT_BACKUP_TIMEOUT_SEC = 3600
DEFAULT_UPLOAD_TIMEOUT_SEC = 600
DEFAULT_LOG_FILE = "pgtray.log"

# 설정 파일 권한: 소유자만 읽기/쓰기 (비밀번호 포함)
CONFIG_FILE_MODE = 0o600


class ConfigError(Exception):
    """설정 파일을 읽거나 기록할 수 없을 때 발생하는 예외.

    Attributes:
        path: 문제가 된 설정 파일 경로
    """

    def __init__(self, message: str, path: Path | None = None) -> None:
        """초기화."""
        super().__init__(message)
        self.path = path


@dataclass(frozen=True)
class DatabaseConfig:
    """``[database]`` 섹션: 모니터링·백업 대상 PostgreSQL 접속 정보."""

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    dbname: str = "postgres"


@dataclass(frozen=True)
class RemoteConfig:
    """``[remote]`` 섹션: WebDAV 업로드 대상 (Nextcloud 등).

    ``url`` 은 업로드 디렉토리 URL이며 파일명이 뒤에 붙는다.
    """

    enabled: bool = False
    url: str = ""
    user: str = ""
    password: str = ""
    timeout_sec: int = DEFAULT_UPLOAD_TIMEOUT_SEC

    @property
    def is_active(self) -> bool:
        """업로드를 실제로 수행할지 여부 (활성화 + URL 설정)."""
        return self.enabled and bool(self.url)


@dataclass(frozen=True)
class BackupConfig:
    """``[backup]`` 섹션: 덤프 도구·출력 위치·자동 백업 스케줄."""

    auto_enabled: bool = True
    time: str = DEFAULT_BACKUP_TIME
    scope: BackupScope = BackupScope.ALL
    directory: str = "backups"
    prefix: str = "pgtray"
    timeout_sec: int = DEFAULT_BACKUP_TIMEOUT_SEC
    pg_dump_path: str = "pg_dump"
    pg_dumpall_path: str = "pg_dumpall"


@dataclass(frozen=True)
class DesktopNotifyConfig:
    """``[notification.desktop]`` 섹션."""

    enabled: bool | None = None
    sound: bool | None = None


@dataclass(frozen=True)
class WebhookConfig:
    """``[notification.discord]`` / ``[notification.slack]`` 섹션."""

    enabled: bool = False
    webhook_url: str | None = None


@dataclass(frozen=True)
class NotificationConfig:
    """``[notification]`` 섹션.

    이벤트별 토글이 ``None`` 이면 활성화로 간주한다.
    """

    enabled: bool = False
    on_backup_complete: bool | None = None
    on_backup_failed: bool | None = None
    on_upload_failed: bool | None = None
    on_connection_lost: bool | None = None
    on_connection_restored: bool | None = None
    desktop: DesktopNotifyConfig = field(default_factory=DesktopNotifyConfig)
    discord: WebhookConfig = field(default_factory=WebhookConfig)
    slack: WebhookConfig = field(default_factory=WebhookConfig)


@dataclass(frozen=True)
class LogConfig:
    """``[log]`` 섹션."""

    file: str = DEFAULT_LOG_FILE


@dataclass(frozen=True)
class AppConfig:
    """애플리케이션 전체 설정."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    log: LogConfig = field(default_factory=LogConfig)


def _warn_type(field_name: str, expected: str, value: object) -> None:
    """타입 불일치 경고 출력."""
    logger.warning(
        "config: %s 타입 오류 (expected %s, got %s)",
        field_name,
        expected,
        type(value).__name__,
    )


def _parse_str(data: dict[str, object], key: str, section: str) -> str | None:
    """TOML dict에서 문자열 필드를 안전하게 파싱한다."""
    raw = data.get(key)
    if isinstance(raw, str):
        return raw
    if raw is not None:
        _warn_type(f"{section}.{key}", "str", raw)
    return None


def _parse_bool(data: dict[str, object], key: str, section: str) -> bool | None:
    """TOML dict에서 bool 필드를 안전하게 파싱한다."""
    raw = data.get(key)
    if isinstance(raw, bool):
        return raw
    if raw is not None:
        _warn_type(f"{section}.{key}", "bool", raw)
    return None


def _parse_int(data: dict[str, object], key: str, section: str) -> int | None:
    """TOML dict에서 정수 필드를 안전하게 파싱한다 (bool 제외)."""
    raw = data.get(key)
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if raw is not None:
        _warn_type(f"{section}.{key}", "int", raw)
    return None


def _parse_positive_int(data: dict[str, object], key: str, section: str) -> int | None:
    """양의 정수 필드 파싱. 0 이하이면 경고 후 무시."""
    value = _parse_int(data, key, section)
    if value is not None and value <= 0:
        logger.warning("config: %s.%s 값 오류: %d (> 0)", section, key, value)
        return None
    return value


def _section(raw: dict[str, object], name: str) -> dict[str, object]:
    """하위 테이블을 꺼낸다. 테이블이 아니면 경고 후 빈 dict."""
    data = raw.get(name, {})
    if isinstance(data, dict):
        return data
    if data:
        logger.warning(
            "config: [%s] 섹션이 테이블이 아닙니다 (got %s)",
            name,
            type(data).__name__,
        )
    return {}


def get_default_config_path() -> Path:
    """기본 설정 파일 경로 반환.

    ``PGTRAY_CONFIG`` 환경변수가 있으면 그 경로를 사용한다.
    """
    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".pgtray" / "config.toml"


def _parse_database(data: dict[str, object]) -> DatabaseConfig:
    """[database] 섹션 파싱. 타입 오류 시 해당 필드는 기본값."""
    section = "database"
    defaults = DatabaseConfig()

    port = _parse_int(data, "port", section)
    if port is not None and not (1 <= port <= 65535):
        logger.warning("config: database.port 범위 초과: %d (1-65535)", port)
        port = None

    return DatabaseConfig(
        host=_parse_str(data, "host", section) or defaults.host,
        port=port if port is not None else defaults.port,
        user=_parse_str(data, "user", section) or defaults.user,
        password=_parse_str(data, "password", section) or defaults.password,
        dbname=_parse_str(data, "dbname", section) or defaults.dbname,
    )


def _parse_remote(data: dict[str, object]) -> RemoteConfig:
    """[remote] 섹션 파싱."""
    section = "remote"
    enabled = _parse_bool(data, "enabled", section)
    timeout_sec = _parse_positive_int(data, "timeout_sec", section)
    return RemoteConfig(
        enabled=bool(enabled),
        url=_parse_str(data, "url", section) or "",
        user=_parse_str(data, "user", section) or "",
        password=_parse_str(data, "password", section) or "",
        timeout_sec=timeout_sec or DEFAULT_UPLOAD_TIMEOUT_SEC,
    )


def _parse_backup(data: dict[str, object]) -> BackupConfig:
    """[backup] 섹션 파싱.

    ``time`` 형식 검증은 스케줄러가 담당한다 (잘못된 값은 02:00으로 대체).
    """
    section = "backup"
    defaults = BackupConfig()

    scope = defaults.scope
    raw_scope = _parse_str(data, "scope", section)
    if raw_scope is not None:
        try:
            scope = BackupScope(raw_scope.strip().lower())
        except ValueError:
            logger.warning("config: backup.scope 값 오류: %r (single/all)", raw_scope)

    auto_enabled = _parse_bool(data, "auto_enabled", section)
    timeout_sec = _parse_positive_int(data, "timeout_sec", section)

    return BackupConfig(
        auto_enabled=defaults.auto_enabled if auto_enabled is None else auto_enabled,
        time=_parse_str(data, "time", section) or defaults.time,
        scope=scope,
        directory=_parse_str(data, "directory", section) or defaults.directory,
        prefix=_parse_str(data, "prefix", section) or defaults.prefix,
        timeout_sec=timeout_sec or defaults.timeout_sec,
        pg_dump_path=_parse_str(data, "pg_dump_path", section) or defaults.pg_dump_path,
        pg_dumpall_path=_parse_str(data, "pg_dumpall_path", section) or defaults.pg_dumpall_path,
    )


def _parse_webhook(data: dict[str, object], section: str) -> WebhookConfig:
    """웹훅 Provider 섹션 파싱."""
    return WebhookConfig(
        enabled=bool(_parse_bool(data, "enabled", section)),
        webhook_url=_parse_str(data, "webhook_url", section),
    )


def _parse_notification(data: dict[str, object]) -> NotificationConfig:
    """[notification] 섹션 및 하위 Provider 섹션 파싱."""
    section = "notification"
    desktop_data = _section(data, "desktop")
    return NotificationConfig(
        enabled=bool(_parse_bool(data, "enabled", section)),
        on_backup_complete=_parse_bool(data, "on_backup_complete", section),
        on_backup_failed=_parse_bool(data, "on_backup_failed", section),
        on_upload_failed=_parse_bool(data, "on_upload_failed", section),
        on_connection_lost=_parse_bool(data, "on_connection_lost", section),
        on_connection_restored=_parse_bool(data, "on_connection_restored", section),
        desktop=DesktopNotifyConfig(
            enabled=_parse_bool(desktop_data, "enabled", "notification.desktop"),
            sound=_parse_bool(desktop_data, "sound", "notification.desktop"),
        ),
        discord=_parse_webhook(_section(data, "discord"), "notification.discord"),
        slack=_parse_webhook(_section(data, "slack"), "notification.slack"),
    )


def _parse_log(data: dict[str, object]) -> LogConfig:
    """[log] 섹션 파싱."""
    return LogConfig(file=_parse_str(data, "file", "log") or DEFAULT_LOG_FILE)


def load_config(path: Path | None = None) -> AppConfig:
    """
    TOML 설정 파일 로드.

    섹션 단위 타입 오류는 경고 후 기본값으로 대체하지만,
    파일이 없거나 TOML 문법 오류, ``[database]`` 섹션 누락은
    :class:`ConfigError` 로 알린다.

    Args:
        path: 설정 파일 경로 (None이면 기본 경로 사용)

    Returns:
        AppConfig

    Raises:
        ConfigError: 파일 없음, 읽기 실패, 문법 오류, 필수 섹션 누락
    """
    config_path = path or get_default_config_path()

    if not config_path.is_file():
        raise ConfigError(f"config file not found: {config_path}", config_path)

    try:
        with config_path.open("rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"TOML 문법 오류 ({config_path}): {e}", config_path) from e
    except OSError as e:
        raise ConfigError(f"파일 읽기 실패 ({config_path}): {e}", config_path) from e

    if not isinstance(raw.get("database"), dict):
        raise ConfigError(f"[database] 섹션이 없습니다 ({config_path})", config_path)

    return AppConfig(
        database=_parse_database(_section(raw, "database")),
        remote=_parse_remote(_section(raw, "remote")),
        backup=_parse_backup(_section(raw, "backup")),
        notification=_parse_notification(_section(raw, "notification")),
        log=_parse_log(_section(raw, "log")),
    )


def write_default_config(path: Path) -> None:
    """
    기본 설정 파일을 ``0600`` 권한으로 기록한다.

    기존 파일이 있으면 ``.bak`` 으로 옮겨 보존한다.

    Raises:
        ConfigError: 디렉토리 생성 또는 파일 기록 실패
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            backup_path = path.with_name(path.name + ".bak")
            path.replace(backup_path)
            logger.warning("Invalid config moved to %s", backup_path)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CONFIG_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(generate_default_config())
        os.chmod(path, CONFIG_FILE_MODE)
    except OSError as e:
        raise ConfigError(f"failed to create config file {path}: {e}", path) from e


def load_or_init_config(path: Path | None = None) -> tuple[AppConfig, bool]:
    """
    설정을 로드하고, 실패하면 기본 파일을 기록한다.

    Args:
        path: 설정 파일 경로 (None이면 기본 경로 사용)

    Returns:
        ``(config, needs_configuration)``. 기본 파일을 새로 기록했다면
        ``needs_configuration`` 이 True이며, 호출자는 추측한 값으로
        동작하지 말고 사용자에게 편집 후 재시작을 안내해야 한다.

    Raises:
        ConfigError: 기본 설정 파일조차 기록할 수 없을 때 (치명적)
    """
    config_path = path or get_default_config_path()
    try:
        return apply_env_overrides(load_config(config_path)), False
    except ConfigError as e:
        logger.warning("Error loading config: %s", e)

    logger.info("Creating default config file: %s", config_path)
    write_default_config(config_path)
    logger.info("Default config created. Please edit %s and restart.", config_path)
    return apply_env_overrides(AppConfig()), True


def apply_env_overrides(config: AppConfig) -> AppConfig:
    """
    환경변수 값을 설정에 덮어쓴 새 AppConfig 반환.

    비밀번호를 설정 파일 대신 환경변수로 주입할 수 있다 (환경변수 > config).
    """
    database = config.database
    remote = config.remote
    backup = config.backup
    log = config.log

    db_password = os.environ.get(ENV_DB_PASSWORD)
    if db_password:
        database = replace(database, password=db_password)
    remote_password = os.environ.get(ENV_REMOTE_PASSWORD)
    if remote_password:
        remote = replace(remote, password=remote_password)
    backup_dir = os.environ.get(ENV_BACKUP_DIR)
    if backup_dir:
        backup = replace(backup, directory=backup_dir)
    log_file = os.environ.get(ENV_LOG_FILE)
    if log_file:
        log = replace(log, file=log_file)

    return replace(config, database=database, remote=remote, backup=backup, log=log)


def generate_default_config() -> str:
    """주석 포함 기본 설정 파일 템플릿 반환."""
    return """\
# pgtray 설정 파일
# 위치: ~/.pgtray/config.toml (PGTRAY_CONFIG 로 변경 가능)
#
# 우선순위: CLI 옵션 > 환경변수 > 이 파일 > 기본값
# 값을 수정한 뒤 pgtray 를 재시작하세요.

[database]
host = "localhost"
port = 5432
user = "postgres"
password = "your_password"                  # PGTRAY_DB_PASSWORD
dbname = "your_database"

[remote]
enabled = false                             # 백업 후 WebDAV 업로드
# url = "https://cloud.example.com/remote.php/dav/files/username/backups/"
# user = ""
# password = ""                             # PGTRAY_REMOTE_PASSWORD
# timeout_sec = 600

[backup]
auto_enabled = true
time = "02:00"                              # 24시간 HH:MM (로컬 시간)
scope = "all"                               # single/all
# directory = "backups"                     # PGTRAY_BACKUP_DIR
# prefix = "pgtray"
# timeout_sec = 3600                        # 덤프 도구 최대 실행 시간
# pg_dump_path = "pg_dump"
# pg_dumpall_path = "pg_dumpall"

[log]
# file = "pgtray.log"                       # PGTRAY_LOG_FILE

[notification]
enabled = false
# on_backup_complete = true
# on_backup_failed = true
# on_upload_failed = true
# on_connection_lost = true
# on_connection_restored = true

[notification.desktop]
# enabled = true                            # notify-send (Linux) / osascript (macOS)
# sound = true

[notification.discord]
# enabled = false
# webhook_url = ""

[notification.slack]
# enabled = false
# webhook_url = ""
"""


# ---------------------------------------------------------------------------
# 환경변수 기본값 헬퍼
# ---------------------------------------------------------------------------


def parse_env_bool(value: str) -> bool:
    """환경변수 문자열을 bool로 변환한다.

    '1', 'true', 'yes', 'y', 'on' (대소문자 무시)이면 True, 그 외 False.
    """
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def get_default_headless() -> bool:
    """환경변수 ``PGTRAY_HEADLESS`` 에서 트레이 없이 실행할지 여부를 가져온다."""
    env_val = os.environ.get(ENV_HEADLESS)
    if env_val is None:
        return False
    return parse_env_bool(env_val)
