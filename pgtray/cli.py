"""pgtray CLI 진입점.

PostgreSQL 서버 상태를 주기적으로 확인하고, 수동/예약 덤프 백업을
실행하는 트레이 앱을 시작한다.

동작 모드:
    - 기본(인자 없음): 트레이 아이콘 + 헬스 체크 루프 + 백업 스케줄러
    - ``--headless``: 트레이 없이 같은 엔진을 실행하고 상태를 로그로 출력
    - ``--check``: 헬스 체크 1회 후 종료 (연결 실패 시 종료 코드 1)
    - ``--backup single|all``: 백업 1회 후 종료 (실패 시 종료 코드 1)
    - ``--init-config``: 기본 설정 파일 생성
    - ``--notify-test``: 알림 채널 테스트
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pgtray import __version__
from pgtray.config import (
    AppConfig,
    ConfigError,
    get_default_config_path,
    get_default_headless,
    load_or_init_config,
    write_default_config,
)
from pgtray.core.monitor import CHECK_INTERVAL_SEC, Monitor
from pgtray.core.status import render_lines
from pgtray.models.status import BackupScope
from pgtray.notification import Notifier

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def create_parser() -> argparse.ArgumentParser:
    """
    CLI 파서 생성.

    Returns:
        argparse.ArgumentParser 인스턴스
    """
    parser = argparse.ArgumentParser(
        prog="pgtray",
        description=f"PostgreSQL 서버를 모니터링하고 백업합니다. (v{__version__})",
        epilog=(
            "예시:\n"
            "  pgtray                      # 트레이 앱 실행\n"
            "  pgtray --check              # 연결 상태 1회 확인\n"
            "  pgtray --backup all         # 전체 서버 백업 1회\n"
            "  pgtray --headless           # 트레이 없이 실행"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="상세 로그 출력",
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="설정 파일 경로 (기본: ~/.pgtray/config.toml, 환경변수: PGTRAY_CONFIG)",
    )

    parser.add_argument(
        "--init-config",
        action="store_true",
        help="기본 설정 파일(config.toml) 생성",
    )

    parser.add_argument(
        "--check",
        action="store_true",
        help="헬스 체크 1회 실행 후 종료",
    )

    parser.add_argument(
        "--backup",
        choices=[scope.value for scope in BackupScope],
        default=None,
        help="백업 1회 실행 후 종료 (single: 설정된 DB, all: 전체 서버)",
    )

    parser.add_argument(
        "--headless",
        action="store_true",
        default=get_default_headless(),
        help="트레이 없이 실행 (환경변수: PGTRAY_HEADLESS)",
    )

    parser.add_argument(
        "--notify-test",
        action="store_true",
        help="설정된 알림 채널로 테스트 알림 전송",
    )

    return parser


def setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """
    로깅 설정 (파일 추가 기록 + 콘솔).

    Args:
        verbose: 상세 로그 여부
        log_file: 로그 파일 경로 (None이면 콘솔만)

    Raises:
        OSError: 로그 파일을 열 수 없을 때
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file, mode="a", encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
    )


def cmd_init_config(path: Path | None = None) -> None:
    """
    --init-config 옵션 처리.

    기본 설정 파일 템플릿을 ``0600`` 권한으로 생성한다.
    기존 파일은 확인 후 ``.bak`` 으로 옮기고 덮어쓴다.
    """
    config_path = path or get_default_config_path()

    if config_path.exists():
        try:
            response = input(f"이미 존재합니다: {config_path}\n덮어쓰시겠습니까? (y/N): ")
        except EOFError:
            response = ""
        if response.strip().lower() not in ("y", "yes"):
            print("취소됨")
            return

    write_default_config(config_path)
    print(f"설정 파일 생성됨: {config_path}")


def cmd_notify_test(config: AppConfig) -> int:
    """--notify-test 옵션 처리. 결과를 출력하고 종료 코드를 반환한다."""
    notifier = Notifier(config.notification)
    if not notifier.channel_names:
        print("활성화된 알림 채널이 없습니다.")
        print("config.toml의 [notification] 섹션을 확인하세요.")
        return 1
    results = notifier.test_notification()
    for provider_name, success in results.items():
        icon = "OK" if success else "FAIL"
        status = "성공" if success else "실패"
        print(f"  [{icon}] {provider_name}: {status}")
    return 0 if all(results.values()) else 1


def cmd_check(monitor: Monitor) -> int:
    """--check 옵션 처리. 연결되면 0, 아니면 1."""
    result = monitor.check_now()
    for line in render_lines(monitor.snapshot()).as_list()[:4]:
        print(line)
    if result is None or not result.connected:
        if result is not None and result.error:
            print(f"Error: {result.error}")
        return 1
    return 0


def cmd_backup(monitor: Monitor, scope: BackupScope) -> int:
    """--backup 옵션 처리. 덤프 성공이면 0 (업로드 실패 포함), 아니면 1."""
    outcome = monitor.run_backup(scope)
    if outcome is None:
        print("백업이 실행되지 않았습니다.")
        return 1
    if not outcome.succeeded:
        print(f"백업 실패: {outcome.status_text}")
        return 1
    print(f"백업 완료: {outcome.artifact_path} ({outcome.status_text})")
    return 0


def run_headless(monitor: Monitor, interval_sec: float = CHECK_INTERVAL_SEC) -> None:
    """트레이 없이 엔진 실행. 종료 신호(Ctrl-C)까지 블록된다."""
    monitor.start()
    stop_event = monitor.stop_event
    try:
        while not stop_event.is_set():
            if stop_event.wait(interval_sec):
                break
            lines = render_lines(monitor.snapshot())
            logger.info("Status: %s", " | ".join(lines.as_list()))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        monitor.shutdown()


def run_tray(monitor: Monitor) -> None:
    """트레이 앱 실행 (메인 스레드에서 블록)."""
    from pgtray.ui.tray import TrayApp

    TrayApp(monitor).run()


def main(argv: list[str] | None = None) -> None:
    """CLI 진입점.

    인자를 파싱하고 설정을 로드한 뒤, 요청된 모드로 라우팅한다.
    설정 파일이 없거나 잘못되었으면 기본 파일을 기록하고
    "설정 필요" 상태로 동작한다.
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    config_path = Path(args.config) if args.config else None

    # --init-config 처리 (가장 먼저, 로깅/설정 로드 전)
    if args.init_config:
        try:
            cmd_init_config(config_path)
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        return

    try:
        config, needs_configuration = load_or_init_config(config_path)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        setup_logging(args.verbose, config.log.file)
    except OSError as e:
        print(f"Error: cannot open log file {config.log.file}: {e}", file=sys.stderr)
        sys.exit(1)

    if needs_configuration:
        logger.warning(
            "Please edit %s and restart",
            config_path or get_default_config_path(),
        )

    # --notify-test 처리
    if args.notify_test:
        sys.exit(cmd_notify_test(config))

    monitor = Monitor(config, needs_configuration=needs_configuration)

    try:
        if args.check:
            sys.exit(cmd_check(monitor))

        if args.backup is not None:
            sys.exit(cmd_backup(monitor, BackupScope(args.backup)))

        if args.headless:
            if needs_configuration:
                sys.exit(1)
            run_headless(monitor)
            return

        run_tray(monitor)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        monitor.shutdown()
        sys.exit(130)


if __name__ == "__main__":
    main()
