"""pystray 기반 트레이 아이콘.

메뉴 라벨은 호출될 때마다 :class:`~pgtray.core.monitor.Monitor` 의 최신
스냅샷에서 계산한다. 별도 갱신 스레드가 주기적으로 메뉴·아이콘·툴팁을 다시 그린다.
"""

from __future__ import annotations

import logging
from datetime import datetime

import pystray

from pgtray.core.monitor import Monitor
from pgtray.core.status import render_lines
from pgtray.models.status import BackupScope
from pgtray.ui.icon import draw_icon
from pgtray.ui.menu import (
    QUIT_LABEL,
    REFRESH_LABEL,
    backup_enabled,
    backup_label,
    info_line,
    refresh_enabled,
)

logger = logging.getLogger(__name__)

APP_NAME = "pgtray"

# 메뉴·아이콘 갱신 주기 (초)
UI_REFRESH_SEC = 5.0

# 일부 플랫폼의 툴팁 길이 제한
MAX_TOOLTIP_LEN = 63

INFO_LINE_COUNT = 6


class TrayApp:
    """트레이 아이콘과 메뉴.

    Args:
        monitor: 모니터 엔진 (시작 전 상태여도 됨)
    """

    def __init__(self, monitor: Monitor) -> None:
        self._monitor = monitor
        self._connected: bool | None = None
        self._icon = pystray.Icon(
            APP_NAME,
            icon=draw_icon(False),
            title=self._tooltip(),
            menu=self._build_menu(),
        )

    def run(self) -> None:
        """트레이 이벤트 루프 실행 (메인 스레드에서 블록).

        루프가 끝나면 메뉴 콜백 밖에서 모니터를 종료한다.
        """
        try:
            self._icon.run(setup=self._setup)
        finally:
            self._monitor.shutdown()

    def _setup(self, icon: pystray.Icon) -> None:
        icon.visible = True
        self._monitor.start()
        self._update_loop()

    def _update_loop(self) -> None:
        stop_event = self._monitor.stop_event
        while not stop_event.is_set():
            try:
                self._refresh_ui()
            except Exception:
                logger.exception("Error updating tray")
            if stop_event.wait(UI_REFRESH_SEC):
                break

    def _refresh_ui(self) -> None:
        snapshot = self._monitor.snapshot()
        if snapshot.connected != self._connected:
            self._connected = snapshot.connected
            self._icon.icon = draw_icon(snapshot.connected)
        self._icon.title = self._tooltip()
        self._icon.update_menu()

    def _tooltip(self) -> str:
        tooltip = render_lines(self._monitor.snapshot()).tooltip
        return tooltip[:MAX_TOOLTIP_LEN]

    def _build_menu(self) -> pystray.Menu:
        info_items = [
            pystray.MenuItem(self._info_text(index), None, enabled=False)
            for index in range(INFO_LINE_COUNT)
        ]
        return pystray.Menu(
            *info_items,
            pystray.Menu.SEPARATOR,
            pystray.MenuItem(
                REFRESH_LABEL,
                self._on_refresh,
                enabled=lambda item: refresh_enabled(self._monitor.snapshot()),
            ),
            pystray.MenuItem(
                lambda item: backup_label(BackupScope.SINGLE, self._monitor.snapshot()),
                self._on_backup_single,
                enabled=lambda item: backup_enabled(self._monitor.snapshot()),
            ),
            pystray.MenuItem(
                lambda item: backup_label(BackupScope.ALL, self._monitor.snapshot()),
                self._on_backup_all,
                enabled=lambda item: backup_enabled(self._monitor.snapshot()),
            ),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem(QUIT_LABEL, self._on_quit),
        )

    def _info_text(self, index: int):
        return lambda item: info_line(self._monitor.snapshot(), index, datetime.now())

    def _on_refresh(self, icon: pystray.Icon, item: pystray.MenuItem) -> None:
        logger.info("Manual refresh requested")
        self._monitor.refresh()

    def _on_backup_single(self, icon: pystray.Icon, item: pystray.MenuItem) -> None:
        logger.info("Manual backup requested (single)")
        self._monitor.backup(BackupScope.SINGLE)

    def _on_backup_all(self, icon: pystray.Icon, item: pystray.MenuItem) -> None:
        logger.info("Manual backup requested (all)")
        self._monitor.backup(BackupScope.ALL)

    def _on_quit(self, icon: pystray.Icon, item: pystray.MenuItem) -> None:
        logger.info("Quit requested")
        self._monitor.stop_event.set()
        icon.stop()
