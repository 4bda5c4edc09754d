"""알림 제공자(Provider) 인터페이스 및 구현체.

데스크톱 알림(Linux ``notify-send`` / macOS ``osascript``),
Discord, Slack 웹훅을 지원한다.
외부 의존성 없이 subprocess와 urllib.request로 구현.
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
import urllib.error
import urllib.request
from typing import Protocol

from pgtray.notification.events import EventType, NotificationEvent

logger = logging.getLogger(__name__)

# HTTP 요청 타임아웃 (초)
WEBHOOK_TIMEOUT_SECONDS = 10

# 데스크톱 알림 명령 타임아웃 (초)
DESKTOP_TIMEOUT_SECONDS = 5

APP_NAME = "pgtray"

_URGENT_EVENTS = frozenset({EventType.BACKUP_FAILED, EventType.CONNECTION_LOST})


class NotificationProvider(Protocol):
    """알림 제공자 프로토콜."""

    @property
    def name(self) -> str:
        """제공자 이름 (로그·테스트 식별용)."""
        ...

    def send(self, event: NotificationEvent) -> bool:
        """알림 전송.

        Returns:
            전송 성공 시 True, 실패 시 False.
            실패해도 예외를 발생시키지 않는다.
        """
        ...


class DesktopProvider:
    """데스크톱 알림 제공자.

    macOS에서는 ``osascript -e 'display notification ...'``,
    그 외 환경에서는 ``notify-send`` 를 사용한다.
    """

    def __init__(self, *, sound: bool = True, platform: str | None = None) -> None:
        self._sound = sound
        self._platform = platform or sys.platform

    @property
    def name(self) -> str:
        return "desktop"

    def send(self, event: NotificationEvent) -> bool:
        """플랫폼별 명령으로 알림 전송."""
        cmd = self.build_command(event)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=DESKTOP_TIMEOUT_SECONDS,
                check=False,
            )
        except FileNotFoundError:
            logger.warning("%s를 찾을 수 없습니다 (데스크톱 알림 불가)", cmd[0])
            return False
        except subprocess.TimeoutExpired:
            logger.warning("데스크톱 알림 전송 타임아웃")
            return False
        except OSError:
            logger.exception("데스크톱 알림 전송 중 예외 발생")
            return False

        if result.returncode != 0:
            logger.warning("데스크톱 알림 전송 실패: %s", result.stderr.strip())
            return False
        return True

    def build_command(self, event: NotificationEvent) -> list[str]:
        """플랫폼별 알림 명령 구성."""
        if self._platform == "darwin":
            return ["osascript", "-e", self._build_script(event)]
        urgency = "critical" if event.event_type in _URGENT_EVENTS else "normal"
        return [
            "notify-send",
            "--app-name",
            APP_NAME,
            "--urgency",
            urgency,
            event.title,
            event.message,
        ]

    def _build_script(self, event: NotificationEvent) -> str:
        """AppleScript 명령 생성."""
        title = event.title.replace('"', '\\"')
        message = event.message.replace('"', '\\"')
        sound_clause = ' sound name "default"' if self._sound else ""
        return (
            f'display notification "{message}" '
            f'with title "PostgreSQL Monitor" '
            f'subtitle "{title}"'
            f"{sound_clause}"
        )


class DiscordProvider:
    """Discord Webhook 제공자."""

    def __init__(self, *, webhook_url: str) -> None:
        if not webhook_url:
            raise ValueError("Discord webhook_url이 비어 있습니다")
        self._webhook_url = webhook_url

    @property
    def name(self) -> str:
        return "discord"

    def send(self, event: NotificationEvent) -> bool:
        """Discord Webhook POST."""
        payload = {
            "content": f"**{event.title}**\n{event.message}",
        }
        return _post_json(self._webhook_url, payload, provider_name=self.name)


class SlackProvider:
    """Slack Incoming Webhook 제공자."""

    def __init__(self, *, webhook_url: str) -> None:
        if not webhook_url:
            raise ValueError("Slack webhook_url이 비어 있습니다")
        self._webhook_url = webhook_url

    @property
    def name(self) -> str:
        return "slack"

    def send(self, event: NotificationEvent) -> bool:
        """Slack Webhook POST."""
        payload = {
            "text": f"*{event.title}*\n{event.message}",
        }
        return _post_json(self._webhook_url, payload, provider_name=self.name)


def _post_json(url: str, payload: dict[str, str], *, provider_name: str) -> bool:
    """JSON POST 요청 전송.

    Returns:
        성공(2xx) 시 True, 실패 시 False.
    """
    try:
        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(  # noqa: S310
            url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with urllib.request.urlopen(req, timeout=WEBHOOK_TIMEOUT_SECONDS) as resp:  # noqa: S310
            status = resp.status
            if 200 <= status < 300:
                return True
            logger.warning("%s 알림 전송 실패 (HTTP %d)", provider_name, status)
            return False
    except urllib.error.HTTPError as e:
        logger.warning("%s 알림 HTTP 오류: %d %s", provider_name, e.code, e.reason)
        return False
    except urllib.error.URLError as e:
        logger.warning("%s 알림 네트워크 오류: %s", provider_name, e.reason)
        return False
    except OSError:
        logger.exception("%s 알림 전송 중 예외 발생", provider_name)
        return False
