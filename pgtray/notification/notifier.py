"""알림 분배기.

``[notification]`` 설정으로 채널(데스크톱, Discord, Slack)을 고르고
모니터 이벤트를 전달한다. 채널 전송 실패는 로그만 남기며 모니터링 흐름으로
예외를 올리지 않는다.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pgtray.notification.events import EventType, NotificationEvent
from pgtray.notification.providers import (
    DesktopProvider,
    DiscordProvider,
    NotificationProvider,
    SlackProvider,
)

if TYPE_CHECKING:
    from pgtray.config import NotificationConfig

logger = logging.getLogger(__name__)

TEST_EVENT = NotificationEvent(
    event_type=EventType.BACKUP_COMPLETE,
    title="Test notification",
    message="pgtray notifications are working.",
)


def build_channels(config: NotificationConfig) -> list[NotificationProvider]:
    """설정에서 활성 채널 목록 구성.

    알림이 꺼져 있으면 빈 목록. 데스크톱은 명시적으로 끄지 않는 한 포함되고,
    웹훅 채널은 URL이 있을 때만 포함된다.
    """
    if not config.enabled:
        return []

    channels: list[NotificationProvider] = []
    if config.desktop.enabled is not False:
        channels.append(DesktopProvider(sound=config.desktop.sound is not False))
    if config.discord.enabled and config.discord.webhook_url:
        channels.append(DiscordProvider(webhook_url=config.discord.webhook_url))
    if config.slack.enabled and config.slack.webhook_url:
        channels.append(SlackProvider(webhook_url=config.slack.webhook_url))
    return channels


class Notifier:
    """모니터 이벤트 분배기.

    Args:
        config: 알림 설정 (이벤트별 토글 포함)
        providers: 채널 목록 직접 지정 (None이면 설정으로 구성)
    """

    def __init__(
        self,
        config: NotificationConfig,
        providers: list[NotificationProvider] | None = None,
    ) -> None:
        self._config = config
        self._channels = providers if providers is not None else build_channels(config)

    @property
    def channel_names(self) -> tuple[str, ...]:
        """활성 채널 이름."""
        return tuple(channel.name for channel in self._channels)

    def wants(self, event_type: EventType) -> bool:
        """이벤트 토글 확인. 설정하지 않은 토글(None)은 켜진 것으로 본다."""
        return getattr(self._config, event_type.value, None) is not False

    def notify(self, event: NotificationEvent) -> int:
        """토글이 켜진 이벤트를 모든 채널로 전송.

        Returns:
            전송에 성공한 채널 수
        """
        if not self._channels:
            return 0
        if not self.wants(event.event_type):
            logger.debug("Notification %s disabled, skipped", event.event_type.value)
            return 0
        return sum(self._deliver(channel, event) for channel in self._channels)

    def test_notification(self) -> dict[str, bool]:
        """모든 채널로 테스트 메시지 전송 (토글 무시).

        Returns:
            {채널 이름: 성공 여부}
        """
        return {channel.name: self._deliver(channel, TEST_EVENT) for channel in self._channels}

    @staticmethod
    def _deliver(channel: NotificationProvider, event: NotificationEvent) -> bool:
        try:
            delivered = channel.send(event)
        except Exception:
            logger.exception("%s notification raised", channel.name)
            return False
        if delivered:
            logger.debug("%s notification sent: %s", channel.name, event.title)
        else:
            logger.warning("%s notification failed: %s", channel.name, event.title)
        return bool(delivered)
