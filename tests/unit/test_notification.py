"""알림 시스템 단위 테스트."""

from __future__ import annotations

import subprocess
import urllib.error
from datetime import datetime
from io import BytesIO
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from pgtray.config import DesktopNotifyConfig, NotificationConfig, WebhookConfig
from pgtray.models.status import BackupOutcome, BackupScope, UploadState
from pgtray.notification.events import (
    EventType,
    NotificationEvent,
    backup_complete_event,
    backup_failed_event,
    connection_lost_event,
    connection_restored_event,
    upload_failed_event,
)
from pgtray.notification.notifier import Notifier
from pgtray.notification.providers import (
    DesktopProvider,
    DiscordProvider,
    SlackProvider,
    _post_json,
)


def _outcome(**kwargs) -> BackupOutcome:
    defaults = {
        "artifact_path": Path("/backups/pgtray_appdb_backup_20260310_020000.sql"),
        "scope": BackupScope.SINGLE,
        "succeeded": True,
        "finished_at": datetime(2026, 3, 10, 2, 0, 5),
        "size_bytes": 2048,
    }
    defaults.update(kwargs)
    return BackupOutcome(**defaults)


def _event(event_type: EventType = EventType.BACKUP_COMPLETE) -> NotificationEvent:
    return NotificationEvent(event_type=event_type, title="t", message="m")


# =========================================================================
# 이벤트
# =========================================================================


class TestEventType:
    def test_values_match_config_keys(self) -> None:
        """이벤트 값은 NotificationConfig 토글 필드명과 같다."""
        config = NotificationConfig()
        for event_type in EventType:
            assert hasattr(config, event_type.value)


class TestEventFactories:
    def test_backup_complete(self) -> None:
        event = backup_complete_event(_outcome())
        assert event.event_type is EventType.BACKUP_COMPLETE
        assert "2.00 KB" in event.message
        assert event.metadata["scope"] == "single"

    def test_backup_failed_uses_first_error_line(self) -> None:
        event = backup_failed_event(
            _outcome(succeeded=False, error="pg_dump failed\n--- stderr ---\nFATAL")
        )
        assert event.event_type is EventType.BACKUP_FAILED
        assert event.message == "DB backup failed: pg_dump failed"
        assert "FATAL" in event.metadata["error"]

    def test_upload_failed(self) -> None:
        event = upload_failed_event(_outcome(upload_state=UploadState.UPLOAD_FAILED))
        assert event.message == "Backup saved locally (2.00 KB), upload failed"

    def test_connection_events(self) -> None:
        lost = connection_lost_event(host="db.local", error="timeout")
        restored = connection_restored_event(host="db.local")
        assert lost.message == "db.local is unreachable: timeout"
        assert restored.event_type is EventType.CONNECTION_RESTORED


# =========================================================================
# DesktopProvider
# =========================================================================


class TestDesktopProvider:
    def test_linux_command(self) -> None:
        provider = DesktopProvider(platform="linux")
        cmd = provider.build_command(_event(EventType.BACKUP_FAILED))
        assert cmd[0] == "notify-send"
        assert "critical" in cmd
        assert cmd[-2:] == ["t", "m"]

    def test_macos_command_escapes_quotes(self) -> None:
        provider = DesktopProvider(platform="darwin", sound=False)
        event = NotificationEvent(event_type=EventType.BACKUP_COMPLETE, title='a "b"', message="m")
        cmd = provider.build_command(event)
        assert cmd[:2] == ["osascript", "-e"]
        assert '\\"b\\"' in cmd[2]
        assert "sound name" not in cmd[2]

    @patch("pgtray.notification.providers.subprocess.run")
    def test_send_success(self, mock_run: MagicMock) -> None:
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        assert DesktopProvider(platform="linux").send(_event()) is True

    @patch("pgtray.notification.providers.subprocess.run")
    def test_send_nonzero_exit(self, mock_run: MagicMock) -> None:
        mock_run.return_value = MagicMock(returncode=1, stderr="no display")
        assert DesktopProvider(platform="linux").send(_event()) is False

    @patch("pgtray.notification.providers.subprocess.run", side_effect=FileNotFoundError)
    def test_send_missing_binary(self, mock_run: MagicMock) -> None:
        assert DesktopProvider(platform="linux").send(_event()) is False

    @patch(
        "pgtray.notification.providers.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="notify-send", timeout=5),
    )
    def test_send_timeout(self, mock_run: MagicMock) -> None:
        assert DesktopProvider(platform="linux").send(_event()) is False


# =========================================================================
# Webhook 제공자
# =========================================================================


class TestWebhookProviders:
    def test_empty_url_rejected(self) -> None:
        with pytest.raises(ValueError):
            DiscordProvider(webhook_url="")
        with pytest.raises(ValueError):
            SlackProvider(webhook_url="")

    @patch("pgtray.notification.providers._post_json", return_value=True)
    def test_discord_payload(self, mock_post: MagicMock) -> None:
        provider = DiscordProvider(webhook_url="https://discord.com/hook")
        assert provider.send(_event()) is True
        assert mock_post.call_args[0][1] == {"content": "**t**\nm"}
        assert provider.name == "discord"

    @patch("pgtray.notification.providers._post_json", return_value=True)
    def test_slack_payload(self, mock_post: MagicMock) -> None:
        provider = SlackProvider(webhook_url="https://hooks.slack.com/x")
        assert provider.send(_event()) is True
        assert mock_post.call_args[0][1] == {"text": "*t*\nm"}
        assert provider.name == "slack"


class TestPostJson:
    @patch("pgtray.notification.providers.urllib.request.urlopen")
    def test_success_204(self, mock_urlopen: MagicMock) -> None:
        mock_resp = MagicMock()
        mock_resp.status = 204
        mock_resp.__enter__ = lambda s: s
        mock_resp.__exit__ = MagicMock(return_value=False)
        mock_urlopen.return_value = mock_resp

        assert _post_json("https://api.example.com", {"k": "v"}, provider_name="test") is True

    @patch("pgtray.notification.providers.urllib.request.urlopen")
    def test_http_error(self, mock_urlopen: MagicMock) -> None:
        mock_urlopen.side_effect = urllib.error.HTTPError(
            url="https://api.example.com",
            code=500,
            msg="Server Error",
            hdrs=MagicMock(),  # type: ignore[arg-type]
            fp=BytesIO(b""),
        )
        assert _post_json("https://api.example.com", {}, provider_name="test") is False

    @patch("pgtray.notification.providers.urllib.request.urlopen")
    def test_url_error(self, mock_urlopen: MagicMock) -> None:
        mock_urlopen.side_effect = urllib.error.URLError("Network unreachable")
        assert _post_json("https://api.example.com", {}, provider_name="test") is False


# =========================================================================
# Notifier
# =========================================================================


class TestNotifierBuild:
    def test_disabled_has_no_providers(self) -> None:
        assert Notifier(NotificationConfig(enabled=False)).channel_names == ()

    def test_desktop_enabled_by_default(self) -> None:
        notifier = Notifier(NotificationConfig(enabled=True))
        assert notifier.channel_names == ("desktop",)

    def test_all_providers(self) -> None:
        config = NotificationConfig(
            enabled=True,
            desktop=DesktopNotifyConfig(enabled=False),
            discord=WebhookConfig(enabled=True, webhook_url="https://d"),
            slack=WebhookConfig(enabled=True, webhook_url="https://s"),
        )
        assert Notifier(config).channel_names == ("discord", "slack")

    def test_webhook_without_url_skipped(self) -> None:
        config = NotificationConfig(
            enabled=True,
            desktop=DesktopNotifyConfig(enabled=False),
            slack=WebhookConfig(enabled=True, webhook_url=None),
        )
        assert Notifier(config).channel_names == ()


class TestNotifierDispatch:
    def test_notify_all_providers(self) -> None:
        p1, p2 = MagicMock(), MagicMock()
        p1.send.return_value = True
        p2.send.return_value = False
        notifier = Notifier(NotificationConfig(enabled=True), providers=[p1, p2])

        assert notifier.notify(_event()) == 1

        p1.send.assert_called_once()
        p2.send.assert_called_once()

    def test_disabled_event_skipped(self) -> None:
        provider = MagicMock()
        notifier = Notifier(
            NotificationConfig(enabled=True, on_backup_complete=False), providers=[provider]
        )
        assert notifier.wants(EventType.BACKUP_COMPLETE) is False
        assert notifier.notify(_event(EventType.BACKUP_COMPLETE)) == 0
        provider.send.assert_not_called()

        notifier.notify(_event(EventType.BACKUP_FAILED))
        provider.send.assert_called_once()

    def test_provider_exception_does_not_propagate(self) -> None:
        broken, ok = MagicMock(), MagicMock()
        broken.send.side_effect = RuntimeError("boom")
        notifier = Notifier(NotificationConfig(enabled=True), providers=[broken, ok])

        notifier.notify(_event())

        ok.send.assert_called_once()

    def test_test_notification_results(self) -> None:
        good, bad = MagicMock(), MagicMock()
        good.name, bad.name = "desktop", "slack"
        good.send.return_value = True
        bad.send.side_effect = RuntimeError("x")
        notifier = Notifier(NotificationConfig(enabled=True), providers=[good, bad])

        assert notifier.test_notification() == {"desktop": True, "slack": False}
