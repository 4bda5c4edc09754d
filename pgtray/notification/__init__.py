"""알림 시스템 패키지.

백업·업로드·연결 상태 이벤트를 데스크톱 알림 및
외부 웹훅(Discord, Slack)으로 전달한다.
"""

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

__all__ = [
    "EventType",
    "NotificationEvent",
    "Notifier",
    "backup_complete_event",
    "backup_failed_event",
    "connection_lost_event",
    "connection_restored_event",
    "upload_failed_event",
]
