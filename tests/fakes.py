"""
Test doubles shared across the suite.
"""

import threading
from typing import Any

from trustnet.domain.ports import NotificationEvent


class RecordingNotifier:
    """Notifier that keeps every notification for assertions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: list[tuple[str, NotificationEvent, dict[str, Any]]] = []

    def notify(self, user_id: str, event: NotificationEvent, payload: dict[str, Any]) -> None:
        with self._lock:
            self.sent.append((user_id, event, payload))

    def events_for(self, user_id: str) -> list[NotificationEvent]:
        return [event for recipient, event, _ in self.sent if recipient == user_id]
