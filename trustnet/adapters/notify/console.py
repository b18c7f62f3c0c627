"""
Console notifier adapter - Implements Notifier protocol.

This module provides a console-based implementation of the domain's
notification port, logging events to stdout for demo purposes.
"""

import json
import logging
from typing import Any

from trustnet.domain.ports import NotificationEvent

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """
    Implements Notifier protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - the chat transport replaces it in production.
    """

    def notify(self, user_id: str, event: NotificationEvent, payload: dict[str, Any]) -> None:
        """
        Log a notification to console (simulates push delivery).

        The event is logged at INFO level to be visible in docker-compose logs.

        Args:
            user_id: Recipient user id
            event: Kind of state change
            payload: JSON-serialisable event details
        """
        logger.info(
            "[NOTIFY] User: %s Event: %s Payload: %s",
            user_id,
            event.value,
            json.dumps(payload, sort_keys=True, default=str),
        )
