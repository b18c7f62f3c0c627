"""Best-effort notification dispatch."""

import logging
from typing import Any

from .ports import NotificationEvent, Notifier

logger = logging.getLogger(__name__)


def dispatch(
    notifier: Notifier, user_id: str | None, event: NotificationEvent, payload: dict[str, Any]
) -> None:
    """
    Send a notification after a committed change.

    Delivery failures are logged and never affect transaction state.
    """
    if not user_id:
        return
    try:
        notifier.notify(user_id, event, payload)
    except Exception:
        logger.exception("Notification %s to user %s failed", event.value, user_id)
