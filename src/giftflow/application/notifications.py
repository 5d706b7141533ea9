"""Best-effort notification dispatch.

Notifications never decide the outcome of a use case: a failed send is
logged and dropped.
"""

from __future__ import annotations

from typing import Any

import structlog

from giftflow.domain.gateway.notifier import Notifier

logger = structlog.get_logger(__name__)


def notify(notifier: Notifier | None, template: str, recipient: str | None, data: dict[str, Any]) -> bool:
    if notifier is None or not recipient:
        return False
    try:
        notifier.send(template, recipient, data)
    except Exception as exc:
        logger.warning(
            "Notification failed",
            template=template,
            recipient=recipient,
            error=str(exc),
        )
        return False
    return True
