"""Notifier that writes messages to the structured log instead of sending them."""

from __future__ import annotations

from typing import Any

import structlog

from giftflow.domain.gateway.notifier import Notifier

logger = structlog.get_logger(__name__)


class LogNotifier(Notifier):

    def send(self, template: str, recipient: str, data: dict[str, Any]) -> None:
        logger.info("Notification", template=template, recipient=recipient, **data)
