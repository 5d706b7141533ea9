"""Notification collaborator: fire-and-forget from the core's perspective."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Notifier(ABC):

    @abstractmethod
    def send(self, template: str, recipient: str, data: dict[str, Any]) -> None:
        """Deliver a templated message to *recipient*."""
