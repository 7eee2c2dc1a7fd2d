"""
Merchant-facing notifications.
Every action outcome produces at most one notification; they are logged and
kept in memory so the HTTP layer (or a test) can read them back.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List
import logging

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    level: str      # "success" | "warn" | "error"
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "message": self.message,
            "createdAt": self.created_at.isoformat(),
        }


class Notifier:
    """Collects notifications for one admin session."""

    def __init__(self, max_history: int = 100):
        self.max_history = max_history
        self.history: List[Notification] = []

    def _push(self, level: str, message: str) -> Notification:
        note = Notification(level=level, message=message)
        self.history.append(note)
        if len(self.history) > self.max_history:
            self.history = self.history[-self.max_history:]
        log = logger.error if level == "error" else logger.warning if level == "warn" else logger.info
        log("[NOTIFY] %s | %s", level, message)
        return note

    def success(self, message: str) -> Notification:
        return self._push("success", message)

    def warn(self, message: str) -> Notification:
        return self._push("warn", message)

    def error(self, message: str) -> Notification:
        return self._push("error", message)

    @property
    def last(self) -> Notification | None:
        return self.history[-1] if self.history else None

    def clear(self) -> None:
        self.history.clear()
