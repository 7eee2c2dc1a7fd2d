"""
In-flight Action Control
Tracks which logical actions (save, activate, evaluate, ...) are currently
running so a workflow never submits the same action twice concurrently.

There is no locking or waiting: a busy action is rejected immediately and the
caller decides what to show.
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Dict

from services.errors import ActionInFlightError

logger = logging.getLogger(__name__)


class InFlightTracker:
    """
    Per-workflow in-flight flags:
    - one flag per action key
    - flag held for the entire duration of the network call
    - always released, even when the call fails
    """

    def __init__(self):
        self._active: Dict[str, float] = {}

    def is_busy(self, action: str) -> bool:
        return action in self._active

    @property
    def active(self) -> Dict[str, float]:
        return dict(self._active)

    def discard_all(self) -> None:
        """Forget every flag (session logged out, workflow dropped)."""
        if self._active:
            logger.info(f"Discarding in-flight actions: {sorted(self._active)}")
        self._active.clear()

    @asynccontextmanager
    async def hold(self, action: str):
        """
        Usage:
            async with tracker.hold("save"):
                await api_call()
        """
        if action in self._active:
            raise ActionInFlightError(action)

        started = time.time()
        self._active[action] = started
        try:
            yield
        finally:
            self._active.pop(action, None)
            dur_ms = int((time.time() - started) * 1000)
            logger.debug(f"Released in-flight flag {action} after {dur_ms}ms")
