"""Delayed commands owned by the core.

A delayed command is a named callback that runs after a delay unless it is
cancelled first. Scheduling a command under a name that is already pending
replaces the pending one. Any user action can cancel every pending command
with ``cancel_all()``.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class DelayedCommands:
    """Tracks pending delayed commands by name."""

    def __init__(self):
        self._pending: Dict[str, asyncio.TimerHandle] = {}

    def schedule(self, name: str, delay: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` after ``delay`` seconds unless cancelled.

        Must be called from within a running event loop.
        """
        self.cancel(name)
        loop = asyncio.get_running_loop()
        self._pending[name] = loop.call_later(delay, self._fire, name, callback)

    def _fire(self, name: str, callback: Callable[[], None]) -> None:
        self._pending.pop(name, None)
        try:
            callback()
        except Exception:
            logger.exception("Delayed command %r failed", name)

    def cancel(self, name: str) -> bool:
        """Cancel one pending command. Returns True if it was pending."""
        handle: Optional[asyncio.TimerHandle] = self._pending.pop(name, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every pending command and return how many were pending."""
        count = len(self._pending)
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
        return count

    def is_pending(self, name: str) -> bool:
        return name in self._pending

    @property
    def pending(self) -> list:
        return sorted(self._pending)
