"""
Publish/subscribe of data changes.
The store publishes a Change after each committed mutation; sessions subscribe
to turn changes into list_changed notifications.
"""

import logging
from typing import Callable, List

from journal_mcp.core.types import Change

logger = logging.getLogger(__name__)

ChangeListener = Callable[[Change], None]


class ChangeBus:
    """Synchronous fan-out of Change events to listeners."""

    def __init__(self):
        self._listeners: List[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Subscribe to changes.

        Args:
            listener: Called with every published change

        Returns:
            Callable[[], None]: Unsubscribes the listener; safe to call twice
        """
        self._listeners.append(listener)
        logger.debug(f"Change listener subscribed ({len(self._listeners)} total)")

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
                logger.debug(f"Change listener unsubscribed ({len(self._listeners)} total)")
        return unsubscribe

    def publish(self, change: Change) -> None:
        """
        Notify every listener. A failing listener is logged and skipped.

        Args:
            change: Ids touched by the mutation
        """
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                logger.error(f"Error notifying change listener: {e}")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
