"""Network-availability signal.

The embedding layer reports connectivity changes through ``set_online``.
Listeners are notified with a ``network-loss`` or ``network-restore`` event
on every transition; the retry coordinator consults ``is_online`` to fail
fast instead of retrying while offline.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[dict], None]


class ConnectivityMonitor:
    """Holds the current online/offline state and notifies listeners on change."""

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Record the current connectivity state, notifying listeners on transitions."""
        if online == self._online:
            return
        self._online = online
        if online:
            logger.info("Network connection restored")
            self._notify({"type": "network-restore", "message": "Network connection restored"})
        else:
            logger.warning("Network connection lost")
            self._notify({"type": "network-loss", "message": "Network connection lost"})

    def add_listener(self, listener: ConnectivityListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ConnectivityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: dict) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Connectivity listener error")
