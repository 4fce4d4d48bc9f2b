"""Online/offline tracking with transition listeners."""

from __future__ import annotations

import threading
from typing import Callable, Optional

import requests

from ..logging_config import get_logger

logger = get_logger("services.connectivity")

ONLINE = "online"
OFFLINE = "offline"

Listener = Callable[[], None]


class ConnectivityMonitor:
    """Holds the current connectivity state and notifies on transitions.

    The host application feeds state in via :meth:`set_online` (for example
    from OS network events) or by calling :meth:`probe`, which issues a HEAD
    request against ``probe_url``.
    """

    def __init__(
        self,
        *,
        online: bool = True,
        probe_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 3.0,
    ) -> None:
        self._online = online
        self.probe_url = probe_url
        self.session = session
        self.timeout = timeout
        self._lock = threading.Lock()
        self._listeners: dict[str, list[Listener]] = {ONLINE: [], OFFLINE: []}

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, event: str, callback: Listener) -> Callable[[], None]:
        """Register ``callback`` for ``online`` or ``offline``; returns an unsubscribe function."""
        if event not in self._listeners:
            raise ValueError(f"Unknown connectivity event: {event!r}")
        with self._lock:
            self._listeners[event].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners[event]:
                    self._listeners[event].remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> bool:
        """Update the state; returns True when it changed and listeners fired."""
        with self._lock:
            if self._online == online:
                return False
            self._online = online
            listeners = list(self._listeners[ONLINE if online else OFFLINE])

        logger.info("Network connection restored" if online else "Network connection lost")
        for callback in listeners:
            try:
                callback()
            except Exception as exc:
                logger.error(f"Connectivity listener failed: {exc}", exc_info=True)
        return True

    def probe(self) -> bool:
        """Check reachability of ``probe_url`` and update the state accordingly."""
        if not self.probe_url:
            return self._online
        session = self.session or requests.Session()
        try:
            session.head(self.probe_url, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.debug(f"Connectivity probe failed: {exc}")
            online = False
        else:
            # Any HTTP answer means the server is reachable.
            online = True
        self.set_online(online)
        return online


__all__ = ["ConnectivityMonitor", "OFFLINE", "ONLINE"]
