import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ActivityMonitor:
    """
    Tracks in-flight work and tells subscribers when the service turns busy
    or idle. Listeners get True on the first `begin()` and False when the
    last outstanding `end()` arrives. One instance belongs to each app; pass
    it to whatever needs to signal or observe busy state.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._in_flight = 0
        self._listeners: List[Listener] = []

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def busy(self) -> bool:
        return self._in_flight > 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def begin(self) -> None:
        with self._lock:
            self._in_flight += 1
            changed = self._in_flight == 1
            listeners = list(self._listeners)
        if changed:
            self._notify(listeners, True)

    def end(self) -> None:
        with self._lock:
            if self._in_flight == 0:
                logger.warning("ActivityMonitor.end() called with nothing in flight")
                return
            self._in_flight -= 1
            changed = self._in_flight == 0
            listeners = list(self._listeners)
        if changed:
            self._notify(listeners, False)

    def _notify(self, listeners: List[Listener], busy: bool) -> None:
        for listener in listeners:
            try:
                listener(busy)
            except Exception:
                logger.exception("Activity listener %r failed", listener)
