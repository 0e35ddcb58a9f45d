import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class ShutdownSignal:
    """One-shot, process-wide stop event.

    Observers registered with ``add_callback`` run once, on the thread that
    calls ``fire``. Observers added after the signal fired run immediately.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self.reason: str | None = None

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def fire(self, reason: str = "shutdown requested") -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        logger.info("Shutdown signaled: %s", reason)
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Shutdown observer failed")
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass
