"""
Cooperative cancellation.

The batch driver, the transcode session and the decision engine all receive
the same CancellationToken. SignalListener is the only thing that triggers it:
SIGINT and SIGTERM cancel the token once and every later signal is ignored.
SIGKILL cannot be intercepted; a killed run simply stops and leaves its temp
file behind, which the next run treats as an in-progress marker.
"""

import signal
import threading
from types import FrameType
from typing import Dict, Iterable, Optional

from loguru import logger

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """A write-once, read-many termination flag."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel the token. Returns False if it was already cancelled."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to ``timeout`` seconds; True once cancelled."""
        return self._event.wait(timeout)


class SignalListener:
    """Installs handlers that cancel a token on termination signals."""

    def __init__(self, token: CancellationToken, signals: Iterable[int] = TERMINATION_SIGNALS):
        self.token = token
        self.signals = tuple(signals)
        self._previous: Dict[int, object] = {}

    def _on_signal(self, signum: int, _frame: Optional[FrameType]) -> None:
        name = signal.Signals(signum).name
        if self.token.cancel(name):
            logger.warning(f"Received {name}, finishing current file and stopping")
        else:
            logger.debug(f"Ignoring repeated {name}")

    def install(self) -> "SignalListener":
        for sig in self.signals:
            self._previous[sig] = signal.signal(sig, self._on_signal)
        return self

    def restore(self) -> None:
        for sig, old in self._previous.items():
            signal.signal(sig, old)  # type: ignore[arg-type]
        self._previous.clear()

    def __enter__(self) -> "SignalListener":
        return self.install()

    def __exit__(self, *_exc) -> None:
        self.restore()
