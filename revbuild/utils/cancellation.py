import logging
import signal
import threading
from types import FrameType


class CancellationToken:
    """Cooperative, set-once cancellation flag shared by every worker of a run.

    Workers poll it between units of work; it never interrupts a running
    checkout or subprocess.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str) -> bool:
        """Returns True only for the call that actually set the flag."""
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
        logging.warning(f"cancelling run: {reason}")
        return True


def cancel_on_signals(
    token: CancellationToken,
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
) -> None:
    def handler(signum: int, _: FrameType | None) -> None:
        token.cancel(f"received {signal.Signals(signum).name}")

    for sig in signals:
        signal.signal(sig, handler)
