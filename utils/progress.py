import logging
import signal
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Prints "Processing xref 3 of 10 (20.0%)..." style status lines.

    The percentage is taken before the current item, like a wait box that is
    updated right before the work starts.
    """

    def __init__(self, what: str = "xref", log: Optional[logging.Logger] = None):
        self.what = what
        self.log = log or logger

    def __call__(self, current: int, total: int) -> None:
        percent = ((current - 1) / total) * 100.0 if total else 100.0
        self.log.info("Processing %s %d of %d (%.1f%%)...", self.what, current, total, percent)


class CancellationFlag:
    """Cooperative cancellation: Ctrl+C sets a flag instead of raising KeyboardInterrupt.

    Use as a context manager around a long search and pass ``is_cancelled``
    to the session.
    """

    def __init__(self):
        self._event = threading.Event()
        self._previous_handler = None

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def _on_sigint(self, signum, frame) -> None:
        logger.info("Cancelling...")
        self.cancel()

    def __enter__(self) -> "CancellationFlag":
        self._event.clear()
        if threading.current_thread() is threading.main_thread():
            self._previous_handler = signal.signal(signal.SIGINT, self._on_sigint)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._previous_handler is not None:
            signal.signal(signal.SIGINT, self._previous_handler)
            self._previous_handler = None
