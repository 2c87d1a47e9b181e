"""Cooperative cancellation for sync runs."""
import logging
import threading
import time
from typing import Callable, Optional

from app.core.exceptions import SyncCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Owned by the caller and passed into a run.

    `cancel()` flips a local event; an optional `probe` lets a worker observe
    cancellation requested from another process (e.g. a flag stored in
    SyncStatus.settings). The probe is evaluated at most once per
    `probe_interval` seconds.
    """

    def __init__(
        self,
        probe: Optional[Callable[[], bool]] = None,
        probe_interval: float = 1.0
    ):
        self._event = threading.Event()
        self._probe = probe
        self._probe_interval = probe_interval
        self._last_probe = 0.0

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._probe is not None:
            now = time.monotonic()
            if now - self._last_probe >= self._probe_interval:
                self._last_probe = now
                try:
                    if self._probe():
                        logger.info("Cancellation observed through probe")
                        self._event.set()
                except Exception as exc:
                    logger.warning(f"Cancellation probe failed: {exc}")
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise SyncCancelled("Sync cancelled", recoverable=True)

    def wait(self, seconds: float) -> None:
        """Sleep up to `seconds`, waking early (and raising) on cancellation."""
        self.raise_if_cancelled()
        deadline = time.monotonic() + max(seconds, 0.0)
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            step = min(remaining, self._probe_interval) if self._probe else remaining
            if self._event.wait(step):
                break
            if self.cancelled:
                break
        self.raise_if_cancelled()
