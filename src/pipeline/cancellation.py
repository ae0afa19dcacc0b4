import threading
import time
from typing import Optional

from pipeline.errors import RefreshCancelled


class CancellationToken:
    """
    Cooperative cancel signal with an optional deadline.

    The refresh checks it at the aggregation barrier and right before the merge;
    Spark work already submitted is not interrupted.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    def cancel(self) -> None:
        self._event.set()

    @property
    def timed_out(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.timed_out

    def raise_if_cancelled(self, checkpoint: str) -> None:
        if self._event.is_set():
            raise RefreshCancelled(f"cancelled before {checkpoint}")
        if self.timed_out:
            raise RefreshCancelled(f"timed out before {checkpoint}")
