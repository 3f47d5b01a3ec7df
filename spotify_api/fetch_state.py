import logging
import threading
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .errors import FetchAlreadyInProgress, FetchError
from .models import TrackItem

logger = logging.getLogger(__name__)


class FetchStatus(str, Enum):
    EMPTY = "empty"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    FAILED = "failed"


class FetchStateCoordinator:
    """The single process-wide Fetch Session.

    One background fetch writes it (once at start, once at completion or
    failure); any number of status polls read it. Everything goes through one
    lock, and items are only visible once the status is READY.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status = FetchStatus.EMPTY
        self._items: List[TrackItem] = []
        self._fetched = 0
        self._error: Optional[str] = None
        self._done = threading.Event()

    def start_fetch(self) -> None:
        with self._lock:
            if self._status == FetchStatus.IN_PROGRESS:
                raise FetchAlreadyInProgress()
            self._status = FetchStatus.IN_PROGRESS
            self._items = []
            self._fetched = 0
            self._error = None
            self._done = threading.Event()

    def clear_fetch(self) -> None:
        with self._lock:
            if self._status == FetchStatus.IN_PROGRESS:
                raise FetchAlreadyInProgress("Cannot clear liked songs while a fetch is in progress")
            self._status = FetchStatus.EMPTY
            self._items = []
            self._fetched = 0
            self._error = None

    def report_progress(self, fetched: int) -> None:
        with self._lock:
            if self._status == FetchStatus.IN_PROGRESS:
                self._fetched = int(fetched)

    def complete_fetch(self, items: Iterable[TrackItem]) -> None:
        final = list(items)
        with self._lock:
            if self._status != FetchStatus.IN_PROGRESS:
                raise FetchError(f"Cannot complete a fetch that is not in progress (status: {self._status.value})")
            self._items = final
            self._fetched = len(final)
            self._status = FetchStatus.READY
            done = self._done
        done.set()

    def fail_fetch(self, error: BaseException) -> None:
        with self._lock:
            if self._status != FetchStatus.IN_PROGRESS:
                raise FetchError(f"Cannot fail a fetch that is not in progress (status: {self._status.value})")
            self._items = []
            self._error = str(error) or error.__class__.__name__
            self._status = FetchStatus.FAILED
            done = self._done
        done.set()

    @property
    def state(self) -> FetchStatus:
        with self._lock:
            return self._status

    @property
    def is_ready(self) -> bool:
        return self.state == FetchStatus.READY

    def items(self) -> List[TrackItem]:
        """Return a copy of the collection; empty unless the status is READY."""

        with self._lock:
            return list(self._items) if self._status == FetchStatus.READY else []

    def status(self) -> Dict[str, Any]:
        with self._lock:
            ready = self._status == FetchStatus.READY
            return {
                "loaded": ready,
                "count": len(self._items) if ready else 0,
                "status": self._status.value,
                "fetched": self._fetched,
                "error": self._error,
            }

    def wait(self, timeout: Optional[float] = None) -> FetchStatus:
        """Block until the current fetch completes or fails, or timeout elapses."""

        with self._lock:
            if self._status != FetchStatus.IN_PROGRESS:
                return self._status
            done = self._done
        done.wait(timeout)
        return self.state
