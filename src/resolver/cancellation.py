"""Cooperative cancellation for a resolution run."""
from __future__ import annotations

import threading
from typing import Any, Sequence

from errors import Cancelled


class CancellationToken:
    """Thread-safe flag checked by the builder between fetches."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = "Resolution cancelled"

    def cancel(self, reason: str = "Resolution cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, path: Sequence[Any] = ()) -> None:
        if self._event.is_set():
            raise Cancelled(self.reason, path=path)
