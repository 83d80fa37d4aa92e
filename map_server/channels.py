from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, List, Optional, TypeVar


log = logging.getLogger(__name__)

T = TypeVar("T")
Callback = Callable[[T], None]


class LatchedChannel(Generic[T]):
    """
    In-process publish/subscribe channel that replays its latest value to
    every new subscriber.

    publish() and subscribe() are serialised by one re-entrant lock: a
    subscriber attached before a publish sees values in emission order, and
    one attached later receives exactly the latest value, then live updates.
    A callback that raises is logged and skipped; it never affects the
    publisher or other subscribers.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.RLock()
        self._subs: List[Callback] = []
        self._latest: Optional[T] = None
        self._count = 0

    @property
    def latest(self) -> Optional[T]:
        with self._lock:
            return self._latest

    @property
    def publish_count(self) -> int:
        return self._count

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def publish(self, value: T) -> None:
        with self._lock:
            self._latest = value
            self._count += 1
            for cb in list(self._subs):
                self._deliver(cb, value)

    def subscribe(self, callback: Callback) -> Callable[[], None]:
        """Attach `callback`; returns a function that detaches it."""
        with self._lock:
            self._subs.append(callback)
            if self._latest is not None:
                self._deliver(callback, self._latest)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subs:
                    self._subs.remove(callback)

        return unsubscribe

    def _deliver(self, cb: Callback, value: T) -> None:
        try:
            cb(value)
        except Exception:
            log.exception("Subscriber failed", extra={"extra": {"channel": self.name}})
