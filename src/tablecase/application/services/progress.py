from __future__ import annotations

import logging
import threading
from typing import Callable

from tablecase.core.time import now_utc_iso
from tablecase.domain.models.export import ProgressEvent

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]


class ProgressChannel:
    """Ordered fan-out of progress events to subscribed listeners.

    Events are stamped with a sequence number and delivered synchronously,
    under a lock, in the order they were published. A listener that raises
    is logged and skipped; the remaining listeners still receive the event.
    """

    def __init__(self) -> None:
        self._listeners: list[ProgressListener] = []
        self._lock = threading.Lock()
        self._seq = 0
        self._last_percent = 0

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def last_percent(self) -> int:
        return self._last_percent

    def publish(
        self,
        percent: int,
        stage_label: str | None = None,
        indeterminate: bool | None = None,
    ) -> ProgressEvent:
        with self._lock:
            self._seq += 1
            self._last_percent = max(0, min(100, int(percent)))
            event = ProgressEvent(
                percent=self._last_percent,
                stage_label=stage_label,
                indeterminate=indeterminate,
                seq=self._seq,
                emitted_at=now_utc_iso(),
            )
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("Progress listener %r failed on event %s", listener, event.seq)
        return event


class ProgressRecorder:
    """Listener that keeps every event it receives, for status endpoints and tests."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []
        self._lock = threading.Lock()

    def __call__(self, event: ProgressEvent) -> None:
        with self._lock:
            self.events.append(event)

    def snapshot(self) -> list[ProgressEvent]:
        with self._lock:
            return list(self.events)
