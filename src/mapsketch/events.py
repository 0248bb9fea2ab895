"""EventBus — pub/sub through which renderers observe session changes.

The drawing core never touches a map surface directly. Every mutation of a
Session is published here; a renderer adapter subscribes and mirrors the
changes onto whatever surface it owns.

Each message is a ``SessionEvent``: ``{"type": ..., "data": ...}``, with
``data`` omitted when the event carries none. The payload of every event
type is described by the TypedDict of the same name below.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Iterable, TypedDict, Union

from loguru import logger

SHAPE_ADDED = "shape_added"
SHAPE_REMOVED = "shape_removed"
SHAPES_CLEARED = "shapes_cleared"
SHAPE_CHANGED = "shape_changed"
PREVIEW_CHANGED = "preview_changed"
TOOL_CHANGED = "tool_changed"
POPUP_OPENED = "popup_opened"
POPUP_CLOSED = "popup_closed"

# Everything a renderer needs to keep its shape layer in step
LAYER_EVENTS = frozenset({SHAPE_ADDED, SHAPE_REMOVED, SHAPES_CLEARED, SHAPE_CHANGED})


class ShapeAdded(TypedDict):
    shape_id: str
    kind: str


class ShapeRemoved(TypedDict):
    shape_id: str


class ShapesCleared(TypedDict):
    count: int


class ShapeChanged(TypedDict):
    shape_id: str
    measurement: float | None  # new length or area; None for a moved marker


class PreviewChanged(TypedDict):
    """A new preview. A PREVIEW_CHANGED event without data removes it."""
    kind: str
    points: list[list[float]]


class ToolChanged(TypedDict):
    tool: str


class PopupOpened(TypedDict):
    shape_id: str
    name: str
    display: str | None


class PopupClosed(TypedDict):
    shape_id: str


EventData = Union[
    ShapeAdded, ShapeRemoved, ShapesCleared, ShapeChanged,
    PreviewChanged, ToolChanged, PopupOpened, PopupClosed, dict,
]


class _SessionEventBase(TypedDict):
    type: str


class SessionEvent(_SessionEventBase, total=False):
    data: EventData


@dataclass
class _Subscription:
    queue: queue.Queue
    event_types: frozenset[str] | None  # None receives every event
    dropped: int = 0

    def accepts(self, event_type: str) -> bool:
        return self.event_types is None or event_type in self.event_types

    def offer(self, msg: SessionEvent) -> None:
        """Queue ``msg``, discarding the oldest pending event when full."""
        try:
            self.queue.put_nowait(msg)
            return
        except queue.Full:
            pass
        try:
            self.queue.get_nowait()
        except queue.Empty:
            pass
        self.dropped += 1
        if self.dropped == 1:
            logger.warning("Event subscriber is not keeping up; dropping oldest events")
        try:
            self.queue.put_nowait(msg)
        except queue.Full:
            pass


class EventBus:
    """Thread-safe pub/sub carrying one session's events to its renderers."""

    def __init__(self, maxsize: int = 1000) -> None:
        self._lock = threading.Lock()
        self._maxsize = maxsize
        self._subscriptions: list[_Subscription] = []

    def subscribe(self, event_type: str | Iterable[str] | None = None) -> queue.Queue:
        """Subscribe to events. Returns a Queue that receives matching events.

        Args:
            event_type: One event type, a collection of them (e.g.
                ``LAYER_EVENTS``), or None for every event.
        """
        if event_type is None:
            wanted = None
        elif isinstance(event_type, str):
            wanted = frozenset({event_type})
        else:
            wanted = frozenset(event_type)
        sub = _Subscription(queue.Queue(maxsize=self._maxsize), wanted)
        with self._lock:
            self._subscriptions.append(sub)
        return sub.queue

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            self._subscriptions = [s for s in self._subscriptions if s.queue is not q]

    def dropped(self, q: queue.Queue) -> int:
        """How many events ``q`` lost because it was full."""
        with self._lock:
            for sub in self._subscriptions:
                if sub.queue is q:
                    return sub.dropped
        return 0

    def publish(self, event_type: str, data: EventData | None = None) -> None:
        msg: SessionEvent = {"type": event_type}
        if data is not None:
            msg["data"] = data
        with self._lock:
            for sub in self._subscriptions:
                if sub.accepts(event_type):
                    sub.offer(msg)


def drain(q: queue.Queue) -> list[SessionEvent]:
    """Pop every pending event from a subscription queue."""
    pending = []
    while True:
        try:
            pending.append(q.get_nowait())
        except queue.Empty:
            return pending
