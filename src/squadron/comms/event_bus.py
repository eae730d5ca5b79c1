"""EventBus — thread-safe pub/sub for squad lifecycle events.

The engine itself is single-threaded, but observers (the status API, a
recorder, a UI bridge) may drain their queues from other threads.

Events are dicts ``{"type": str, "data": dict}``.  Types published by the
engine:

  squad_created        squad_joined        squad_merged
  squad_state_changed  squad_position_swap squad_removed
  squad_status
"""

from __future__ import annotations

import queue
import threading


class EventBus:
    """Simple thread-safe pub/sub for pushing events to subscribers."""

    def __init__(self, maxsize: int = 100) -> None:
        self._lock = threading.Lock()
        self._maxsize = maxsize
        # (queue, accepted event types or None for all)
        self._subscribers: list[tuple[queue.Queue, frozenset[str] | None]] = []

    def subscribe(self, event_types: str | list[str] | None = None) -> queue.Queue:
        """Subscribe to events, optionally only to the given type(s)."""
        if isinstance(event_types, str):
            accepted = frozenset({event_types})
        elif event_types is not None:
            accepted = frozenset(event_types)
        else:
            accepted = None
        q: queue.Queue = queue.Queue(maxsize=self._maxsize)
        with self._lock:
            self._subscribers.append((q, accepted))
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            self._subscribers = [(s, f) for s, f in self._subscribers if s is not q]

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event_type: str, data: dict | None = None) -> None:
        msg = {"type": event_type}
        if data is not None:
            msg["data"] = data
        with self._lock:
            for q, accepted in self._subscribers:
                if accepted is not None and event_type not in accepted:
                    continue
                try:
                    q.put_nowait(msg)
                except queue.Full:
                    # Drop oldest so lifecycle events are never silently lost
                    try:
                        q.get_nowait()
                    except queue.Empty:
                        pass
                    try:
                        q.put_nowait(msg)
                    except queue.Full:
                        pass


def drain(q: queue.Queue) -> list[dict]:
    """Pop everything currently queued."""
    out: list[dict] = []
    while True:
        try:
            out.append(q.get_nowait())
        except queue.Empty:
            return out
