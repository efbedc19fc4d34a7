"""
In-process real-time notifications.

Services call ``publish()`` after committing a change; every open ``/api/events``
stream receives the event as a server-sent event. Delivery is best-effort: a slow
subscriber whose queue is full misses events, and nothing is persisted or replayed.
"""
from __future__ import annotations

import json
import logging
import queue
import threading
from collections.abc import Iterator
from datetime import datetime
from typing import Any

from flask import Blueprint, Response, current_app, stream_with_context

from app.portal.rbac import require_any_user

logger = logging.getLogger(__name__)

bp = Blueprint("events", __name__)

_QUEUE_SIZE = 100


class EventBroker:
    def __init__(self, queue_size: int = _QUEUE_SIZE):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: list[queue.Queue] = []

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=self.queue_size)
        with self._lock:
            self._subscribers.append(q)
        logger.info("SSE client connected (subscribers=%s)", self.subscriber_count)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)
        logger.info("SSE client disconnected (subscribers=%s)", self.subscriber_count)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: dict[str, Any]) -> int:
        """Fan the event out to every subscriber. Returns how many received it."""
        with self._lock:
            subscribers = list(self._subscribers)
        logger.info("Broadcasting %s.%s to %s client(s)", event.get("type"), event.get("action"), len(subscribers))
        delivered = 0
        for q in subscribers:
            try:
                q.put_nowait(event)
                delivered += 1
            except queue.Full:
                logger.warning("SSE subscriber queue full; dropping %s event", event.get("type"))
        return delivered


broker = EventBroker()


def publish(event_type: str, action: str, data: dict[str, Any] | None = None) -> None:
    broker.publish(
        {
            "type": event_type,
            "action": action,
            "data": data or {},
            "timestamp": datetime.utcnow().isoformat(),
        }
    )


def format_sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


def event_stream(b: EventBroker, heartbeat_seconds: float) -> Iterator[str]:
    q = b.subscribe()
    try:
        yield format_sse({"type": "connected"})
        while True:
            try:
                event = q.get(timeout=heartbeat_seconds)
            except queue.Empty:
                yield format_sse({"type": "heartbeat", "timestamp": datetime.utcnow().isoformat()})
                continue
            yield format_sse(event)
    finally:
        # GeneratorExit on client disconnect lands here.
        b.unsubscribe(q)


@bp.get("/api/events")
@require_any_user
def stream():
    heartbeat = float(current_app.config.get("SSE_HEARTBEAT_SECONDS") or 30)
    return Response(
        stream_with_context(event_stream(broker, heartbeat)),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
