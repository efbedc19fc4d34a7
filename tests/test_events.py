import json

from app.portal.events import EventBroker, event_stream, format_sse


def _decode(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


def test_publish_fans_out_to_subscribers():
    b = EventBroker()
    q1, q2 = b.subscribe(), b.subscribe()
    assert b.publish({"type": "application", "action": "created"}) == 2
    assert q1.get_nowait()["action"] == "created"
    assert q2.get_nowait()["type"] == "application"

    b.unsubscribe(q1)
    assert b.subscriber_count == 1
    assert b.publish({"type": "payment", "action": "updated"}) == 1


def test_full_queue_drops_event_without_blocking():
    b = EventBroker(queue_size=1)
    q = b.subscribe()
    assert b.publish({"type": "a"}) == 1
    assert b.publish({"type": "b"}) == 0
    assert q.get_nowait()["type"] == "a"
    assert q.empty()


def test_event_stream_connects_then_heartbeats():
    b = EventBroker()
    stream = event_stream(b, heartbeat_seconds=0.01)
    assert _decode(next(stream)) == {"type": "connected"}
    assert b.subscriber_count == 1

    assert _decode(next(stream))["type"] == "heartbeat"

    b.publish({"type": "document", "action": "uploaded", "data": {"id": 7}})
    assert _decode(next(stream))["data"] == {"id": 7}

    stream.close()
    assert b.subscriber_count == 0


def test_format_sse_serializes_non_json_values():
    from datetime import datetime

    frame = format_sse({"type": "x", "at": datetime(2026, 1, 2)})
    assert _decode(frame)["at"] == "2026-01-02 00:00:00"


def test_events_endpoint_requires_login(client):
    assert client.get("/api/events").status_code == 401


def test_events_endpoint_streams(client, login):
    login("alpha@example.com")
    r = client.get("/api/events")
    assert r.status_code == 200
    assert r.mimetype == "text/event-stream"
    first = next(iter(r.response))
    if isinstance(first, bytes):
        first = first.decode()
    assert _decode(first) == {"type": "connected"}
    r.close()
