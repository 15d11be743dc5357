from __future__ import annotations

import json
import queue
from typing import Any, Callable, Iterator

from flask import Response

from satinalma.observability import observe_sse_closed, observe_sse_opened
from satinalma.realtime.hub import HubMessage, NotificationHub


SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(payload: Any, event: str | None = None) -> str:
    data = json.dumps(payload, ensure_ascii=False, default=str, separators=(",", ":"))
    if event:
        return f"event: {event}\ndata: {data}\n\n"
    return f"data: {data}\n\n"


def event_stream(
    hub: NotificationHub,
    channel: str,
    *,
    accept: Callable[[HubMessage], bool] | None = None,
    ping_seconds: float = 15.0,
    retry_ms: int = 5000,
    named_events: bool = True,
) -> Iterator[str]:
    messages: "queue.Queue[HubMessage]" = queue.Queue()
    unsubscribe = hub.subscribe(channel, messages.put)
    observe_sse_opened(channel)
    try:
        yield ":connected\n\n"
        yield f"retry: {int(retry_ms)}\n\n"
        yield format_sse({"ok": True}, event="ready")
        while True:
            try:
                message = messages.get(timeout=max(0.01, float(ping_seconds)))
            except queue.Empty:
                yield ":ping\n\n"
                continue
            if accept is not None and not accept(message):
                continue
            yield format_sse(message.payload, event=message.event if named_events else None)
    finally:
        unsubscribe()
        observe_sse_closed(channel)


def sse_response(stream: Iterator[str]) -> Response:
    return Response(stream, mimetype="text/event-stream", headers=SSE_HEADERS)
