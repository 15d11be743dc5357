from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import threading
import time
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Dict

from flask import g, has_request_context, request


# bound by jobs and queue workers that run outside a request
_BACKGROUND_REQUEST_ID: contextvars.ContextVar[str] = contextvars.ContextVar("satinalma_request_id", default="")

_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}

_ROUTE_LIMIT = 40


@contextlib.contextmanager
def bind_request_id(request_id: str | None):
    token = _BACKGROUND_REQUEST_ID.set(str(request_id or "").strip())
    try:
        yield _BACKGROUND_REQUEST_ID.get()
    finally:
        _BACKGROUND_REQUEST_ID.reset(token)


def ensure_request_id() -> str:
    """Reuses the caller's X-Request-Id when present."""
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if not request_id:
        request_id = str(request.headers.get("X-Request-Id") or "").strip()[:64] or uuid.uuid4().hex
        g.request_id = request_id
    return request_id


def current_request_id(default: str | None = None) -> str:
    if has_request_context():
        request_id = str(getattr(g, "request_id", "") or "").strip()
        if request_id:
            return request_id
    return _BACKGROUND_REQUEST_ID.get() or default or "n/a"


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": current_request_id(default=getattr(record, "request_id", None)),
        }
        if has_request_context():
            payload["method"] = request.method
            payload["path"] = request.path
            tenant = getattr(g, "tenant_id", None)
            if tenant:
                payload["tenant_id"] = tenant
        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_") and key not in payload
        }
        payload.update(extras)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_json_logging(app) -> None:
    if not app.config.get("LOG_JSON", True):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))
    app.logger.handlers = []
    app.logger.propagate = True


class MetricsRegistry:
    """In-process counters reported by /health; they reset on restart."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._route_requests: Counter = Counter()
            self._route_errors: Counter = Counter()
            self._route_latency_ms: Dict[str, tuple] = {}
            self._emails: Counter = Counter()
            self._sse_open: Counter = Counter()
            self._sse_total = 0
            self._events: Counter = Counter()
            self._jobs: Dict[str, Counter] = {}

    def observe_http(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        key = f"{(method or 'GET').upper()} {route or 'unknown'}"
        duration_ms = max(0.0, float(duration_ms))
        with self._lock:
            self._route_requests[key] += 1
            if status_code >= 400:
                self._route_errors[key] += 1
            total, peak = self._route_latency_ms.get(key, (0.0, 0.0))
            self._route_latency_ms[key] = (total + duration_ms, max(peak, duration_ms))

    def observe_email(self, status: str) -> None:
        with self._lock:
            self._emails[(status or "unknown").lower()] += 1

    def observe_sse(self, channel: str, opened: bool) -> None:
        family = (channel or "unknown").split(":", 1)[0] or "unknown"
        with self._lock:
            if opened:
                self._sse_open[family] += 1
                self._sse_total += 1
            elif self._sse_open[family] > 0:
                self._sse_open[family] -= 1

    def observe_domain_event(self, event_type: str) -> None:
        with self._lock:
            self._events[event_type or "unknown"] += 1

    def observe_job(self, name: str, outcome: str) -> None:
        with self._lock:
            self._jobs.setdefault(name, Counter())[outcome] += 1

    def snapshot(self) -> dict:
        with self._lock:
            by_route = []
            for key, count in self._route_requests.most_common(_ROUTE_LIMIT):
                total, peak = self._route_latency_ms.get(key, (0.0, 0.0))
                by_route.append(
                    {
                        "route": key,
                        "requests": count,
                        "errors": self._route_errors[key],
                        "avg_latency_ms": round(total / count, 2) if count else 0.0,
                        "max_latency_ms": round(peak, 2),
                    }
                )
            return {
                "requests_total": sum(self._route_requests.values()),
                "errors_total": sum(self._route_errors.values()),
                "by_route": by_route,
                "emails": dict(sorted(self._emails.items())),
                "sse": {"open_connections": dict(sorted(self._sse_open.items())), "connections_total": self._sse_total},
                "domain_events": {"emitted_total": sum(self._events.values()), "by_type": dict(sorted(self._events.items()))},
                "jobs": {name: dict(counts) for name, counts in sorted(self._jobs.items())},
            }


_METRICS = MetricsRegistry()


def mark_request_start() -> None:
    g._request_started_at = time.perf_counter()


def observe_response(response):
    started = getattr(g, "_request_started_at", None)
    elapsed_ms = (time.perf_counter() - started) * 1000.0 if started else 0.0
    route = request.url_rule.rule if request.url_rule is not None else request.path
    _METRICS.observe_http(request.method, route, response.status_code, elapsed_ms)
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    return response


def observe_email(status: str) -> None:
    _METRICS.observe_email(status)


def observe_sse_opened(channel: str) -> None:
    _METRICS.observe_sse(channel, opened=True)


def observe_sse_closed(channel: str) -> None:
    _METRICS.observe_sse(channel, opened=False)


def observe_domain_event_emitted(event_type: str) -> None:
    _METRICS.observe_domain_event(event_type)


def observe_job_run(name: str, outcome: str) -> None:
    _METRICS.observe_job(name, outcome)


def metrics_snapshot() -> dict:
    return _METRICS.snapshot()


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
