from __future__ import annotations

import threading
import time
from typing import Dict, Tuple

from flask import current_app, request, session

from satinalma.errors import ValidationError


# credential and supplier-token endpoints; limited per client address
SENSITIVE_PATH_PREFIXES = ("/api/auth/login", "/api/auth/register", "/api/portal/")

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), geolocation=(), microphone=()",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Content-Security-Policy": "default-src 'none'; connect-src 'self'; frame-ancestors 'none'; base-uri 'none'",
}


class SimpleRateLimiter:
    """Fixed-window request counters."""

    def __init__(self, max_keys: int = 10_000) -> None:
        self.max_keys = max_keys
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[float, int]] = {}

    def allow(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
        now = time.monotonic()
        with self._lock:
            started, hits = self._windows.get(key, (now, 0))
            if now - started >= window_seconds:
                started, hits = now, 0
            hits += 1
            self._windows[key] = (started, hits)
            if len(self._windows) > self.max_keys:
                cutoff = now - window_seconds
                self._windows = {name: window for name, window in self._windows.items() if window[0] >= cutoff}
        return hits <= limit, max(0, int(window_seconds - (now - started)))

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


_RATE_LIMITER = SimpleRateLimiter()


def is_sensitive_path(path: str) -> bool:
    return path.startswith(SENSITIVE_PATH_PREFIXES)


def _limit_for_request() -> tuple[str, int]:
    address = request.remote_addr or "unknown"
    route = request.url_rule.rule if request.url_rule else request.path
    if is_sensitive_path(request.path):
        limit = current_app.config.get("RATE_LIMIT_SENSITIVE_MAX_REQUESTS", 20)
        return f"sensitive|{address}|{route}", max(1, int(limit or 20))
    user = (session.get("user_email") or "anon").strip().lower()
    limit = current_app.config.get("RATE_LIMIT_MAX_REQUESTS", 300)
    return f"api|{address}|{user}|{request.method}|{route}", max(1, int(limit or 300))


def enforce_rate_limit() -> None:
    if not current_app.config.get("RATE_LIMIT_ENABLED", True) or request.method == "OPTIONS":
        return None
    # SSE streams stay open for minutes
    if request.path.endswith("/stream"):
        return None

    key, limit = _limit_for_request()
    window_seconds = max(1, int(current_app.config.get("RATE_LIMIT_WINDOW_SECONDS", 60) or 60))
    allowed, retry_after = _RATE_LIMITER.allow(key, limit=limit, window_seconds=window_seconds)
    if allowed:
        return None
    raise ValidationError(
        code="rate_limit_exceeded",
        http_status=429,
        critical=False,
        payload={"retry_after": retry_after},
        log_context=key,
    )


def apply_security_headers(response):
    if not current_app.config.get("SECURITY_HEADERS_ENABLED", True):
        return response
    for name, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    if is_sensitive_path(request.path):
        response.headers["Cache-Control"] = "no-store"
    if request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


def reset_rate_limiter_for_tests() -> None:
    _RATE_LIMITER.reset()
