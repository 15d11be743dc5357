from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List


NOTIFICATIONS_CHANNEL = "notifications"


def meeting_channel(meeting_id: int) -> str:
    return f"meeting:{int(meeting_id)}"


@dataclass(frozen=True)
class HubMessage:
    channel: str
    event: str | None
    payload: Dict[str, Any]
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[HubMessage], None]


class NotificationHub:
    """In-process channel -> subscriber map used for SSE fan-out.

    Nothing is persisted or replayed: a message published while nobody is
    listening is dropped, and subscribers only live as long as the
    connection that registered them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, Dict[int, Subscriber]] = {}
        self._next_token = 0
        self._logger = logging.getLogger("satinalma.realtime")

    def subscribe(self, channel: str, callback: Subscriber) -> Callable[[], None]:
        channel_key = str(channel or "").strip()
        if not channel_key:
            raise ValueError("channel is required")
        with self._lock:
            self._next_token += 1
            token = self._next_token
            self._subscribers.setdefault(channel_key, {})[token] = callback

        def _unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(channel_key)
                if not callbacks:
                    return
                callbacks.pop(token, None)
                if not callbacks:
                    self._subscribers.pop(channel_key, None)

        return _unsubscribe

    def publish(self, channel: str, event: str | None, payload: Dict[str, Any] | None = None) -> int:
        channel_key = str(channel or "").strip()
        message = HubMessage(channel=channel_key, event=event, payload=dict(payload or {}))
        with self._lock:
            callbacks: List[Subscriber] = list(self._subscribers.get(channel_key, {}).values())

        delivered = 0
        for callback in callbacks:
            try:
                callback(message)
                delivered += 1
            except Exception:  # noqa: BLE001
                self._logger.exception(
                    "hub_subscriber_failed",
                    extra={"channel": channel_key, "hub_event": event},
                )
        return delivered

    def subscriber_count(self, channel: str | None = None) -> int:
        with self._lock:
            if channel is not None:
                return len(self._subscribers.get(str(channel).strip(), {}))
            return sum(len(callbacks) for callbacks in self._subscribers.values())

    def channels(self) -> List[str]:
        with self._lock:
            return sorted(self._subscribers.keys())

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()


_DEFAULT_HUB = NotificationHub()


def get_hub() -> NotificationHub:
    return _DEFAULT_HUB


def reset_hub_for_tests() -> None:
    _DEFAULT_HUB.clear()
