from satinalma.realtime.hub import (
    NOTIFICATIONS_CHANNEL,
    HubMessage,
    NotificationHub,
    get_hub,
    meeting_channel,
    reset_hub_for_tests,
)
from satinalma.realtime.sse import event_stream, format_sse, sse_response

__all__ = [
    "NOTIFICATIONS_CHANNEL",
    "HubMessage",
    "NotificationHub",
    "event_stream",
    "format_sse",
    "get_hub",
    "meeting_channel",
    "reset_hub_for_tests",
    "sse_response",
]
