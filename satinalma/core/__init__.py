from satinalma.core.event_bus import (
    DeliveryRecorded,
    DomainEvent,
    EventBus,
    OfferSubmitted,
    OrderCreated,
    OrderStatusChanged,
    RequestCreated,
    RfqCreated,
    RfqPublished,
    get_event_bus,
    reset_event_bus_for_tests,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "RequestCreated",
    "RfqCreated",
    "RfqPublished",
    "OfferSubmitted",
    "OrderCreated",
    "OrderStatusChanged",
    "DeliveryRecorded",
    "get_event_bus",
    "reset_event_bus_for_tests",
]
