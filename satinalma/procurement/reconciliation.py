from __future__ import annotations

from typing import Any, Dict, Iterable, List


TERMINAL_ORDER_STATUSES = {"completed", "cancelled"}


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def reconcile_delivery_quantities(
    order_items: Iterable[Dict[str, Any]],
    deliveries: Iterable[Dict[str, Any]],
) -> Dict[str, Any]:
    """Sums approved delivery lines per order item.

    Each delivery is a dict with ``status`` and ``items``; each line carries
    ``order_item_id``, ``quantity`` and optionally ``approved_quantity``,
    which wins over ``quantity`` when present.
    """
    ordered: Dict[int, float] = {}
    for item in order_items:
        item_id = _as_int(item.get("id"))
        if item_id is None:
            continue
        ordered[item_id] = _as_float(item.get("quantity"))

    delivered: Dict[int, float] = {item_id: 0.0 for item_id in ordered}
    for delivery in deliveries:
        if str(delivery.get("status") or "").strip().lower() != "approved":
            continue
        for line in delivery.get("items") or []:
            order_item_id = _as_int(line.get("order_item_id"))
            if order_item_id not in delivered:
                continue
            approved = line.get("approved_quantity")
            delivered[order_item_id] += _as_float(approved if approved is not None else line.get("quantity"))

    items: List[Dict[str, Any]] = []
    for item_id, ordered_quantity in ordered.items():
        delivered_quantity = delivered[item_id]
        items.append(
            {
                "order_item_id": item_id,
                "ordered": ordered_quantity,
                "delivered": delivered_quantity,
                "remaining": max(0.0, ordered_quantity - delivered_quantity),
            }
        )

    return {
        "items": items,
        "all_delivered": bool(items) and all(item["delivered"] >= item["ordered"] for item in items),
        "any_delivered": any(item["delivered"] > 0 for item in items),
    }


def delivery_status_for(result: Dict[str, Any]) -> str | None:
    if result.get("all_delivered"):
        return "delivered"
    if result.get("any_delivered"):
        return "partially_delivered"
    return None


def next_order_status(current_status: str | None, result: Dict[str, Any]) -> str | None:
    # completed/cancelled orders keep their status whatever arrives later
    if str(current_status or "") in TERMINAL_ORDER_STATUSES:
        return current_status
    return delivery_status_for(result) or current_status
