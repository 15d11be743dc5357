from __future__ import annotations

from typing import Any, Dict, Iterable, List

from satinalma.procurement.reconciliation import reconcile_delivery_quantities


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _invoice_line_for(order_item: Dict[str, Any], invoice_items: Iterable[Dict[str, Any]]) -> Dict[str, Any] | None:
    name = str(order_item.get("name") or "").strip()
    sku = str(order_item.get("sku") or "").strip()
    for line in invoice_items:
        line_name = str(line.get("name") or "").strip()
        if line_name == name or (sku and sku in line_name):
            return line
    return None


def three_way_match(
    order: Dict[str, Any],
    order_items: List[Dict[str, Any]],
    deliveries: List[Dict[str, Any]],
    invoices: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """Compares ordered, delivered and invoiced quantities per order item.

    Only approved deliveries count. An invoice contributes at most one line
    per order item: the first one whose name matches, or that contains the
    item's SKU.
    """
    reconciliation = reconcile_delivery_quantities(order_items, deliveries)
    delivered_by_item = {row["order_item_id"]: row["delivered"] for row in reconciliation["items"]}

    analysis = []
    for item in order_items:
        ordered = _as_float(item.get("quantity"))
        delivered = float(delivered_by_item.get(int(item["id"]), 0.0))
        invoiced = 0.0
        for invoice in invoices:
            line = _invoice_line_for(item, invoice.get("items") or [])
            if line is not None:
                invoiced += _as_float(line.get("quantity"))
        analysis.append(
            {
                "id": item["id"],
                "name": item.get("name"),
                "sku": item.get("sku"),
                "ordered": ordered,
                "delivered": delivered,
                "invoiced": invoiced,
                "price": _as_float(item.get("unit_price")),
                "status": {
                    "qty_match": ordered == delivered and delivered == invoiced,
                    "over_delivered": delivered > ordered,
                    "under_delivered": delivered < ordered,
                    "over_invoiced": invoiced > delivered,
                },
            }
        )

    ordered_total = _as_float(order.get("realized_total"))
    invoiced_total = sum(_as_float(invoice.get("amount")) for invoice in invoices)
    return {
        "order_barcode": order.get("barcode"),
        "analysis": analysis,
        "totals": {
            "ordered": ordered_total,
            "invoiced": invoiced_total,
            "balance": round(ordered_total - invoiced_total, 2),
        },
    }
