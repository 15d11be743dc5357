from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_PHONE_DIGITS = 7
MIN_TAX_ID_DIGITS = 8


def clean_text(value: Any) -> str | None:
    text = str(value if value is not None else "").strip()
    return text or None


def digits_only(value: Any) -> str:
    return "".join(ch for ch in str(value or "") if ch.isdigit())


def is_valid_email(value: Any) -> bool:
    return bool(EMAIL_RE.match(str(value or "").strip()))


def is_valid_phone(value: Any) -> bool:
    return len(digits_only(value)) >= MIN_PHONE_DIGITS


def is_valid_tax_id(value: Any) -> bool:
    return len(digits_only(value)) >= MIN_TAX_ID_DIGITS


def contact_errors(email: Any = None, phone: Any = None, tax_id: Any = None) -> List[str]:
    """Validates the optional contact fields of a supplier; blanks are skipped."""
    errors: List[str] = []
    if clean_text(email) and not is_valid_email(email):
        errors.append("invalid_email")
    if clean_text(phone) and not is_valid_phone(phone):
        errors.append("invalid_phone")
    if clean_text(tax_id) and not is_valid_tax_id(tax_id):
        errors.append("invalid_taxId")
    return errors


def parse_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).strip().replace(",", "."))
    except ValueError:
        return None


def parse_positive_int(value: Any) -> int | None:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def parse_date(value: Any) -> date | None:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_datetime(value: Any) -> datetime | None:
    text = str(value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def validate_order_items(items: Any) -> tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Returns ``(normalized_items, errors)``; errors are ``{index, error}`` dicts."""
    normalized: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    if not isinstance(items, list):
        return normalized, [{"index": None, "error": "items_not_list"}]

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            errors.append({"index": index, "error": "item_invalid"})
            continue
        name = clean_text(item.get("name"))
        quantity = parse_float(item.get("quantity"))
        unit_price = parse_float(item.get("unit_price"))
        if not name:
            errors.append({"index": index, "error": "item_name_required"})
            continue
        if quantity is None or quantity <= 0:
            errors.append({"index": index, "error": "item_quantity_invalid"})
            continue
        if unit_price is None or unit_price < 0:
            errors.append({"index": index, "error": "item_unitPrice_invalid"})
            continue
        normalized.append(
            {
                "name": name,
                "sku": clean_text(item.get("sku")),
                "quantity": quantity,
                "unit": clean_text(item.get("unit")) or "adet",
                "unit_price": unit_price,
                "extra_costs": max(0.0, parse_float(item.get("extra_costs")) or 0.0),
            }
        )
    return normalized, errors


def order_items_total(items: List[Dict[str, Any]]) -> float:
    return round(
        sum(float(item["quantity"]) * float(item["unit_price"]) + float(item.get("extra_costs") or 0) for item in items),
        2,
    )
