from __future__ import annotations

from typing import Any, Dict, Iterable, List


ENTITY_TYPES = ("request", "order")
APPROVAL_ACTIONS = {"approve": "approved", "reject": "rejected"}


def _as_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def applicable_steps(steps: Iterable[Dict[str, Any]], amount: Any) -> List[Dict[str, Any]]:
    """Drops steps whose budget limit the amount does not exceed."""
    total = _as_float(amount) or 0.0
    result = []
    for step in steps:
        limit = _as_float(step.get("budget_limit"))
        if limit is None or total > limit:
            result.append(step)
    return result


def step_statuses(steps: Iterable[Dict[str, Any]], records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    by_order = {int(record["step_order"]): record for record in records}
    statuses = []
    for step in steps:
        record = by_order.get(int(step["step_order"])) or {}
        statuses.append(
            {
                "step_order": int(step["step_order"]),
                "name": step["name"],
                "description": step.get("description"),
                "approver_role": step.get("approver_role"),
                "required": bool(step.get("required", True)),
                "auto_approve": bool(step.get("auto_approve", False)),
                "budget_limit": step.get("budget_limit"),
                "status": record.get("status") or "pending",
                "approver_user_id": record.get("approver_user_id"),
                "comment": record.get("comment"),
                "processed_at": record.get("processed_at"),
            }
        )
    return statuses


def current_step(statuses: Iterable[Dict[str, Any]]) -> Dict[str, Any] | None:
    for status in statuses:
        if status["required"] and status["status"] == "pending":
            return status
    return None


def overall_status(statuses: List[Dict[str, Any]]) -> str:
    if any(status["status"] == "rejected" for status in statuses):
        return "rejected"
    if all(status["status"] == "approved" for status in statuses if status["required"]):
        return "approved"
    return "pending"


def can_decide(role: str | None, step: Dict[str, Any] | None) -> bool:
    if step is None:
        return False
    return role == "admin" or role == step.get("approver_role")
