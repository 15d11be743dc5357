from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class ListQuery:
    q: str | None = None
    status: str | None = None
    date_from: str | None = None
    date_to: str | None = None
    sort_by: str = "date"
    sort_dir: str = "desc"
    page: int = 1
    page_size: int = 20
    filters: Dict[str, str] = field(default_factory=dict)

    @property
    def direction(self) -> str:
        return "ASC" if str(self.sort_dir).lower() == "asc" else "DESC"

    def order_by(self, columns: Dict[str, str], default: str = "date", tiebreaker: str = "id") -> str:
        column = columns.get(self.sort_by) or columns[default]
        return f"{column} {self.direction}, {tiebreaker} {self.direction}"

    def filter(self, key: str) -> str | None:
        value = str(self.filters.get(key) or "").strip()
        return value or None


@dataclass(frozen=True)
class Actor:
    tenant_id: str
    user_id: int | None = None
    role: str = "user"


@dataclass(frozen=True)
class RequestCreateInput:
    barcode: str
    subject: str
    budget: float
    unit_name: str | None
    unit_email: str | None
    responsible_user_id: int | None
    items: List[Dict[str, Any]]


@dataclass(frozen=True)
class RfqSupplierInvite:
    email: str
    supplier_id: int | None = None
    name: str | None = None
    contact_name: str | None = None


@dataclass(frozen=True)
class RfqCreateInput:
    title: str
    request_ids: List[int]
    suppliers: List[RfqSupplierInvite]
    deadline: str | None = None
    item_categories: Dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class OfferSubmitInput:
    items: List[Dict[str, Any]]
    currency: str = "TRY"
    notes: str | None = None


@dataclass(frozen=True)
class DeliveryLineInput:
    order_item_id: int
    quantity: float


@dataclass(frozen=True)
class DeliveryRecordInput:
    order_id: int
    lines: List[DeliveryLineInput]
    code: str | None = None
    received_by: str | None = None
    notes: str | None = None
    delivered_at: str | None = None


@dataclass(frozen=True)
class EvaluationAnswerInput:
    question_id: int
    section: str | None
    value: str


@dataclass(frozen=True)
class EvaluationSubmitInput:
    order_id: int
    supplier_id: int
    scoring_type: str
    answers: List[EvaluationAnswerInput]
    comment: str | None = None


@dataclass(frozen=True)
class ContractInput:
    title: str
    type: str
    parties: str
    start_date: str
    end_date: str | None
    status: str
    number: str | None = None
    value: float | None = None
    currency: str = "TRY"
    order_id: int | None = None
    responsible_user_id: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class InvoiceCreateInput:
    number: str
    order_no: str
    amount: float
    due_date: str
    currency: str = "TRY"
    status: str = "pending"
    notes: str | None = None
    items: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class MeetingCreateInput:
    title: str
    start_at: str
    end_at: str | None
    description: str | None = None
    location: str | None = None
    reminder_minutes_before: int | None = None
    attendee_emails: List[str] = field(default_factory=list)
    attendee_user_ids: List[int] = field(default_factory=list)
