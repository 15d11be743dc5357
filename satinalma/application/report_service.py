from __future__ import annotations

from datetime import date, timedelta

from satinalma.db import utc_now
from satinalma.domain.contracts import ServiceOutput
from satinalma.errors import ValidationError
from satinalma.infrastructure.repositories.contract_repository import ContractRepository
from satinalma.infrastructure.repositories.order_repository import OrderRepository
from satinalma.infrastructure.repositories.report_repository import COUNTED_TABLES, ReportRepository
from satinalma.infrastructure.repositories.request_repository import RequestRepository
from satinalma.infrastructure.repositories.supplier_repository import SupplierRepository
from satinalma.procurement.validators import clean_text, parse_date


RECENT_LIMIT = 5


def month_start(day: date) -> date:
    return day.replace(day=1)


def previous_month_start(day: date) -> date:
    return month_start(month_start(day) - timedelta(days=1))


def trend_percent(current: int, previous: int) -> float:
    if previous == 0:
        return 100.0 if current else 0.0
    return round((current - previous) / previous * 100, 1)


class ReportService:
    def dashboard(self, db, *, tenant_id: str, today: date | None = None) -> ServiceOutput:
        today = today or utc_now().date()
        this_month = month_start(today).isoformat()
        last_month = previous_month_start(today).isoformat()
        reports = ReportRepository(tenant_id=tenant_id)

        counts = {}
        for table in COUNTED_TABLES:
            current = reports.count_created(db, table, since=this_month)
            previous = reports.count_created(db, table, since=last_month, before=this_month)
            counts[table] = {
                "total": reports.count_created(db, table),
                "pending": reports.count_created(db, table, status="pending"),
                "this_month": current,
                "last_month": previous,
                "trend": trend_percent(current, previous),
            }

        suppliers = SupplierRepository(tenant_id=tenant_id)
        contracts = ContractRepository(tenant_id=tenant_id)
        return ServiceOutput(
            payload={
                "requests": counts["requests"],
                "orders": counts["orders"],
                "suppliers": {
                    "total": suppliers.count_all(db),
                    "active": suppliers.count_all(db, active_only=True),
                },
                "contracts": {
                    "total": contracts.count_all(db),
                    "active": contracts.count_all(db, status="active"),
                },
                "recent_requests": RequestRepository(tenant_id=tenant_id).recent(db, limit=RECENT_LIMIT),
                "recent_orders": OrderRepository(tenant_id=tenant_id).recent(db, limit=RECENT_LIMIT),
            }
        )

    def spend_by_supplier(
        self,
        db,
        *,
        tenant_id: str,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> ServiceOutput:
        start = parse_date(date_from)
        end = parse_date(date_to)
        if (clean_text(date_from) and start is None) or (clean_text(date_to) and end is None):
            raise ValidationError(code="invalid_date")
        items = ReportRepository(tenant_id=tenant_id).spend_by_supplier(
            db,
            date_from=start.isoformat() if start else None,
            date_before=(end + timedelta(days=1)).isoformat() if end else None,
        )
        return ServiceOutput(
            payload={
                "items": items,
                "total_spend": round(sum(item["total_spend"] for item in items), 2),
            }
        )
