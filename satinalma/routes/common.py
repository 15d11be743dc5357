from __future__ import annotations

from typing import Iterable, List

from flask import current_app, g, request, session

from satinalma.domain.contracts import Actor, ListQuery
from satinalma.errors import AuthenticationError, ValidationError
from satinalma.policies import current_role
from satinalma.procurement.validators import clean_text, parse_date
from satinalma.tenant import DEFAULT_TENANT_ID, current_tenant_id, current_user_id


DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def parse_int_arg(value: str | None, default: int, min_value: int, max_value: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return max(min_value, min(parsed, max_value))


def parse_optional_int(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def normalize_int_list(value) -> List[int]:
    if not isinstance(value, list):
        return []
    result: List[int] = []
    for item in value:
        parsed = parse_optional_int(item)
        if parsed is not None and parsed > 0 and parsed not in result:
            result.append(parsed)
    return result


def parse_flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def tenant_id() -> str:
    return current_tenant_id() or DEFAULT_TENANT_ID


def current_actor() -> Actor:
    return Actor(tenant_id=tenant_id(), user_id=current_user_id(), role=current_role())


def require_user_id() -> int:
    user_id = current_user_id()
    if user_id is None:
        raise AuthenticationError(code="unauthorized")
    return user_id


def json_payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def parse_list_query(args, *, filters: Iterable[str] = ()) -> ListQuery:
    date_from = clean_text(args.get("date_from"))
    date_to = clean_text(args.get("date_to"))
    invalid = [
        field
        for field, value in (("date_from", date_from), ("date_to", date_to))
        if value and parse_date(value) is None
    ]
    if invalid:
        raise ValidationError(code="invalid_date", details=invalid)

    sort_dir = (clean_text(args.get("sort_dir")) or "desc").lower()
    return ListQuery(
        q=clean_text(args.get("q")),
        status=clean_text(args.get("status")),
        date_from=date_from,
        date_to=date_to,
        sort_by=(clean_text(args.get("sort_by")) or "date").lower(),
        sort_dir="asc" if sort_dir == "asc" else "desc",
        page=parse_int_arg(args.get("page"), default=1, min_value=1, max_value=1_000_000),
        page_size=parse_int_arg(args.get("page_size"), default=DEFAULT_PAGE_SIZE, min_value=1, max_value=MAX_PAGE_SIZE),
        filters={key: str(args.get(key)) for key in filters if args.get(key) not in (None, "")},
    )


def load_request_identity() -> None:
    """Header fallbacks for API clients without a browser session."""
    session_tenant = (session.get("tenant_id") or "").strip()
    if session_tenant:
        g.tenant_id = session_tenant
    else:
        header_tenant = (request.headers.get("X-Tenant-Id") or "").strip()
        g.tenant_id = header_tenant or DEFAULT_TENANT_ID

    g.user_id = None
    # X-User-Id is only honoured without session auth
    trust_header = current_app.testing or not current_app.config.get("AUTH_ENABLED", True)
    if trust_header and session.get("user_id") in (None, ""):
        header_user = parse_optional_int(request.headers.get("X-User-Id"))
        if header_user and header_user > 0:
            g.user_id = header_user
