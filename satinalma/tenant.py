from flask import session, g


DEFAULT_TENANT_ID = "tenant-demo"


def current_tenant_id() -> str | None:
    return normalize_tenant_id(session.get("tenant_id")) or normalize_tenant_id(getattr(g, "tenant_id", None))


def normalize_tenant_id(value: str | None) -> str | None:
    tenant_id = str(value or "").strip()
    return tenant_id or None


def current_user_id() -> int | None:
    raw = session.get("user_id")
    if raw in (None, ""):
        raw = getattr(g, "user_id", None)
    try:
        return int(raw) if raw not in (None, "") else None
    except (TypeError, ValueError):
        return None
