from __future__ import annotations

import re
import time
from typing import Iterable

from flask import Blueprint, current_app, jsonify, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from satinalma.application.audit_service import record_audit
from satinalma.db import get_db
from satinalma.errors import AuthenticationError, ConflictError, ValidationError
from satinalma.policies import VALID_ROLES, normalize_role, permissions_for


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

PUBLIC_PATHS = {"/health", "/api/auth/login", "/api/auth/register"}
PUBLIC_PREFIXES = ("/api/portal/",)


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _require_login():
        if not app.config.get("AUTH_ENABLED", True):
            return None
        if app.config.get("TESTING"):
            return None

        path = request.path or "/"
        if path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES):
            return None
        if session.get("user_email"):
            return None
        raise AuthenticationError(code="unauthorized")


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    if not email or not password:
        raise ValidationError(code="missing_fields", details=["email", "password"])

    user = _find_user(email, password, current_app.config.get("APP_USERS"))
    if not user:
        raise AuthenticationError(code="invalid_credentials")

    _start_session(user)
    _audit_session(user, "LOGIN")
    return jsonify({"user": _public_user(user)}), 200


@auth_bp.route("/register", methods=["POST"])
def register():
    payload = request.get_json(silent=True) or {}
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    display_name = str(payload.get("display_name") or "").strip() or None
    company_name = str(payload.get("company_name") or "").strip()

    missing = [
        field
        for field, value in (("email", email), ("password", password), ("company_name", company_name))
        if not value
    ]
    if missing:
        raise ValidationError(code="missing_fields", details=missing)

    user = _create_user(email, password, display_name, company_name)
    _start_session(user)
    record_audit(
        get_db(),
        tenant_id=user["tenant_id"],
        action="CREATE",
        entity_type="User",
        entity_id=user["id"],
        user_id=user["id"],
        new_data={"email": email, "role": user["role"], "company_name": company_name},
    )
    return jsonify({"user": _public_user(user)}), 201


@auth_bp.route("/logout", methods=["POST"])
def logout():
    if session.get("user_id") and session.get("tenant_id"):
        _audit_session(
            {"id": session.get("user_id"), "email": session.get("user_email"), "tenant_id": session.get("tenant_id")},
            "LOGOUT",
        )
    session.clear()
    return jsonify({"ok": True}), 200


@auth_bp.route("/me", methods=["GET"])
def me():
    if not session.get("user_email"):
        raise AuthenticationError(code="unauthorized")
    user = {
        "id": session.get("user_id"),
        "email": session.get("user_email"),
        "display_name": session.get("display_name"),
        "tenant_id": session.get("tenant_id"),
        "role": session.get("user_role"),
    }
    return jsonify({"user": _public_user(user)}), 200


def _audit_session(user: dict, action: str) -> None:
    record_audit(
        get_db(),
        tenant_id=user["tenant_id"],
        action=action,
        entity_type="User",
        entity_id=user["id"],
        user_id=int(user["id"]),
        new_data={"email": user.get("email")},
    )


def _start_session(user: dict) -> None:
    session.clear()
    session["user_id"] = user["id"]
    session["user_email"] = user["email"]
    session["display_name"] = user["display_name"]
    session["tenant_id"] = user["tenant_id"]
    session["user_role"] = user.get("role", "user")


def _public_user(user: dict) -> dict:
    role = normalize_role(user.get("role"), default="user")
    return {
        "id": user.get("id"),
        "email": user.get("email"),
        "display_name": user.get("display_name"),
        "tenant_id": user.get("tenant_id"),
        "role": role,
        "permissions": sorted(permissions_for(role)),
    }


def _find_user(email: str, password: str, raw_users: object) -> dict | None:
    db_user = _find_user_in_db(email)
    if db_user and db_user.get("password_hash") and check_password_hash(db_user["password_hash"], password):
        if not db_user.get("active", 1):
            return None
        return _user_from_row(db_user)

    for user in _parse_users(raw_users):
        if user["email"] == email and user["password"] == password:
            return _persist_bootstrap_user(user, existing=db_user)
    return None


def _user_from_row(row: dict) -> dict:
    return {
        "id": int(row["id"]),
        "email": row["email"],
        "display_name": row.get("display_name") or row["email"].split("@")[0],
        "tenant_id": row["tenant_id"],
        "role": normalize_role(row.get("role"), default="user"),
    }


def _find_user_in_db(email: str) -> dict | None:
    db = get_db()
    row = db.execute(
        """
        SELECT id, email, password_hash, display_name, role, tenant_id, active
        FROM users
        WHERE email = ?
        """,
        (email,),
    ).fetchone()
    if not row:
        return None
    return dict(row)


def _persist_bootstrap_user(user: dict, existing: dict | None) -> dict:
    db = get_db()
    _ensure_tenant(db, user["tenant_id"], f"Tenant {user['tenant_id']}")
    password_hash = generate_password_hash(user["password"])
    if existing:
        db.execute(
            "UPDATE users SET password_hash = ?, role = ?, display_name = ? WHERE id = ?",
            (password_hash, user["role"], user["display_name"], existing["id"]),
        )
        user_id = int(existing["id"])
    else:
        user_id = db.insert(
            """
            INSERT INTO users (email, password_hash, display_name, role, tenant_id)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (user["email"], password_hash, user["display_name"], user["role"], user["tenant_id"]),
        )
    db.commit()
    return {
        "id": user_id,
        "email": user["email"],
        "display_name": user["display_name"],
        "tenant_id": user["tenant_id"],
        "role": user["role"],
    }


def _create_user(email: str, password: str, display_name: str | None, company_name: str) -> dict:
    """Creates a new tenant for the company and makes the registrant its admin."""
    db = get_db()
    existing = db.execute(
        "SELECT 1 FROM users WHERE email = ?",
        (email,),
    ).fetchone()
    if existing:
        raise ConflictError(code="already_exists", details={"field": "email"})

    tenant_id = _new_tenant_id(db, company_name)
    _ensure_tenant(db, tenant_id, company_name)
    role = "admin"

    user_id = db.insert(
        """
        INSERT INTO users (email, password_hash, display_name, role, tenant_id)
        VALUES (?, ?, ?, ?, ?)
        RETURNING id
        """,
        (email, generate_password_hash(password), display_name, role, tenant_id),
    )
    db.commit()

    return {
        "id": user_id,
        "email": email,
        "display_name": display_name or email.split("@")[0],
        "tenant_id": tenant_id,
        "role": role,
    }


def _ensure_tenant(db, tenant_id: str, name: str) -> None:
    db.execute(
        """
        INSERT INTO tenants (id, name, subdomain)
        VALUES (?, ?, ?)
        ON CONFLICT DO NOTHING
        """,
        (tenant_id, name, tenant_id),
    )


def _new_tenant_id(db, company_name: str) -> str:
    base = f"tenant-{_slugify(company_name) or 'firma'}-{_base36(int(time.time() * 1000))}"
    tenant_id = base
    suffix = 1
    while db.execute("SELECT 1 FROM tenants WHERE id = ?", (tenant_id,)).fetchone():
        suffix += 1
        tenant_id = f"{base}-{suffix}"
    return tenant_id


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    text = ""
    while True:
        value, remainder = divmod(value, 36)
        text = digits[remainder] + text
        if not value:
            return text


def _slugify(value: str) -> str:
    value = value.strip().lower()
    value = re.sub(r"[^\w\s-]", "", value)
    value = re.sub(r"[\s_-]+", "-", value)
    return value.strip("-")


def _parse_users(raw_users: object) -> Iterable[dict]:
    if not raw_users:
        return []
    if isinstance(raw_users, str):
        entries = []
        for chunk in raw_users.replace("\n", ",").replace(";", ",").split(","):
            entry = chunk.strip()
            if entry:
                entries.append(entry)
    elif isinstance(raw_users, (list, tuple, set)):
        entries = [str(item).strip() for item in raw_users if str(item).strip()]
    else:
        return []

    users = []
    for entry in entries:
        parts = [part.strip() for part in entry.split(":")]
        if len(parts) < 3:
            continue
        email, password, tenant_id = parts[0].lower(), parts[1], parts[2]
        display_name = parts[3] if len(parts) > 3 and parts[3] else email.split("@")[0]
        role = parts[4].lower() if len(parts) > 4 and parts[4] else "user"
        if role not in VALID_ROLES:
            role = "user"
        users.append(
            {
                "email": email,
                "password": password,
                "tenant_id": tenant_id,
                "display_name": display_name,
                "role": role,
            }
        )
    return users
