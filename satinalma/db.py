import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


DB_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    def insert(self, sql: str, params: Iterable | None = None) -> int:
        """Runs an INSERT ... RETURNING id and returns the new id."""
        rows = self.execute(sql, params).fetchall()
        row = rows[0]
        return int(row["id"] if isinstance(row, dict) else row[0])

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(DB_TIMESTAMP_FORMAT)


def utc_now_text() -> str:
    return to_db_timestamp(utc_now())


def parse_db_timestamp(value) -> datetime | None:
    """Parses stored timestamps and ISO input into aware UTC datetimes."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
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


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 kurulu degil.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
        return

    _init_db_sqlite(db)


_SQLITE_DIALECT = {
    "pk": "INTEGER PRIMARY KEY AUTOINCREMENT",
    "now": "CURRENT_TIMESTAMP",
}

_POSTGRES_DIALECT = {
    "pk": "SERIAL PRIMARY KEY",
    "now": "(to_char(timezone('utc', now()), 'YYYY-MM-DD HH24:MI:SS'))",
}


SCHEMA_TABLES = [
    (
        "tenants",
        """
        CREATE TABLE IF NOT EXISTS tenants (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            subdomain TEXT UNIQUE,
            created_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
    (
        "users",
        """
        CREATE TABLE IF NOT EXISTS users (
            id {pk},
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT,
            display_name TEXT,
            role TEXT NOT NULL DEFAULT 'user' CHECK (
                role IN ('admin','purchasing_manager','unit_manager','unit_evaluator','warehouse','user','supplier')
            ),
            unit_name TEXT,
            unit_email TEXT,
            active INTEGER NOT NULL DEFAULT 1,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
    (
        "categories",
        """
        CREATE TABLE IF NOT EXISTS categories (
            id {pk},
            name TEXT NOT NULL,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            UNIQUE (tenant_id, name)
        )
        """,
    ),
    (
        "suppliers",
        """
        CREATE TABLE IF NOT EXISTS suppliers (
            id {pk},
            name TEXT NOT NULL,
            tax_id TEXT,
            email TEXT,
            phone TEXT,
            address TEXT,
            contact_name TEXT,
            category_id INTEGER,
            active INTEGER NOT NULL DEFAULT 1,
            registration_status TEXT NOT NULL DEFAULT 'approved' CHECK (
                registration_status IN ('pending','approved','rejected')
            ),
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
    (
        "requests",
        """
        CREATE TABLE IF NOT EXISTS requests (
            id {pk},
            barcode TEXT NOT NULL,
            subject TEXT NOT NULL,
            budget REAL NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending','approved','rejected','in_rfq','ordered','completed','cancelled')
            ),
            owner_user_id INTEGER,
            responsible_user_id INTEGER,
            unit_name TEXT,
            unit_email TEXT,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now},
            UNIQUE (tenant_id, barcode)
        )
        """,
    ),
    (
        "request_items",
        """
        CREATE TABLE IF NOT EXISTS request_items (
            id {pk},
            request_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            quantity REAL NOT NULL DEFAULT 1,
            unit TEXT NOT NULL DEFAULT 'adet',
            unit_price REAL,
            category_id INTEGER,
            tenant_id TEXT NOT NULL
        )
        """,
    ),
    (
        "rfqs",
        """
        CREATE TABLE IF NOT EXISTS rfqs (
            id {pk},
            rfx_code TEXT NOT NULL,
            title TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK (
                status IN ('ACTIVE','OPEN','PASSIVE','CANCELLED','COMPLETED')
            ),
            deadline TEXT,
            negotiation_round INTEGER NOT NULL DEFAULT 1,
            created_by_user_id INTEGER,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now},
            UNIQUE (tenant_id, rfx_code)
        )
        """,
    ),
    (
        "rfq_requests",
        """
        CREATE TABLE IF NOT EXISTS rfq_requests (
            id {pk},
            rfq_id INTEGER NOT NULL,
            request_id INTEGER NOT NULL,
            tenant_id TEXT NOT NULL,
            UNIQUE (rfq_id, request_id)
        )
        """,
    ),
    (
        "rfq_items",
        """
        CREATE TABLE IF NOT EXISTS rfq_items (
            id {pk},
            rfq_id INTEGER NOT NULL,
            request_item_id INTEGER,
            name TEXT NOT NULL,
            quantity REAL NOT NULL DEFAULT 1,
            unit TEXT NOT NULL DEFAULT 'adet',
            description TEXT,
            category_id INTEGER,
            tenant_id TEXT NOT NULL
        )
        """,
    ),
    (
        "rfq_suppliers",
        """
        CREATE TABLE IF NOT EXISTS rfq_suppliers (
            id {pk},
            rfq_id INTEGER NOT NULL,
            supplier_id INTEGER,
            email TEXT NOT NULL,
            contact_name TEXT,
            company_name TEXT,
            token TEXT NOT NULL UNIQUE,
            token_expiry TEXT NOT NULL,
            stage TEXT NOT NULL DEFAULT 'INVITED' CHECK (
                stage IN ('INVITED','OFFERED','DECLINED')
            ),
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
    (
        "offers",
        """
        CREATE TABLE IF NOT EXISTS offers (
            id {pk},
            rfq_id INTEGER NOT NULL,
            rfq_supplier_id INTEGER NOT NULL,
            round INTEGER NOT NULL DEFAULT 1,
            total_amount REAL NOT NULL DEFAULT 0,
            currency TEXT NOT NULL DEFAULT 'TRY',
            notes TEXT,
            is_winner INTEGER NOT NULL DEFAULT 0,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now},
            UNIQUE (rfq_supplier_id, round)
        )
        """,
    ),
    (
        "offer_items",
        """
        CREATE TABLE IF NOT EXISTS offer_items (
            id {pk},
            offer_id INTEGER NOT NULL,
            rfq_item_id INTEGER NOT NULL,
            quantity REAL NOT NULL,
            unit_price REAL NOT NULL,
            vat_rate REAL NOT NULL DEFAULT 0,
            total_price REAL NOT NULL,
            tenant_id TEXT NOT NULL
        )
        """,
    ),
    (
        "orders",
        """
        CREATE TABLE IF NOT EXISTS orders (
            id {pk},
            barcode TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending','approved','partially_delivered','delivered','completed','cancelled')
            ),
            supplier_id INTEGER,
            request_id INTEGER,
            rfq_id INTEGER,
            responsible_user_id INTEGER,
            realized_total REAL NOT NULL DEFAULT 0,
            currency TEXT NOT NULL DEFAULT 'TRY',
            delivery_token TEXT,
            delivery_token_expiry TEXT,
            evaluation_reminder_sent_at TEXT,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now},
            UNIQUE (tenant_id, barcode)
        )
        """,
    ),
    (
        "order_items",
        """
        CREATE TABLE IF NOT EXISTS order_items (
            id {pk},
            order_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            sku TEXT,
            quantity REAL NOT NULL,
            unit TEXT NOT NULL DEFAULT 'adet',
            unit_price REAL NOT NULL DEFAULT 0,
            extra_costs REAL NOT NULL DEFAULT 0,
            tenant_id TEXT NOT NULL
        )
        """,
    ),
    (
        "deliveries",
        """
        CREATE TABLE IF NOT EXISTS deliveries (
            id {pk},
            order_id INTEGER NOT NULL,
            code TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending','approved','rejected')
            ),
            delivered_at TEXT,
            received_by TEXT,
            notes TEXT,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now},
            UNIQUE (tenant_id, code)
        )
        """,
    ),
    (
        "delivery_items",
        """
        CREATE TABLE IF NOT EXISTS delivery_items (
            id {pk},
            delivery_id INTEGER NOT NULL,
            order_item_id INTEGER NOT NULL,
            quantity REAL NOT NULL,
            approved_quantity REAL,
            tenant_id TEXT NOT NULL
        )
        """,
    ),
    (
        "evaluation_questions",
        """
        CREATE TABLE IF NOT EXISTS evaluation_questions (
            id {pk},
            section TEXT NOT NULL CHECK (section IN ('A','B','C')),
            text TEXT NOT NULL,
            scoring_type TEXT,
            sort_order INTEGER NOT NULL DEFAULT 0,
            active INTEGER NOT NULL DEFAULT 1,
            tenant_id TEXT NOT NULL
        )
        """,
    ),
    (
        "scoring_types",
        """
        CREATE TABLE IF NOT EXISTS scoring_types (
            id {pk},
            code TEXT NOT NULL,
            name TEXT,
            weight_a REAL NOT NULL,
            weight_b REAL NOT NULL,
            weight_c REAL NOT NULL,
            active INTEGER NOT NULL DEFAULT 1,
            tenant_id TEXT NOT NULL,
            UNIQUE (tenant_id, code)
        )
        """,
    ),
    (
        "evaluations",
        """
        CREATE TABLE IF NOT EXISTS evaluations (
            id {pk},
            order_id INTEGER NOT NULL,
            supplier_id INTEGER NOT NULL,
            scoring_type TEXT,
            avg_a REAL NOT NULL DEFAULT 0,
            avg_b REAL NOT NULL DEFAULT 0,
            avg_c REAL NOT NULL DEFAULT 0,
            overall_rating REAL NOT NULL DEFAULT 0,
            score REAL NOT NULL DEFAULT 0,
            decision TEXT,
            weights_source TEXT,
            evaluator_user_id INTEGER,
            comment TEXT,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
    (
        "evaluation_answers",
        """
        CREATE TABLE IF NOT EXISTS evaluation_answers (
            id {pk},
            evaluation_id INTEGER NOT NULL,
            question_id INTEGER NOT NULL,
            value TEXT NOT NULL,
            numeric_value REAL NOT NULL DEFAULT 0,
            tenant_id TEXT NOT NULL
        )
        """,
    ),
    (
        "contracts",
        """
        CREATE TABLE IF NOT EXISTS contracts (
            id {pk},
            number TEXT NOT NULL,
            title TEXT NOT NULL,
            type TEXT NOT NULL,
            parties TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'draft' CHECK (
                status IN ('draft','active','terminated','expired')
            ),
            start_date TEXT NOT NULL,
            end_date TEXT,
            value REAL,
            currency TEXT NOT NULL DEFAULT 'TRY',
            order_id INTEGER,
            responsible_user_id INTEGER,
            notes TEXT,
            deleted_at TEXT,
            expiry_reminder_window INTEGER,
            expiry_reminded_at TEXT,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now},
            UNIQUE (tenant_id, number)
        )
        """,
    ),
    (
        "invoices",
        """
        CREATE TABLE IF NOT EXISTS invoices (
            id {pk},
            number TEXT NOT NULL,
            order_no TEXT NOT NULL,
            order_id INTEGER,
            amount REAL NOT NULL,
            currency TEXT NOT NULL DEFAULT 'TRY',
            due_date TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending','paid','cancelled')
            ),
            notes TEXT,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now},
            UNIQUE (tenant_id, number)
        )
        """,
    ),
    (
        "invoice_items",
        """
        CREATE TABLE IF NOT EXISTS invoice_items (
            id {pk},
            invoice_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            sku TEXT,
            quantity REAL NOT NULL,
            unit_price REAL NOT NULL DEFAULT 0,
            tax_rate REAL NOT NULL DEFAULT 0,
            tenant_id TEXT NOT NULL
        )
        """,
    ),
    (
        "meetings",
        """
        CREATE TABLE IF NOT EXISTS meetings (
            id {pk},
            title TEXT NOT NULL,
            description TEXT,
            location TEXT,
            status TEXT NOT NULL DEFAULT 'planned' CHECK (
                status IN ('planned','completed','cancelled')
            ),
            start_at TEXT NOT NULL,
            end_at TEXT,
            organizer_user_id INTEGER,
            reminder_minutes_before INTEGER,
            last_reminder_sent_at TEXT,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
    (
        "meeting_attendees",
        """
        CREATE TABLE IF NOT EXISTS meeting_attendees (
            id {pk},
            meeting_id INTEGER NOT NULL,
            user_id INTEGER,
            email TEXT,
            tenant_id TEXT NOT NULL
        )
        """,
    ),
    (
        "meeting_notes",
        """
        CREATE TABLE IF NOT EXISTS meeting_notes (
            id {pk},
            meeting_id INTEGER NOT NULL,
            author_user_id INTEGER,
            body TEXT NOT NULL,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
    (
        "notifications",
        """
        CREATE TABLE IF NOT EXISTS notifications (
            id {pk},
            user_id INTEGER NOT NULL,
            title TEXT NOT NULL,
            body TEXT,
            type TEXT NOT NULL DEFAULT 'info',
            meta TEXT,
            read_at TEXT,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
    (
        "notification_preferences",
        """
        CREATE TABLE IF NOT EXISTS notification_preferences (
            id {pk},
            user_id INTEGER NOT NULL,
            email_enabled INTEGER NOT NULL DEFAULT 1,
            in_app_enabled INTEGER NOT NULL DEFAULT 1,
            digest_enabled INTEGER NOT NULL DEFAULT 0,
            tenant_id TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT {now},
            UNIQUE (tenant_id, user_id)
        )
        """,
    ),
    (
        "smtp_settings",
        """
        CREATE TABLE IF NOT EXISTS smtp_settings (
            id {pk},
            key TEXT NOT NULL UNIQUE,
            host TEXT NOT NULL,
            port INTEGER NOT NULL,
            secure INTEGER NOT NULL DEFAULT 0,
            user_name TEXT NOT NULL,
            password TEXT,
            from_address TEXT NOT NULL,
            from_name TEXT,
            is_default INTEGER NOT NULL DEFAULT 0,
            active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
    (
        "email_log",
        """
        CREATE TABLE IF NOT EXISTS email_log (
            id {pk},
            to_address TEXT,
            subject TEXT,
            category TEXT NOT NULL DEFAULT 'general',
            status TEXT NOT NULL CHECK (status IN ('sent','failed','deferred')),
            attempts INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            message_id TEXT,
            payload_html TEXT,
            smtp_key TEXT,
            tenant_id TEXT,
            sent_at TEXT,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
    (
        "status_events",
        """
        CREATE TABLE IF NOT EXISTS status_events (
            id {pk},
            entity TEXT NOT NULL CHECK (
                entity IN ('request','rfq','order','delivery','contract','invoice','meeting')
            ),
            entity_id INTEGER NOT NULL,
            from_status TEXT,
            to_status TEXT NOT NULL,
            reason TEXT,
            actor_user_id INTEGER,
            occurred_at TEXT NOT NULL DEFAULT {now},
            tenant_id TEXT NOT NULL
        )
        """,
    ),
    (
        "approval_workflows",
        """
        CREATE TABLE IF NOT EXISTS approval_workflows (
            id {pk},
            name TEXT NOT NULL,
            display_name TEXT NOT NULL,
            entity_type TEXT NOT NULL CHECK (entity_type IN ('request','order')),
            active INTEGER NOT NULL DEFAULT 1,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now},
            updated_at TEXT NOT NULL DEFAULT {now},
            UNIQUE (tenant_id, name)
        )
        """,
    ),
    (
        "approval_steps",
        """
        CREATE TABLE IF NOT EXISTS approval_steps (
            id {pk},
            workflow_id INTEGER NOT NULL,
            step_order INTEGER NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            approver_role TEXT NOT NULL,
            required INTEGER NOT NULL DEFAULT 1,
            auto_approve INTEGER NOT NULL DEFAULT 0,
            budget_limit REAL,
            tenant_id TEXT NOT NULL,
            UNIQUE (workflow_id, step_order)
        )
        """,
    ),
    (
        "approval_records",
        """
        CREATE TABLE IF NOT EXISTS approval_records (
            id {pk},
            entity_type TEXT NOT NULL CHECK (entity_type IN ('request','order')),
            entity_id INTEGER NOT NULL,
            step_order INTEGER NOT NULL,
            step_name TEXT NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('approved','rejected')),
            approver_user_id INTEGER,
            comment TEXT,
            processed_at TEXT NOT NULL DEFAULT {now},
            tenant_id TEXT NOT NULL,
            UNIQUE (tenant_id, entity_type, entity_id, step_order)
        )
        """,
    ),
    (
        "audit_logs",
        """
        CREATE TABLE IF NOT EXISTS audit_logs (
            id {pk},
            user_id INTEGER,
            action TEXT NOT NULL,
            entity_type TEXT NOT NULL,
            entity_id TEXT,
            old_data TEXT,
            new_data TEXT,
            ip_address TEXT,
            user_agent TEXT,
            tenant_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {now}
        )
        """,
    ),
]


SCHEMA_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_requests_tenant_created ON requests (tenant_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_orders_tenant_status ON orders (tenant_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items (order_id)",
    "CREATE INDEX IF NOT EXISTS idx_deliveries_order ON deliveries (order_id)",
    "CREATE INDEX IF NOT EXISTS idx_delivery_items_delivery ON delivery_items (delivery_id)",
    "CREATE INDEX IF NOT EXISTS idx_rfq_items_rfq ON rfq_items (rfq_id)",
    "CREATE INDEX IF NOT EXISTS idx_rfq_suppliers_rfq ON rfq_suppliers (rfq_id)",
    "CREATE INDEX IF NOT EXISTS idx_contracts_tenant_end ON contracts (tenant_id, end_date)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (tenant_id, user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_email_log_status ON email_log (status, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_meetings_start ON meetings (tenant_id, start_at)",
    "CREATE INDEX IF NOT EXISTS idx_approval_steps_workflow ON approval_steps (workflow_id, step_order)",
    "CREATE INDEX IF NOT EXISTS idx_approval_records_entity ON approval_records (tenant_id, entity_type, entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_tenant_created ON audit_logs (tenant_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_entity ON audit_logs (tenant_id, entity_type, entity_id)",
]


def _create_schema(db, dialect: dict) -> None:
    for _table, ddl in SCHEMA_TABLES:
        db.execute(ddl.format(**dialect))
    for statement in SCHEMA_INDEXES:
        db.execute(statement)


def _init_db_sqlite(db: Database):
    _create_schema(db, _SQLITE_DIALECT)
    db.commit()


def _init_db_postgres(db: Database) -> None:
    _create_schema(db, _POSTGRES_DIALECT)
    db.commit()


def schema_table_names() -> List[str]:
    return [table for table, _ddl in SCHEMA_TABLES]
