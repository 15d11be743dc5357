import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "satinalma.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", True)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-satinalma")
    AUTH_ENABLED = _bool_env("AUTH_ENABLED", True)
    APP_USERS = os.environ.get("APP_USERS", "admin@satinalma.app:admin123:tenant-demo:Yonetici:admin")

    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)
    RATE_LIMIT_SENSITIVE_MAX_REQUESTS = _int_env("RATE_LIMIT_SENSITIVE_MAX_REQUESTS", 20)
    SECURITY_HEADERS_ENABLED = _bool_env("SECURITY_HEADERS_ENABLED", True)

    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")

    MAIL_MODE = os.environ.get("MAIL_MODE", "smtp")
    MAIL_DEFAULT_FROM = os.environ.get("MAIL_DEFAULT_FROM", "bildirim@firma.com")
    MAIL_SMTP_HOST = os.environ.get("MAIL_SMTP_HOST")
    MAIL_SMTP_PORT = _int_env("MAIL_SMTP_PORT", 587)
    MAIL_SMTP_USER = os.environ.get("MAIL_SMTP_USER")
    MAIL_SMTP_PASSWORD = os.environ.get("MAIL_SMTP_PASSWORD")
    MAIL_SMTP_SECURE = _bool_env("MAIL_SMTP_SECURE", False)
    MAIL_SMTP_TIMEOUT_SECONDS = _int_env("MAIL_SMTP_TIMEOUT_SECONDS", 20)
    MAIL_MAX_ATTEMPTS = _int_env("MAIL_MAX_ATTEMPTS", 3)
    MAIL_RETRY_BACKOFF_MS = _int_env("MAIL_RETRY_BACKOFF_MS", 750)
    MAIL_BUSINESS_HOURS_ONLY = _bool_env("MAIL_BUSINESS_HOURS_ONLY", False)
    MAIL_BUSINESS_START_HOUR = _int_env("MAIL_BUSINESS_START_HOUR", 9)
    MAIL_BUSINESS_END_HOUR = _int_env("MAIL_BUSINESS_END_HOUR", 18)
    NOTIFICATION_EMAIL_ASYNC = _bool_env("NOTIFICATION_EMAIL_ASYNC", True)
    NOTIFICATION_EMAIL_SPACING_MS = _int_env("NOTIFICATION_EMAIL_SPACING_MS", 50)

    SSE_PING_SECONDS = _int_env("SSE_PING_SECONDS", 15)
    SSE_RETRY_MS = _int_env("SSE_RETRY_MS", 5000)

    JOB_SCHEDULER_ENABLED = _bool_env("JOB_SCHEDULER_ENABLED", True)
    JOB_SCHEDULER_INTERVAL_SECONDS = _int_env("JOB_SCHEDULER_INTERVAL_SECONDS", 300)
    JOB_SCHEDULER_MIN_BACKOFF_SECONDS = _int_env("JOB_SCHEDULER_MIN_BACKOFF_SECONDS", 30)
    JOB_SCHEDULER_MAX_BACKOFF_SECONDS = _int_env("JOB_SCHEDULER_MAX_BACKOFF_SECONDS", 1800)
    JOB_SCHEDULER_JOBS = os.environ.get(
        "JOB_SCHEDULER_JOBS",
        "process_deferred_emails,contract_expiry_reminders,evaluation_reminders,meeting_reminders",
    )
    JOB_SCHEDULER_JOB_INTERVALS = os.environ.get(
        "JOB_SCHEDULER_JOB_INTERVALS",
        "contract_expiry_reminders=86400,evaluation_reminders=86400",
    )

    DEFERRED_EMAIL_BATCH_SIZE = _int_env("DEFERRED_EMAIL_BATCH_SIZE", 100)
    RFQ_INVITE_VALID_DAYS = _int_env("RFQ_INVITE_VALID_DAYS", 7)
    DELIVERY_TOKEN_VALID_DAYS = _int_env("DELIVERY_TOKEN_VALID_DAYS", 7)
    CONTRACT_REMINDER_DAYS = os.environ.get("CONTRACT_REMINDER_DAYS", "30,15,7,1")
    EVALUATION_REMINDER_AFTER_DAYS = _int_env("EVALUATION_REMINDER_AFTER_DAYS", 7)
    EVALUATION_REMINDER_BATCH = _int_env("EVALUATION_REMINDER_BATCH", 50)

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL production ortaminda tanimli degil.")
        if env == "production" and self.SECRET_KEY == "dev-secret-satinalma":
            raise RuntimeError("SECRET_KEY production icin guvenli degil.")
