from __future__ import annotations

import os
import smtplib
import ssl
import threading
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from typing import List

from flask import current_app


class MailError(RuntimeError):
    pass


@dataclass(frozen=True)
class SmtpSettings:
    key: str
    host: str
    port: int
    user: str | None
    password: str | None
    from_address: str
    from_name: str | None = None
    secure: bool = False


@dataclass(frozen=True)
class OutboxMessage:
    to: str
    subject: str
    html: str
    from_address: str
    message_id: str
    smtp_key: str


class MemoryOutbox:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: List[OutboxMessage] = []
        self._failures_remaining = 0

    def append(self, message: OutboxMessage) -> None:
        with self._lock:
            if self._failures_remaining > 0:
                self._failures_remaining -= 1
                raise MailError("memory outbox simulated failure")
            self._messages.append(message)

    def fail_next(self, count: int = 1) -> None:
        with self._lock:
            self._failures_remaining = max(0, int(count))

    def messages(self) -> List[OutboxMessage]:
        with self._lock:
            return list(self._messages)

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()
            self._failures_remaining = 0


_MEMORY_OUTBOX = MemoryOutbox()


def get_memory_outbox() -> MemoryOutbox:
    return _MEMORY_OUTBOX


def reset_memory_outbox_for_tests() -> None:
    _MEMORY_OUTBOX.clear()


def settings_from_row(row: dict) -> SmtpSettings:
    return SmtpSettings(
        key=str(row.get("key") or "default"),
        host=str(row.get("host") or ""),
        port=int(row.get("port") or 587),
        user=row.get("user_name"),
        password=row.get("password"),
        from_address=str(row.get("from_address") or _get_config("MAIL_DEFAULT_FROM", "bildirim@firma.com")),
        from_name=row.get("from_name"),
        secure=bool(row.get("secure")),
    )


def settings_from_config() -> SmtpSettings | None:
    mode = str(_get_config("MAIL_MODE", "smtp") or "smtp").lower()
    host = _get_config("MAIL_SMTP_HOST")
    if mode == "memory" and not host:
        host = "memory"
    if not host:
        return None
    return SmtpSettings(
        key="config",
        host=str(host),
        port=_int_config("MAIL_SMTP_PORT", 587),
        user=_get_config("MAIL_SMTP_USER"),
        password=_get_config("MAIL_SMTP_PASSWORD"),
        from_address=str(_get_config("MAIL_DEFAULT_FROM", "bildirim@firma.com")),
        secure=_bool_config("MAIL_SMTP_SECURE", False),
    )


def send_message(settings: SmtpSettings, to: str, subject: str, html: str) -> str:
    mode = str(_get_config("MAIL_MODE", "smtp") or "smtp").lower()
    message_id = make_msgid(domain=(settings.from_address.split("@")[-1] or "satinalma.app"))
    if mode == "memory":
        _MEMORY_OUTBOX.append(
            OutboxMessage(
                to=to,
                subject=subject,
                html=html,
                from_address=settings.from_address,
                message_id=message_id,
                smtp_key=settings.key,
            )
        )
        return message_id
    if mode != "smtp":
        raise MailError(f"MAIL_MODE gecersiz: {mode}")
    return _send_smtp(settings, to, subject, html, message_id)


def _send_smtp(settings: SmtpSettings, to: str, subject: str, html: str, message_id: str) -> str:
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = formataddr((settings.from_name or "", settings.from_address))
    message["To"] = to
    message["Date"] = formatdate(localtime=True)
    message["Message-ID"] = message_id
    message.set_content("Bu e-postayi goruntulemek icin HTML destekleyen bir istemci kullanin.")
    message.add_alternative(html, subtype="html")

    timeout = _int_config("MAIL_SMTP_TIMEOUT_SECONDS", 20)
    context = ssl.create_default_context()
    try:
        if settings.secure:
            with smtplib.SMTP_SSL(settings.host, settings.port, timeout=timeout, context=context) as client:
                _login_and_send(client, settings, message)
        else:
            with smtplib.SMTP(settings.host, settings.port, timeout=timeout) as client:
                client.ehlo()
                if client.has_extn("starttls"):
                    client.starttls(context=context)
                    client.ehlo()
                _login_and_send(client, settings, message)
    except (smtplib.SMTPException, OSError) as exc:
        raise MailError(f"SMTP hatasi: {exc}") from exc
    return message_id


def _login_and_send(client: smtplib.SMTP, settings: SmtpSettings, message: EmailMessage) -> None:
    if settings.user and settings.password:
        client.login(settings.user, settings.password)
    client.send_message(message)


def _get_config(key: str, default: object | None = None) -> object | None:
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        return os.environ.get(key, default)


def _int_config(key: str, default: int) -> int:
    value = _get_config(key, default)
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _bool_config(key: str, default: bool) -> bool:
    value = _get_config(key, default)
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}
