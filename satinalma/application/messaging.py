from __future__ import annotations

import logging
from typing import Any, Iterable, List

from flask import current_app
from markupsafe import Markup, escape

from satinalma.mail import EmailResult, dispatch_email, render_email_template, unique_recipients


logger = logging.getLogger("satinalma.mail")


def public_url(path: str) -> str:
    base = str(current_app.config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    return f"{base}/{str(path or '').lstrip('/')}"


def send_template_email(
    db,
    recipients: Iterable[str | None],
    *,
    subject: str,
    template: str,
    category: str,
    tenant_id: str | None = None,
    **context: Any,
) -> List[EmailResult]:
    """Renders once and dispatches to every distinct address.

    Delivery problems are recorded in the email log by the mailer, so one bad
    address never keeps the remaining recipients from being tried.
    """
    addresses = unique_recipients(recipients)
    if not addresses:
        return []
    context.setdefault("title", subject)
    html = render_email_template(template, **context)
    results: List[EmailResult] = []
    for address in addresses:
        result = dispatch_email(db, address, subject, html, category=category, tenant_id=tenant_id)
        if not result.ok and result.attempts:
            logger.warning(
                "email_recipient_failed",
                extra={"email_category": category, "email_error": result.error},
            )
        results.append(result)
    return results


def paragraph(text: str | None) -> Markup:
    return Markup("<p>{}</p>").format(escape(text or ""))
