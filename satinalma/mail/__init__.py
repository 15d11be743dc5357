from satinalma.mail.mailer import (
    EmailResult,
    Mailer,
    dispatch_email,
    get_mailer,
    process_deferred_emails,
    render_email_template,
    unique_recipients,
)
from satinalma.mail.transport import MailError, get_memory_outbox, reset_memory_outbox_for_tests

__all__ = [
    "EmailResult",
    "MailError",
    "Mailer",
    "dispatch_email",
    "get_mailer",
    "get_memory_outbox",
    "process_deferred_emails",
    "render_email_template",
    "reset_memory_outbox_for_tests",
    "unique_recipients",
]
