from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable

from flask import current_app

from satinalma.application.messaging import paragraph, public_url, send_template_email
from satinalma.db import get_db
from satinalma.domain.contracts import ServiceOutput
from satinalma.errors import NotFoundError
from satinalma.infrastructure.repositories.notification_repository import NotificationRepository
from satinalma.infrastructure.repositories.user_repository import UserRepository
from satinalma.realtime import NOTIFICATIONS_CHANNEL, get_hub


logger = logging.getLogger("satinalma.notifications")


@dataclass(frozen=True)
class NotificationEmail:
    tenant_id: str
    to: str
    title: str
    body: str | None
    link: str | None = None


class NotificationEmailQueue:
    """Sends notification emails on a worker thread, spaced apart.

    With ``NOTIFICATION_EMAIL_ASYNC`` off the email goes out inline on the
    caller's connection.
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[tuple[Any, NotificationEmail]]" = queue.Queue()
        self._lock = threading.Lock()
        self._worker: threading.Thread | None = None

    def enqueue(self, job: NotificationEmail) -> None:
        app = current_app._get_current_object()
        if not bool(app.config.get("NOTIFICATION_EMAIL_ASYNC", True)):
            _send_notification_email(get_db(), job)
            return
        self._queue.put((app, job))
        self._ensure_worker()

    def depth(self) -> int:
        return self._queue.qsize()

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(target=self._run, name="notification-email-queue", daemon=True)
            self._worker.start()

    def _run(self) -> None:
        while True:
            app, job = self._queue.get()
            try:
                with app.app_context():
                    _send_notification_email(get_db(), job)
                    spacing_ms = int(app.config.get("NOTIFICATION_EMAIL_SPACING_MS", 50) or 0)
                if spacing_ms > 0:
                    time.sleep(spacing_ms / 1000.0)
            except Exception:  # noqa: BLE001
                logger.exception("notification_email_failed", extra={"tenant_id": job.tenant_id})
            finally:
                self._queue.task_done()


def _send_notification_email(db, job: NotificationEmail) -> None:
    send_template_email(
        db,
        [job.to],
        subject=job.title,
        template="generic",
        category="notification",
        tenant_id=job.tenant_id,
        title=job.title,
        body=paragraph(job.body),
        action_url=job.link,
        action_text="Görüntüle" if job.link else None,
    )


_EMAIL_QUEUE = NotificationEmailQueue()


def get_notification_email_queue() -> NotificationEmailQueue:
    return _EMAIL_QUEUE


class NotificationService:
    def __init__(self, email_queue: NotificationEmailQueue | None = None) -> None:
        self.email_queue = email_queue or _EMAIL_QUEUE

    def notify(
        self,
        db,
        *,
        tenant_id: str,
        user_id: int | None,
        title: str,
        body: str | None = None,
        type: str = "info",
        meta: Dict[str, Any] | None = None,
        link: str | None = None,
    ) -> dict | None:
        if not user_id:
            return None
        repository = NotificationRepository(tenant_id=tenant_id)
        notification = repository.create(db, user_id=int(user_id), title=title, body=body, type=type, meta=meta)
        preferences = repository.get_preferences(db, int(user_id)) or {"email_enabled": True, "in_app_enabled": True}
        db.commit()

        if preferences.get("in_app_enabled", True):
            get_hub().publish(NOTIFICATIONS_CHANNEL, "notification", dict(notification))

        if preferences.get("email_enabled", True):
            contact = UserRepository(tenant_id=tenant_id).get_contact(db, int(user_id))
            if contact and contact.get("email"):
                self.email_queue.enqueue(
                    NotificationEmail(
                        tenant_id=tenant_id,
                        to=str(contact["email"]),
                        title=title,
                        body=body,
                        link=public_url(link) if link else None,
                    )
                )
        return notification

    def notify_many(
        self,
        db,
        *,
        tenant_id: str,
        user_ids: Iterable[int | None],
        title: str,
        body: str | None = None,
        type: str = "info",
        meta: Dict[str, Any] | None = None,
        link: str | None = None,
    ) -> int:
        sent = 0
        for user_id in sorted({int(user_id) for user_id in user_ids if user_id}):
            if self.notify(
                db,
                tenant_id=tenant_id,
                user_id=user_id,
                title=title,
                body=body,
                type=type,
                meta=meta,
                link=link,
            ):
                sent += 1
        return sent

    def list_for_user(self, db, *, tenant_id: str, user_id: int, limit: int = 20, unread_only: bool = False) -> ServiceOutput:
        items = NotificationRepository(tenant_id=tenant_id).list_for_user(
            db,
            user_id,
            limit=limit,
            unread_only=unread_only,
        )
        return ServiceOutput(payload={"items": items, "total": len(items)})

    def mark_read(self, db, *, tenant_id: str, user_id: int, notification_id: int) -> ServiceOutput:
        if not NotificationRepository(tenant_id=tenant_id).mark_read(db, notification_id, user_id=user_id):
            raise NotFoundError(code="notification_not_found")
        db.commit()
        return ServiceOutput(payload={"ok": True, "id": notification_id})

    def mark_all_read(self, db, *, tenant_id: str, user_id: int) -> ServiceOutput:
        updated = NotificationRepository(tenant_id=tenant_id).mark_all_read(db, user_id=user_id)
        db.commit()
        return ServiceOutput(payload={"ok": True, "updated": updated})

    def get_preferences(self, db, *, tenant_id: str, user_id: int) -> ServiceOutput:
        preferences = NotificationRepository(tenant_id=tenant_id).get_or_create_preferences(db, user_id)
        db.commit()
        return ServiceOutput(payload=preferences)

    def update_preferences(self, db, *, tenant_id: str, user_id: int, flags: Dict[str, bool]) -> ServiceOutput:
        preferences = NotificationRepository(tenant_id=tenant_id).update_preferences(db, user_id, flags)
        db.commit()
        return ServiceOutput(payload=preferences)
