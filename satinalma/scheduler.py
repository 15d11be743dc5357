from __future__ import annotations

import logging
import os
import threading
import time
from typing import Iterable

from flask import Flask

from satinalma.application.jobs import JOBS, run_job
from satinalma.db import close_db, get_db
from satinalma.observability import bind_request_id


logger = logging.getLogger("satinalma.scheduler")

DEFAULT_SCHEDULER_JOBS = tuple(JOBS.keys())


class JobScheduler:
    def __init__(self, app: Flask) -> None:
        self.app = app
        self.interval_seconds = _int_config(app, "JOB_SCHEDULER_INTERVAL_SECONDS", 300, 10, 86_400)
        self.min_backoff_seconds = _int_config(app, "JOB_SCHEDULER_MIN_BACKOFF_SECONDS", 30, 5, 3600)
        self.max_backoff_seconds = _int_config(
            app,
            "JOB_SCHEDULER_MAX_BACKOFF_SECONDS",
            1800,
            self.min_backoff_seconds,
            86_400,
        )
        self.jobs = _parse_jobs(app.config.get("JOB_SCHEDULER_JOBS"))
        self.job_intervals = _parse_job_intervals(app.config.get("JOB_SCHEDULER_JOB_INTERVALS"))

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._failure_counts: dict[str, int] = {}
        self._next_run_at: dict[str, float] = {}
        self._interval_due_at: dict[str, float] = {}

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run_loop, name="job-scheduler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self.interval_seconds)

    def run_once(self) -> None:
        with self.app.app_context():
            db = get_db()
            try:
                for name in self.jobs:
                    self._run_job(db, name)
            finally:
                close_db()

    def _run_job(self, db, name: str) -> None:
        if not self._is_due(name):
            return
        with bind_request_id(f"job-{name}"):
            try:
                run_job(db, name)
            except Exception:  # noqa: BLE001
                db.rollback()
                logger.exception("scheduled_job_failed", extra={"job": name})
                self._register_failure(name)
                return
        self._clear_backoff(name)
        interval = self.job_intervals.get(name)
        if interval:
            self._interval_due_at[name] = time.monotonic() + interval

    def _is_due(self, name: str) -> bool:
        now = time.monotonic()
        due_at = self._interval_due_at.get(name)
        if due_at is not None and now < due_at:
            return False
        next_run_at = self._next_run_at.get(name)
        if next_run_at is None:
            return True
        return now >= next_run_at

    def _clear_backoff(self, name: str) -> None:
        self._failure_counts.pop(name, None)
        self._next_run_at.pop(name, None)

    def _register_failure(self, name: str) -> None:
        failure_count = self._failure_counts.get(name, 0) + 1
        self._failure_counts[name] = failure_count
        backoff_seconds = min(
            self.max_backoff_seconds,
            self.min_backoff_seconds * (2 ** (failure_count - 1)),
        )
        self._next_run_at[name] = time.monotonic() + backoff_seconds


def start_job_scheduler(app: Flask) -> JobScheduler | None:
    if not _should_start_scheduler(app):
        return None
    scheduler = JobScheduler(app)
    scheduler.start()
    app.extensions["job_scheduler"] = scheduler
    app.logger.info(
        "Job scheduler started: interval=%ss jobs=%s",
        scheduler.interval_seconds,
        ", ".join(scheduler.jobs),
    )
    return scheduler


def _should_start_scheduler(app: Flask) -> bool:
    if not app.config.get("JOB_SCHEDULER_ENABLED", False):
        return False
    if app.config.get("TESTING"):
        return False
    if app.debug:
        run_main = os.environ.get("WERKZEUG_RUN_MAIN")
        if run_main and run_main.lower() != "true":
            return False
    return True


def _int_config(app: Flask, key: str, default: int, min_value: int, max_value: int) -> int:
    try:
        value = int(app.config.get(key, default))
    except (TypeError, ValueError):
        value = default
    return max(min_value, min(value, max_value))


def _parse_jobs(value: object) -> list[str]:
    items: Iterable[str]
    if value is None:
        items = DEFAULT_SCHEDULER_JOBS
    elif isinstance(value, str):
        items = [job.strip() for job in value.split(",") if job.strip()]
    elif isinstance(value, (list, tuple, set)):
        items = [str(job).strip() for job in value if str(job).strip()]
    else:
        items = DEFAULT_SCHEDULER_JOBS

    filtered = [job for job in items if job in JOBS]
    return filtered or list(DEFAULT_SCHEDULER_JOBS)


def _parse_job_intervals(value: object) -> dict[str, int]:
    """Parses "job=seconds" pairs; unknown jobs and bad numbers are skipped."""
    if isinstance(value, dict):
        pairs = list(value.items())
    elif isinstance(value, str):
        pairs = [item.split("=", 1) for item in value.split(",") if "=" in item]
    else:
        return {}

    intervals: dict[str, int] = {}
    for raw_name, raw_seconds in pairs:
        name = str(raw_name).strip()
        if name not in JOBS:
            continue
        try:
            seconds = int(str(raw_seconds).strip())
        except ValueError:
            continue
        if seconds > 0:
            intervals[name] = seconds
    return intervals
