"""
Marketplace Garbage Collector
Scheduler Service.

The collector has no internal timer. An external trigger (cron, a platform
scheduler, an operator) runs jobs through ``POST /jobs/<name>/run`` or the
``flask gc-scan`` / ``flask gc-cleanup`` commands. This service keeps the
job registry and records every run in the ScheduledJob table.

Architecture:
    - Job functions register themselves via the ``register_job`` decorator
    - ensure_jobs_registered() creates missing ScheduledJob rows
    - run_job() executes inside an app context and records the outcome
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from flask import Flask

from marketgc.models import db
from marketgc.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("abandoned_process_scan")
        def run_abandoned_scan(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Job registry plus run bookkeeping.

    Jobs are executed within the Flask app context of the app passed to
    init_app().
    """

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Bind the scheduler to a Flask app."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with the default cadence.
        """
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                existing = ScheduledJob.query.filter_by(job_name=name).first()
                if not existing:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                        schedule_config=_get_default_schedule(name),
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        A failing job never raises here; the failure is recorded on the job
        row and reported in the returned dict.

        Returns:
            Dict with jobName, status, durationMs, result and error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"jobName": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"jobName": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

        duration_ms = int((time.monotonic() - start) * 1000)

        try:
            with cls._app.app_context():
                job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
                if job_record is None:
                    job_record = ScheduledJob(
                        job_name=job_name,
                        description=f"Scheduled job: {job_name}",
                        schedule_config=_get_default_schedule(job_name),
                    )
                    db.session.add(job_record)
                job_record.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()
        except Exception:
            logger.exception("Failed to update job record for %s", job_name,
                             extra={"job_name": job_name})

        logger.info("Job %s finished: %s (%dms)", job_name, status, duration_ms,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {
            "jobName": job_name,
            "status": status,
            "durationMs": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "jobName": name,
                "registered": True,
                "schedule": _get_default_schedule(name),
                "record": job_record.to_dict() if job_record else None,
            })
        return jobs


def _get_default_schedule(job_name: str) -> dict:
    """Suggested cadence for the external trigger."""
    defaults = {
        "abandoned_process_scan": {"hour": "*", "minute": "*/15",
                                   "description": "Every 15 minutes"},
        "abandoned_process_cleanup": {"hour": "3", "minute": "0",
                                      "description": "Daily at 03:00"},
    }
    return defaults.get(job_name, {"hour": "0", "minute": "0",
                                    "description": "Daily at midnight"})
