"""
Marketplace Garbage Collector
Scheduled job registry model.

Models:
    - ScheduledJob: persisted run history for garbage-collection jobs

The collector has no internal timer; an external trigger (cron, orchestrator,
operator) calls the run endpoint or CLI. This table records what ran and how
it went.
"""

from datetime import datetime, timezone

from marketgc.models import db


JOB_STATUSES = {"active", "paused"}
RUN_STATUSES = {"success", "failed"}


class ScheduledJob(db.Model):
    """Run history and suggested cadence for one registered job."""

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False,
                         comment="abandoned_process_scan, abandoned_process_cleanup")
    description = db.Column(db.String(500), default="")
    schedule_config = db.Column(db.JSON, default=dict,
                                comment="Suggested cadence for the external trigger")
    status = db.Column(db.String(20), default="active", comment="active, paused")
    is_enabled = db.Column(db.Boolean, default=True)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True, comment="success, failed")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True)
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        """Record a job execution."""
        self.last_run_at = datetime.now(timezone.utc)
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        return {
            "id": self.id,
            "jobName": self.job_name,
            "description": self.description,
            "scheduleConfig": self.schedule_config,
            "status": self.status,
            "isEnabled": self.is_enabled,
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else None,
            "lastRunStatus": self.last_run_status,
            "lastRunDurationMs": self.last_run_duration_ms,
            "lastRunResult": self.last_run_result,
            "runCount": self.run_count,
            "errorCount": self.error_count,
            "lastError": self.last_error,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} [{self.status}]>"
