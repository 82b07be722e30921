"""
Marketplace Garbage Collector
Abandoned process tracking model.

Models:
    - AbandonedProcess: one detection of a stuck business workflow and its
      remediation history (detected → notified/escalated → resolved)

Invariants enforced here:
    - at most one *active* (status <> 'resolved') row per (process_type,
      entity_id), via the partial unique index ``uq_abandoned_active_entity``
    - ``resolved`` is terminal (guarded in the lifecycle service's UPDATE)
"""

from datetime import datetime, timezone

from marketgc.models import db
from marketgc.models.snapshots import snapshot_from_dict
from marketgc.utils.helpers import iso


# ── Constants ────────────────────────────────────────────────────────────────

PROCESS_TYPES = ("order", "delivery_task", "transaction", "activity_log")

STATUS_DETECTED = "detected"
STATUS_NOTIFIED = "notified"
STATUS_ESCALATED = "escalated"
STATUS_RESOLVED = "resolved"

PROCESS_STATUSES = (STATUS_DETECTED, STATUS_NOTIFIED, STATUS_RESOLVED, STATUS_ESCALATED)

# Operator-driven targets. Any non-resolved status may move to any of these.
TRANSITION_TARGETS = (STATUS_NOTIFIED, STATUS_RESOLVED, STATUS_ESCALATED)

# Same predicate text for the index and the ON CONFLICT target so SQLite and
# PostgreSQL both match the conflict clause to the partial index.
ACTIVE_PREDICATE = "status <> 'resolved'"


class AbandonedProcess(db.Model):
    """
    Tracking record for one abandoned business process.

    ``snapshot_data`` (column ``metadata``) is written once at detection and
    never touched by lifecycle transitions.
    """

    __tablename__ = "abandoned_processes"
    __table_args__ = (
        db.Index(
            "uq_abandoned_active_entity",
            "process_type",
            "entity_id",
            unique=True,
            sqlite_where=db.text(ACTIVE_PREDICATE),
            postgresql_where=db.text(ACTIVE_PREDICATE),
        ),
        db.Index("ix_abandoned_status_resolved_at", "status", "resolved_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    process_type = db.Column(db.String(30), nullable=False, index=True,
                             comment="order, delivery_task, transaction, activity_log")
    entity_id = db.Column(db.Integer, nullable=False,
                          comment="Monitored row id (referential only, no FK)")
    status = db.Column(db.String(20), nullable=False, default=STATUS_DETECTED,
                       comment="detected, notified, escalated, resolved")
    detected_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_notified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolution_action = db.Column(db.Text, nullable=True)
    snapshot_data = db.Column("metadata", db.JSON, nullable=True,
                              comment="Type-specific snapshot captured at detection")

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self) -> bool:
        return self.status != STATUS_RESOLVED

    @property
    def snapshot(self):
        """Typed metadata snapshot (see ``marketgc.models.snapshots``)."""
        return snapshot_from_dict(self.process_type, self.snapshot_data)

    def to_dict(self):
        return {
            "id": self.id,
            "processType": self.process_type,
            "entityId": self.entity_id,
            "status": self.status,
            "detectedAt": iso(self.detected_at),
            "lastNotifiedAt": iso(self.last_notified_at),
            "resolvedAt": iso(self.resolved_at),
            "resolutionAction": self.resolution_action,
            "metadata": dict(self.snapshot_data) if self.snapshot_data is not None else None,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<AbandonedProcess {self.id} {self.process_type}:{self.entity_id} [{self.status}]>"
