"""
Marketplace Garbage Collector
Repository seams for the collector services.

    EntitySource   : read-only access to monitored business rows
    TrackingStore  : persistence for AbandonedProcess tracking records

The SQL implementations below are what the app uses. Services accept any
implementation so tests can inject in-memory fakes and drive dedup races
deterministically.

Atomicity contract:
    - create_if_absent() is ONE operation: it inserts a detected record only
      if no active record exists for (process_type, entity_id). On SQLite and
      PostgreSQL this is INSERT … ON CONFLICT DO NOTHING against the partial
      unique index uq_abandoned_active_entity. Other dialects raise
      InternalError(UNSUPPORTED_DATABASE) instead of risking a
      non-atomic check-then-insert.
    - apply_transition() only touches rows that are not resolved.
    - delete_resolved_before() only touches resolved rows.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from marketgc.core.exceptions import InternalError
from marketgc.models import db
from marketgc.models.abandoned_process import (
    ACTIVE_PREDICATE,
    AbandonedProcess,
    STATUS_DETECTED,
    STATUS_RESOLVED,
)
from marketgc.models.marketplace import ActivityLog, DeliveryTask, Order, Transaction
from marketgc.models.snapshots import ProcessSnapshot
from marketgc.services.threshold_registry import ProcessRule
from marketgc.utils.errors import E

logger = logging.getLogger(__name__)

_TABLE = AbandonedProcess.__table__

# Dialects where uq_abandoned_active_entity is a partial index and
# ON CONFLICT can target it. Elsewhere the index would cover resolved rows
# too and block re-detection.
SUPPORTED_DIALECTS = ("sqlite", "postgresql")

# API sort field → model attribute
SORT_COLUMNS = {
    "detectedAt": AbandonedProcess.detected_at,
    "createdAt": AbandonedProcess.created_at,
    "updatedAt": AbandonedProcess.updated_at,
    "lastNotifiedAt": AbandonedProcess.last_notified_at,
    "resolvedAt": AbandonedProcess.resolved_at,
}


# ═══════════════════════════════════════════════════════════════════════════
#  Interfaces
# ═══════════════════════════════════════════════════════════════════════════


class EntitySource(ABC):
    """Read-only query capability over monitored business entities."""

    @abstractmethod
    def find_stale(self, rule: ProcessRule, now: datetime, limit: int | None = None) -> list[Any]:
        """Return rows matching ``rule``'s status set whose age exceeds its threshold.

        Rows expose ``id``, ``status``, ``created_at`` and the attributes the
        rule's snapshot builder reads. No ordering guarantee.
        """


class TrackingStore(ABC):
    """Persistence for tracking records. Implementations own atomicity."""

    # ── Dedup ────────────────────────────────────────────────────────────

    @abstractmethod
    def has_active(self, process_type: str, entity_id: int) -> bool:
        """True when a non-resolved record exists for (process_type, entity_id)."""

    @abstractmethod
    def create_if_absent(
        self,
        process_type: str,
        entity_id: int,
        snapshot: ProcessSnapshot,
        detected_at: datetime,
    ) -> AbandonedProcess | None:
        """Atomically create a detected record unless an active one exists.

        Returns the new record, or None when the entity was already tracked.
        """

    # ── Lifecycle ────────────────────────────────────────────────────────

    @abstractmethod
    def get(self, record_id: int) -> AbandonedProcess | None:
        """Fresh read of one record."""

    @abstractmethod
    def apply_transition(self, record_id: int, changes: dict) -> bool:
        """Apply ``changes`` only if the record exists and is not resolved.

        Returns False when no row qualified (missing, or resolved concurrently).
        """

    # ── Query ────────────────────────────────────────────────────────────

    @abstractmethod
    def list(
        self,
        *,
        process_type: str | None,
        status: str | None,
        sort_by: str,
        sort_order: str,
        limit: int,
        offset: int,
    ) -> list[AbandonedProcess]:
        """Page of records; callers ask for limit+1 to detect more pages."""

    @abstractmethod
    def count(self, *, process_type: str | None = None, status: str | None = None) -> int:
        """Number of records matching the optional filters."""

    @abstractmethod
    def count_by(self, field: str, *, process_type: str | None = None,
                 status: str | None = None) -> dict[str, int]:
        """Record counts grouped by ``field`` ("status" or "process_type")."""

    # ── Retention ────────────────────────────────────────────────────────

    @abstractmethod
    def count_resolved_before(self, process_type: str, cutoff: datetime) -> int:
        """Resolved records of ``process_type`` with resolved_at < cutoff."""

    @abstractmethod
    def delete_resolved_before(self, process_type: str, cutoff: datetime) -> int:
        """Delete resolved records with resolved_at < cutoff; return count."""

    # ── Unit of work ─────────────────────────────────────────────────────

    @abstractmethod
    def commit(self) -> None:
        """Make pending writes durable."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard pending writes."""


# ═══════════════════════════════════════════════════════════════════════════
#  SQL implementations
# ═══════════════════════════════════════════════════════════════════════════


ENTITY_MODELS = {
    "order": Order,
    "delivery_task": DeliveryTask,
    "transaction": Transaction,
    "activity_log": ActivityLog,
}


class SqlEntitySource(EntitySource):
    """Monitored entities read through SQLAlchemy models."""

    def __init__(self, models: dict[str, Any] | None = None) -> None:
        self._models = models or ENTITY_MODELS

    def find_stale(self, rule: ProcessRule, now: datetime, limit: int | None = None) -> list[Any]:
        model = self._models[rule.process_type]
        stmt = select(model).where(model.created_at < rule.cutoff(now))
        if rule.statuses is not None:
            stmt = stmt.where(model.status.in_(sorted(rule.statuses)))
        # Untracked rows first, so a capped scan still reaches new detections.
        tracked = select(AbandonedProcess.entity_id).where(
            AbandonedProcess.process_type == rule.process_type,
            AbandonedProcess.status != STATUS_RESOLVED,
        )
        stmt = stmt.order_by(model.id.in_(tracked), model.id)
        if limit:
            stmt = stmt.limit(limit)
        return list(db.session.scalars(stmt))


class SqlTrackingStore(TrackingStore):
    """Tracking records in ``abandoned_processes`` via the Flask-SQLAlchemy session."""

    def __init__(self, session=None) -> None:
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # ── Dedup ────────────────────────────────────────────────────────────

    def has_active(self, process_type: str, entity_id: int) -> bool:
        stmt = (
            select(AbandonedProcess.id)
            .where(
                AbandonedProcess.process_type == process_type,
                AbandonedProcess.entity_id == entity_id,
                AbandonedProcess.status != STATUS_RESOLVED,
            )
            .limit(1)
        )
        return self.session.execute(stmt).first() is not None

    def create_if_absent(self, process_type, entity_id, snapshot, detected_at):
        # Core statement against the table; the JSON column is named "metadata".
        values = {
            "process_type": process_type,
            "entity_id": entity_id,
            "status": STATUS_DETECTED,
            "detected_at": detected_at,
            "metadata": snapshot.to_dict(),
            "created_at": detected_at,
            "updated_at": detected_at,
        }
        dialect = self.session.get_bind().dialect.name
        if dialect not in SUPPORTED_DIALECTS:
            raise InternalError(
                f"Atomic detection dedup is not supported on the {dialect!r} dialect",
                code=E.UNSUPPORTED_DATABASE,
            )

        dialect_insert = sqlite_insert if dialect == "sqlite" else pg_insert
        stmt = (
            dialect_insert(_TABLE)
            .values(**values)
            .on_conflict_do_nothing(
                index_elements=["process_type", "entity_id"],
                index_where=db.text(ACTIVE_PREDICATE),
            )
            .returning(_TABLE.c.id)
        )
        record_id = self.session.execute(stmt).scalar_one_or_none()
        if record_id is None:
            return None
        return self.session.get(AbandonedProcess, record_id)

    # ── Lifecycle ────────────────────────────────────────────────────────

    def get(self, record_id: int) -> AbandonedProcess | None:
        return self.session.get(AbandonedProcess, record_id, populate_existing=True)

    def apply_transition(self, record_id: int, changes: dict) -> bool:
        stmt = (
            update(AbandonedProcess)
            .where(
                AbandonedProcess.id == record_id,
                AbandonedProcess.status != STATUS_RESOLVED,
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1

    # ── Query ────────────────────────────────────────────────────────────

    @staticmethod
    def _filtered(stmt, process_type=None, status=None):
        if process_type:
            stmt = stmt.where(AbandonedProcess.process_type == process_type)
        if status:
            stmt = stmt.where(AbandonedProcess.status == status)
        return stmt

    def list(self, *, process_type, status, sort_by, sort_order, limit, offset):
        column = SORT_COLUMNS[sort_by]
        ordering = column.desc() if sort_order == "desc" else column.asc()
        tiebreak = AbandonedProcess.id.desc() if sort_order == "desc" else AbandonedProcess.id.asc()
        stmt = self._filtered(select(AbandonedProcess), process_type, status)
        stmt = stmt.order_by(ordering, tiebreak).limit(limit).offset(offset)
        return list(self.session.scalars(stmt))

    def count(self, *, process_type=None, status=None) -> int:
        stmt = self._filtered(select(func.count(AbandonedProcess.id)), process_type, status)
        return int(self.session.execute(stmt).scalar() or 0)

    def count_by(self, field, *, process_type=None, status=None) -> dict[str, int]:
        column = getattr(AbandonedProcess, field)
        stmt = self._filtered(select(column, func.count(AbandonedProcess.id)), process_type, status)
        stmt = stmt.group_by(column)
        return {key: int(n) for key, n in self.session.execute(stmt).all()}

    # ── Retention ────────────────────────────────────────────────────────

    @staticmethod
    def _resolved_before(stmt, process_type, cutoff):
        return stmt.where(
            AbandonedProcess.process_type == process_type,
            AbandonedProcess.status == STATUS_RESOLVED,
            AbandonedProcess.resolved_at.is_not(None),
            AbandonedProcess.resolved_at < cutoff,
        )

    def count_resolved_before(self, process_type, cutoff) -> int:
        stmt = self._resolved_before(select(func.count(AbandonedProcess.id)), process_type, cutoff)
        return int(self.session.execute(stmt).scalar() or 0)

    def delete_resolved_before(self, process_type, cutoff) -> int:
        stmt = self._resolved_before(delete(AbandonedProcess), process_type, cutoff)
        stmt = stmt.execution_options(synchronize_session=False)
        return int(self.session.execute(stmt).rowcount or 0)

    # ── Unit of work ─────────────────────────────────────────────────────

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
