"""
Marketplace Garbage Collector
Abandoned Process Lifecycle Service.

Operator-driven status transitions on tracking records:

    detected | notified | escalated  ──►  notified | escalated | resolved
    resolved                         ──►  (terminal)

Any non-resolved status may move to any target, including detected →
resolved and escalated → notified. Only ``resolved`` is guarded.

Side effects per target:
    notified / escalated → last_notified_at = now
    resolved             → resolved_at = now, resolution_action = trimmed text
    always               → updated_at = now

Concurrency: the UPDATE is guarded with ``status <> 'resolved'``; when a
concurrent writer resolves the record first, this call raises
StateConflictError and changes nothing.

Usage:
    from marketgc.services.abandoned_lifecycle import transition_abandoned_process

    record = transition_abandoned_process(3, "resolved", "Refunded buyer manually")
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from marketgc.core.exceptions import (
    InternalError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from marketgc.models.abandoned_process import (
    AbandonedProcess,
    STATUS_ESCALATED,
    STATUS_NOTIFIED,
    STATUS_RESOLVED,
    TRANSITION_TARGETS,
)
from marketgc.services.abandoned_store import SqlTrackingStore, TrackingStore
from marketgc.utils.errors import E
from marketgc.utils.helpers import as_utc, parse_int, utcnow

logger = logging.getLogger(__name__)


def parse_record_id(record_id) -> int:
    """Coerce an operator-supplied id; ValidationError(INVALID_ID) otherwise."""
    parsed = parse_int(record_id)
    if parsed is None:
        raise ValidationError("Valid ID is required", code=E.INVALID_ID)
    return parsed


def validate_transition(status, resolution_action) -> str | None:
    """Check target status and resolution text; return the trimmed action."""
    if not status:
        raise ValidationError("Status is required", code=E.MISSING_STATUS)
    if status not in TRANSITION_TARGETS:
        raise ValidationError(
            "Status must be one of: " + ", ".join(TRANSITION_TARGETS),
            code=E.INVALID_STATUS,
        )
    if resolution_action is not None and not isinstance(resolution_action, str):
        raise ValidationError("resolutionAction must be a string", code=E.INVALID_RESOLUTION_ACTION)
    action = resolution_action.strip() if resolution_action else None
    if status == STATUS_RESOLVED and not action:
        raise ValidationError(
            "Resolution action is required when status is resolved",
            code=E.MISSING_RESOLUTION_ACTION,
        )
    return action


def _changes_for(status: str, action: str | None, now: datetime) -> dict:
    changes = {"status": status, "updated_at": now}
    if status in (STATUS_NOTIFIED, STATUS_ESCALATED):
        changes["last_notified_at"] = now
    elif status == STATUS_RESOLVED:
        changes["resolved_at"] = now
        changes["resolution_action"] = action
    return changes


def _resolved_conflict(record_id: int) -> StateConflictError:
    return StateConflictError(
        f"Cannot update a resolved abandoned process (id={record_id})",
        code=E.INVALID_STATUS_TRANSITION,
        current_status=STATUS_RESOLVED,
    )


def transition_abandoned_process(
    record_id,
    status,
    resolution_action: str | None = None,
    *,
    now: datetime | None = None,
    store: TrackingStore | None = None,
) -> AbandonedProcess:
    """
    Move a tracking record to ``status``.

    Args:
        record_id: Record PK (int or digit string).
        status: One of notified, escalated, resolved.
        resolution_action: Required (non-blank) when status is resolved.
        now: Transition instant (defaults to current UTC time).
        store: Tracking-record store (defaults to SQL).

    Returns:
        The updated record.

    Raises:
        ValidationError: INVALID_ID, MISSING_STATUS, INVALID_STATUS,
            MISSING_RESOLUTION_ACTION; nothing is touched.
        NotFoundError: PROCESS_NOT_FOUND.
        StateConflictError: INVALID_STATUS_TRANSITION (record already resolved).
        InternalError: UPDATE_FAILED (storage failure, rolled back).
    """
    record_id = parse_record_id(record_id)
    action = validate_transition(status, resolution_action)
    store = store or SqlTrackingStore()
    now = as_utc(now) if now else utcnow()

    try:
        current = store.get(record_id)
        if current is None:
            raise NotFoundError("Abandoned process", record_id, code=E.PROCESS_NOT_FOUND)
        if current.status == STATUS_RESOLVED:
            raise _resolved_conflict(record_id)

        previous_status = current.status
        if not store.apply_transition(record_id, _changes_for(status, action, now)):
            # Lost the race: the row was resolved or deleted after our read.
            store.rollback()
            if store.get(record_id) is None:
                raise NotFoundError("Abandoned process", record_id, code=E.PROCESS_NOT_FOUND)
            raise _resolved_conflict(record_id)

        store.commit()
        updated = store.get(record_id)
    except SQLAlchemyError as exc:
        store.rollback()
        logger.exception("Transition of abandoned process %s failed", record_id,
                         extra={"record_id": record_id})
        raise InternalError("Failed to update abandoned process", code=E.UPDATE_FAILED) from exc

    logger.info("Abandoned process %s: %s → %s", record_id, previous_status, status,
                extra={"record_id": record_id, "process_type": updated.process_type})
    return updated
