"""
Marketplace Garbage Collector
Retention / Cleanup of resolved tracking records.

Deletes records with ``status = 'resolved'`` whose ``resolved_at`` is older
than the retention window (GC_RETENTION_DAYS, default 30). Active records are
never candidates, so a delete cannot race a lifecycle transition: resolved is
terminal and each DELETE re-checks the status in its WHERE clause.

All requested types run in one unit of work; a storage failure rolls back
every type and raises InternalError(CLEANUP_ERROR).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from marketgc.core.exceptions import InternalError, ValidationError
from marketgc.services.abandoned_scanner import validate_process_types
from marketgc.services.abandoned_store import SqlTrackingStore, TrackingStore
from marketgc.utils.errors import E
from marketgc.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


def _retention_days(explicit) -> int:
    if explicit is None:
        if has_app_context():
            return int(current_app.config.get("GC_RETENTION_DAYS", DEFAULT_RETENTION_DAYS))
        return DEFAULT_RETENTION_DAYS
    if isinstance(explicit, bool) or not isinstance(explicit, int) or explicit <= 0:
        raise ValidationError("olderThanDays must be a positive integer", code=E.INVALID_OLDER_THAN_DAYS)
    return explicit


def cleanup_resolved_processes(
    process_types=None,
    older_than_days: int | None = None,
    dry_run: bool = False,
    *,
    now: datetime | None = None,
    store: TrackingStore | None = None,
) -> dict[str, Any]:
    """
    Delete (or, with dry_run, count) resolved records past the retention window.

    Returns:
        {"deletedCount", "byType": {type: n}, "olderThanDays", "dryRun",
         "cutoff", "cleanedAt"}
    """
    days = _retention_days(older_than_days)
    requested = validate_process_types(
        process_types,
        code=E.INVALID_PROCESS_TYPES,
        unknown_code=E.INVALID_PROCESS_TYPE,
        allow_empty=False,
    )
    if not isinstance(dry_run, bool):
        raise ValidationError("dryRun must be a boolean", code=E.INVALID_DRY_RUN)

    store = store or SqlTrackingStore()
    now = as_utc(now) if now else utcnow()
    cutoff = now - timedelta(days=days)

    by_type: dict[str, int] = {}
    try:
        for process_type in requested:
            if dry_run:
                by_type[process_type] = store.count_resolved_before(process_type, cutoff)
            else:
                by_type[process_type] = store.delete_resolved_before(process_type, cutoff)
        if not dry_run:
            store.commit()
    except (SQLAlchemyError, InternalError) as exc:
        store.rollback()
        logger.exception("Cleanup of resolved abandoned processes failed")
        raise InternalError("Cleanup failed; no records were deleted", code=E.CLEANUP_ERROR) from exc

    result = {
        "deletedCount": sum(by_type.values()),
        "byType": by_type,
        "olderThanDays": days,
        "dryRun": dry_run,
        "cutoff": cutoff.isoformat(),
        "cleanedAt": now.isoformat(),
    }
    logger.info("Abandoned process cleanup: %s=%d older_than_days=%d",
                "would_delete" if dry_run else "deleted", result["deletedCount"], days,
                extra={"dry_run": dry_run})
    return result
