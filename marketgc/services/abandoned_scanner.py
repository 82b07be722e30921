"""
Marketplace Garbage Collector
Abandoned Process Scanner.

One generic scan loop driven by the Threshold Registry:

    for each requested process type:
        candidates = entity_source.find_stale(rule, now, cap + 1)
        for each candidate:
            dry run → has_active() decides newDetection vs alreadyTracked
            else    → create_if_absent() (atomic dedup-and-insert) decides

Error policy, per-type independent:
    Each process type runs in its own unit of work. A storage failure rolls
    back that type only, is reported in ``errors`` and the scan moves on to
    the next type. Validation failures reject the whole call before any
    type is touched.

Usage:
    from marketgc.services.abandoned_scanner import scan_abandoned_processes

    report = scan_abandoned_processes(["order"], dry_run=True)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from marketgc.core.exceptions import InternalError, ValidationError
from marketgc.services.abandoned_store import (
    EntitySource,
    SqlEntitySource,
    SqlTrackingStore,
    TrackingStore,
)
from marketgc.services.threshold_registry import (
    THRESHOLD_REGISTRY,
    get_rule,
    registered_process_types,
)
from marketgc.utils.errors import E
from marketgc.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 5000


def validate_process_types(process_types, *, code: str = E.INVALID_PROCESS_TYPES,
                           unknown_code: str | None = None,
                           allow_empty: bool = True) -> list[str]:
    """Normalise a requested process-type list, rejecting unknown entries.

    None means "every registered type". Duplicates are dropped, order kept.
    """
    if process_types is None:
        return registered_process_types()
    if isinstance(process_types, str) or not isinstance(process_types, (list, tuple, set, frozenset)):
        raise ValidationError("processTypes must be an array of process type names", code=code)
    if not process_types and not allow_empty:
        raise ValidationError("processTypes must be a non-empty array", code=code)
    invalid = [t for t in process_types if not isinstance(t, str) or t not in THRESHOLD_REGISTRY]
    if invalid:
        raise ValidationError(
            "Invalid process types provided. Valid types are: "
            + ", ".join(registered_process_types()),
            code=unknown_code or code,
            details={"invalid": [str(t) for t in invalid]},
        )
    return list(dict.fromkeys(process_types))


def _max_rows(explicit: int | None) -> int:
    if explicit is not None:
        return explicit
    if has_app_context():
        return int(current_app.config.get("GC_SCAN_MAX_ROWS", DEFAULT_MAX_ROWS))
    return DEFAULT_MAX_ROWS


def _scan_type(process_type: str, *, dry_run: bool, now: datetime, limit: int,
               entity_source: EntitySource, store: TrackingStore) -> dict[str, Any]:
    rule = get_rule(process_type)
    # One extra row tells a full page apart from a truncated one.
    fetched = entity_source.find_stale(rule, now, limit + 1 if limit else None)
    truncated = bool(limit) and len(fetched) > limit
    candidates = fetched[:limit] if limit else fetched

    new_detections = 0
    already_tracked = 0
    for candidate in candidates:
        if dry_run:
            if store.has_active(process_type, candidate.id):
                already_tracked += 1
            else:
                new_detections += 1
            continue

        snapshot = rule.build_snapshot(candidate, now)
        created = store.create_if_absent(process_type, candidate.id, snapshot, now)
        if created is None:
            already_tracked += 1
        else:
            new_detections += 1

    if not dry_run:
        store.commit()

    return {
        "found": len(candidates),
        "newDetections": new_detections,
        "alreadyTracked": already_tracked,
        "truncated": truncated,
    }


def scan_abandoned_processes(
    process_types=None,
    dry_run: bool = False,
    *,
    now: datetime | None = None,
    entity_source: EntitySource | None = None,
    tracking_store: TrackingStore | None = None,
    max_rows: int | None = None,
) -> dict[str, Any]:
    """
    Scan monitored entities for abandoned processes and track new detections.

    Args:
        process_types: Subset of registered types (None = all).
        dry_run: Compute counts without writing anything.
        now: Scan instant (defaults to current UTC time).
        entity_source: Business-entity reader (defaults to SQL).
        tracking_store: Tracking-record store (defaults to SQL).
        max_rows: Per-type candidate cap (defaults to GC_SCAN_MAX_ROWS).

    Returns:
        {"scanResults": {type: {found, newDetections, alreadyTracked, truncated}},
         "totalFound", "totalNewDetections", "totalAlreadyTracked",
         "dryRun", "scannedAt", "errors": [{processType, error, code}]}

    Raises:
        ValidationError: unknown process type or non-boolean dry_run.
    """
    requested = validate_process_types(process_types)
    if not isinstance(dry_run, bool):
        raise ValidationError("dryRun must be a boolean", code=E.INVALID_DRY_RUN)

    now = as_utc(now) if now else utcnow()
    limit = _max_rows(max_rows)
    entity_source = entity_source or SqlEntitySource()
    store = tracking_store or SqlTrackingStore()

    scan_results: dict[str, dict] = {}
    errors: list[dict] = []

    for process_type in requested:
        try:
            result = _scan_type(process_type, dry_run=dry_run, now=now, limit=limit,
                                entity_source=entity_source, store=store)
        except (SQLAlchemyError, InternalError) as exc:
            store.rollback()
            logger.error("Scan failed for process type %s: %s", process_type, exc,
                         extra={"process_type": process_type, "dry_run": dry_run})
            errors.append({"processType": process_type, "error": str(exc), "code": E.SCAN_ERROR})
            continue

        scan_results[process_type] = result
        if result["truncated"]:
            logger.warning("Scan for %s hit the %d-row cap; remaining candidates wait for the next run",
                           process_type, limit, extra={"process_type": process_type})

    report = {
        "scanResults": scan_results,
        "totalFound": sum(r["found"] for r in scan_results.values()),
        "totalNewDetections": sum(r["newDetections"] for r in scan_results.values()),
        "totalAlreadyTracked": sum(r["alreadyTracked"] for r in scan_results.values()),
        "dryRun": dry_run,
        "scannedAt": now.isoformat(),
        "errors": errors,
    }
    logger.info("Abandoned process scan: found=%d new=%d tracked=%d dry_run=%s errors=%d",
                report["totalFound"], report["totalNewDetections"],
                report["totalAlreadyTracked"], dry_run, len(errors),
                extra={"dry_run": dry_run})
    return report
