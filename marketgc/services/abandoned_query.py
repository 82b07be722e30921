"""
Marketplace Garbage Collector
Read-only query service over tracking records.

    list_abandoned_processes  filter by process type / status, sort, paginate,
                              plus summary counts (total, byStatus, byType)
    get_abandoned_process     single record or NotFoundError

Metadata is returned as structured JSON, never as the stored blob.
"""

from __future__ import annotations

from typing import Any

from flask import current_app, has_app_context

from marketgc.core.exceptions import NotFoundError, ValidationError
from marketgc.models.abandoned_process import AbandonedProcess, PROCESS_STATUSES, PROCESS_TYPES
from marketgc.services.abandoned_lifecycle import parse_record_id
from marketgc.services.abandoned_store import SORT_COLUMNS, SqlTrackingStore, TrackingStore
from marketgc.utils.errors import E
from marketgc.utils.helpers import parse_int

SORT_ORDERS = ("asc", "desc")


def _config(key: str, default: int) -> int:
    if has_app_context():
        return int(current_app.config.get(key, default))
    return default


def _validate_filters(process_type, status, sort_by, sort_order) -> None:
    if process_type and process_type not in PROCESS_TYPES:
        raise ValidationError(
            "Invalid processType. Must be one of: " + ", ".join(PROCESS_TYPES),
            code=E.INVALID_PROCESS_TYPE,
        )
    if status and status not in PROCESS_STATUSES:
        raise ValidationError(
            "Invalid status. Must be one of: " + ", ".join(PROCESS_STATUSES),
            code=E.INVALID_STATUS,
        )
    if sort_by not in SORT_COLUMNS:
        raise ValidationError(
            "Invalid sortBy field. Must be one of: " + ", ".join(SORT_COLUMNS),
            code=E.INVALID_SORT_FIELD,
        )
    if sort_order not in SORT_ORDERS:
        raise ValidationError("Invalid sortOrder. Must be 'asc' or 'desc'", code=E.INVALID_SORT_ORDER)


def _page_bounds(limit, offset) -> tuple[int, int]:
    max_limit = _config("GC_LIST_MAX_LIMIT", 100)
    if limit is None:
        limit = _config("GC_LIST_DEFAULT_LIMIT", 20)
    parsed_limit = parse_int(limit)
    if parsed_limit is None or parsed_limit < 1:
        raise ValidationError("Invalid limit parameter", code=E.INVALID_LIMIT)

    parsed_offset = parse_int(0 if offset is None else offset)
    if parsed_offset is None or parsed_offset < 0:
        raise ValidationError("Invalid offset parameter", code=E.INVALID_OFFSET)

    return min(parsed_limit, max_limit), parsed_offset


def list_abandoned_processes(
    process_type: str | None = None,
    status: str | None = None,
    *,
    sort_by: str = "detectedAt",
    sort_order: str = "desc",
    limit=None,
    offset=None,
    store: TrackingStore | None = None,
) -> dict[str, Any]:
    """
    Paginated, filterable listing of tracking records.

    ``limit`` above the configured maximum (100) is clamped, below 1 rejected.

    Returns:
        {"data": [record dicts],
         "summary": {"total", "byStatus", "byType"},
         "pagination": {"limit", "offset", "hasMore"}}
    """
    _validate_filters(process_type, status, sort_by, sort_order)
    limit, offset = _page_bounds(limit, offset)
    store = store or SqlTrackingStore()

    rows = store.list(
        process_type=process_type or None,
        status=status or None,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit + 1,
        offset=offset,
    )
    has_more = len(rows) > limit
    rows = rows[:limit]

    return {
        "data": [r.to_dict() for r in rows],
        "summary": {
            "total": store.count(process_type=process_type or None, status=status or None),
            "byStatus": store.count_by("status", process_type=process_type or None),
            "byType": store.count_by("process_type", status=status or None),
        },
        "pagination": {"limit": limit, "offset": offset, "hasMore": has_more},
    }


def get_abandoned_process(record_id, *, store: TrackingStore | None = None) -> AbandonedProcess:
    """Return one tracking record; NotFoundError(PROCESS_NOT_FOUND) if absent."""
    record_id = parse_record_id(record_id)
    store = store or SqlTrackingStore()
    record = store.get(record_id)
    if record is None:
        raise NotFoundError("Abandoned process", record_id, code=E.PROCESS_NOT_FOUND)
    return record
