"""Garbage Collector blueprint.

Operator API for abandoned-process detection and lifecycle.

Endpoint groups:
  Detection        POST /api/v1/garbage-collector/scan
  Tracking records GET  /api/v1/garbage-collector/abandoned
                   GET  /api/v1/garbage-collector/abandoned/<id>
                   PUT  /api/v1/garbage-collector/abandoned/<id>
  Retention        POST /api/v1/garbage-collector/cleanup
  Registry         GET  /api/v1/garbage-collector/thresholds
  Jobs             GET  /api/v1/garbage-collector/jobs
                   POST /api/v1/garbage-collector/jobs/<name>/run

Service layer owns all business logic and commits. Every error renders as
``{"error": message, "code": CODE}`` through api_error().
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import BadRequest

from marketgc.core.exceptions import (
    InternalError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from marketgc.services.abandoned_cleanup import cleanup_resolved_processes
from marketgc.services.abandoned_lifecycle import transition_abandoned_process
from marketgc.services.abandoned_query import get_abandoned_process, list_abandoned_processes
from marketgc.services.abandoned_scanner import scan_abandoned_processes
from marketgc.services.scheduler_service import SchedulerService, get_registered_jobs
from marketgc.services.threshold_registry import describe_registry
from marketgc.utils.errors import E, api_error

logger = logging.getLogger(__name__)

garbage_collector_bp = Blueprint("garbage_collector", __name__,
                                 url_prefix="/api/v1/garbage-collector")


# ── Error handlers ────────────────────────────────────────────────────────────


@garbage_collector_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(error.code, str(error), status=400, details=error.details or None)


@garbage_collector_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(error.code, str(error), status=404)


@garbage_collector_bp.errorhandler(StateConflictError)
def _handle_conflict(error: StateConflictError):
    return api_error(error.code, str(error), status=409,
                     details={"currentStatus": error.current_status} if error.current_status else None)


@garbage_collector_bp.errorhandler(InternalError)
def _handle_internal(error: InternalError):
    return api_error(error.code, str(error), status=500)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _json_body() -> dict:
    """Parsed JSON object body; an empty body counts as ``{}``."""
    if not request.get_data(cache=True):
        return {}
    try:
        data = request.get_json(force=True)
    except BadRequest as exc:
        raise ValidationError("Request body must be valid JSON", code=E.INVALID_JSON) from exc
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", code=E.INVALID_JSON)
    return data


# ═════════════════════════════════════════════════════════════════════════
# Detection
# ═════════════════════════════════════════════════════════════════════════


@garbage_collector_bp.route("/scan", methods=["POST"])
def scan():
    """Run a detection pass over the requested process types."""
    data = _json_body()
    report = scan_abandoned_processes(
        process_types=data.get("processTypes"),
        dry_run=data.get("dryRun", False),
    )
    if report["errors"] and not report["scanResults"]:
        return api_error(E.SCAN_ERROR, "Scan failed for every requested process type",
                         details={"errors": report["errors"]})
    return jsonify({"success": True, **report}), 200


# ═════════════════════════════════════════════════════════════════════════
# Tracking records
# ═════════════════════════════════════════════════════════════════════════


@garbage_collector_bp.route("/abandoned", methods=["GET"])
def list_abandoned():
    result = list_abandoned_processes(
        process_type=request.args.get("processType") or None,
        status=request.args.get("status") or None,
        sort_by=request.args.get("sortBy", "detectedAt"),
        sort_order=request.args.get("sortOrder", "desc"),
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    )
    return jsonify({"success": True, **result}), 200


@garbage_collector_bp.route("/abandoned/<record_id>", methods=["GET"])
def get_abandoned(record_id):
    record = get_abandoned_process(record_id)
    return jsonify({"success": True, "data": record.to_dict()}), 200


@garbage_collector_bp.route("/abandoned/<record_id>", methods=["PUT"])
def update_abandoned(record_id):
    """Transition a record to notified, escalated or resolved."""
    data = _json_body()
    record = transition_abandoned_process(
        record_id,
        data.get("status"),
        data.get("resolutionAction"),
    )
    return jsonify({
        "success": True,
        "data": record.to_dict(),
        "message": "Abandoned process updated successfully",
    }), 200


@garbage_collector_bp.route("/abandoned/<record_id>", methods=["PATCH"])
def patch_abandoned(record_id):
    return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed. Use PUT instead.", status=405)


# ═════════════════════════════════════════════════════════════════════════
# Retention
# ═════════════════════════════════════════════════════════════════════════


@garbage_collector_bp.route("/cleanup", methods=["POST"])
def cleanup():
    """Delete resolved records older than the retention window."""
    data = _json_body()
    result = cleanup_resolved_processes(
        process_types=data.get("processTypes"),
        older_than_days=data.get("olderThanDays"),
        dry_run=data.get("dryRun", False),
    )
    return jsonify({
        "success": True,
        "cleanupResults": result,
        "cleanedAt": result["cleanedAt"],
    }), 200


# ═════════════════════════════════════════════════════════════════════════
# Registry & jobs
# ═════════════════════════════════════════════════════════════════════════


@garbage_collector_bp.route("/thresholds", methods=["GET"])
def thresholds():
    return jsonify({"success": True, "data": describe_registry()}), 200


@garbage_collector_bp.route("/jobs", methods=["GET"])
def list_jobs():
    return jsonify({"success": True, "data": SchedulerService.list_jobs()}), 200


@garbage_collector_bp.route("/jobs/<job_name>/run", methods=["POST"])
def run_job(job_name):
    """Trigger one registered job now and record the run."""
    if job_name not in get_registered_jobs():
        raise NotFoundError("Job", job_name, code=E.JOB_NOT_FOUND)
    outcome = SchedulerService.run_job(job_name)
    status_code = 200 if outcome["status"] == "success" else 500
    return jsonify({"success": status_code == 200, **outcome}), status_code
