"""
Marketplace Garbage Collector
Scheduled Jobs.

Jobs:
    - abandoned_process_scan: detects stuck processes across every registered type
    - abandoned_process_cleanup: purges resolved records past the retention window
"""

from __future__ import annotations

import logging
from typing import Any

from marketgc.services.abandoned_cleanup import cleanup_resolved_processes
from marketgc.services.abandoned_scanner import scan_abandoned_processes
from marketgc.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job("abandoned_process_scan")
def run_abandoned_scan(app) -> dict[str, Any]:
    """Scan all process types for abandoned processes and track new ones."""
    report = scan_abandoned_processes()
    if report["errors"] and not report["scanResults"]:
        # Every type failed; surface it as a failed run
        raise RuntimeError("; ".join(e["error"] for e in report["errors"]))
    return report


@register_job("abandoned_process_cleanup")
def run_abandoned_cleanup(app) -> dict[str, Any]:
    """Delete resolved abandoned-process records older than GC_RETENTION_DAYS."""
    return cleanup_resolved_processes(older_than_days=app.config.get("GC_RETENTION_DAYS"))
