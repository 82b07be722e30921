"""
Tests: Flask CLI commands (gc-scan, gc-cleanup).
"""

import json

from marketgc.models.abandoned_process import AbandonedProcess


class TestGcScan:

    def test_dry_run_prints_report(self, app, make_order):
        make_order(hours_ago=30)

        result = app.test_cli_runner().invoke(args=["gc-scan", "--type", "order", "--dry-run"])

        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["dryRun"] is True
        assert report["scanResults"]["order"]["newDetections"] == 1
        assert AbandonedProcess.query.count() == 0

    def test_scan_tracks(self, app, make_order):
        make_order(hours_ago=30)

        result = app.test_cli_runner().invoke(args=["gc-scan"])

        assert result.exit_code == 0, result.output
        assert AbandonedProcess.query.count() == 1

    def test_unknown_type_is_usage_error(self, app):
        result = app.test_cli_runner().invoke(args=["gc-scan", "--type", "refund"])
        assert result.exit_code == 2
        assert "INVALID_PROCESS_TYPES" in result.output


class TestGcCleanup:

    def test_cleanup(self, app, make_record):
        make_record(status="resolved", resolved_days_ago=10, resolution_action="done")

        result = app.test_cli_runner().invoke(args=["gc-cleanup", "--older-than-days", "7"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["deletedCount"] == 1
        assert AbandonedProcess.query.count() == 0

    def test_invalid_window(self, app):
        result = app.test_cli_runner().invoke(args=["gc-cleanup", "--older-than-days", "0"])
        assert result.exit_code == 2
        assert "INVALID_OLDER_THAN_DAYS" in result.output
