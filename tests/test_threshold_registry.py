"""
Tests: Threshold Registry.

Covers:
    1. Registered process types and their predicates
    2. Boundary behaviour of ProcessRule.matches()
    3. Snapshot builders (hoursStuck / daysOld, camelCase wire shape)
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from marketgc.models.snapshots import OrderSnapshot, snapshot_from_dict
from marketgc.services.threshold_registry import (
    THRESHOLD_REGISTRY,
    days_since,
    describe_registry,
    get_rule,
    hours_since,
    registered_process_types,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _row(*, hours_ago=0, days_ago=0, **fields):
    return SimpleNamespace(id=1, created_at=NOW - timedelta(hours=hours_ago, days=days_ago), **fields)


class TestRegistry:

    def test_registered_types_in_order(self):
        assert registered_process_types() == ["order", "delivery_task", "transaction", "activity_log"]

    def test_thresholds(self):
        assert get_rule("order").threshold == timedelta(hours=24)
        assert get_rule("delivery_task").threshold == timedelta(hours=48)
        assert get_rule("transaction").threshold == timedelta(hours=1)
        assert get_rule("activity_log").threshold == timedelta(days=90)

    def test_status_sets(self):
        assert get_rule("order").statuses == {"pending", "payment_received"}
        assert get_rule("delivery_task").statuses == {"assigned", "picked_up"}
        assert get_rule("transaction").statuses == {"pending"}
        assert get_rule("activity_log").statuses is None

    def test_unknown_type_raises_key_error(self):
        with pytest.raises(KeyError):
            get_rule("refund")

    def test_describe_registry_is_serialisable(self):
        described = {d["processType"]: d for d in describe_registry()}
        assert set(described) == set(THRESHOLD_REGISTRY)
        assert described["transaction"]["thresholdSeconds"] == 3600
        assert described["order"]["statuses"] == ["payment_received", "pending"]
        assert described["activity_log"]["statuses"] is None


class TestMatches:

    def test_order_pending_30h_matches(self):
        assert get_rule("order").matches(_row(hours_ago=30, status="pending"), NOW)

    def test_order_exactly_at_threshold_does_not_match(self):
        assert not get_rule("order").matches(_row(hours_ago=24, status="pending"), NOW)

    def test_order_shipped_never_matches(self):
        assert not get_rule("order").matches(_row(hours_ago=300, status="shipped"), NOW)

    def test_delivery_task_50h_matches_40h_does_not(self):
        rule = get_rule("delivery_task")
        assert rule.matches(_row(hours_ago=50, status="assigned"), NOW)
        assert not rule.matches(_row(hours_ago=40, status="assigned"), NOW)

    def test_transaction_pending_over_an_hour(self):
        rule = get_rule("transaction")
        assert rule.matches(_row(hours_ago=2, status="pending"), NOW)
        assert not rule.matches(_row(hours_ago=2, status="released"), NOW)

    def test_activity_log_ignores_status(self):
        rule = get_rule("activity_log")
        assert rule.matches(_row(days_ago=91, status=None), NOW)
        assert not rule.matches(_row(days_ago=89, status=None), NOW)

    def test_naive_created_at_treated_as_utc(self):
        row = SimpleNamespace(id=1, status="pending",
                              created_at=(NOW - timedelta(hours=25)).replace(tzinfo=None))
        assert get_rule("order").matches(row, NOW)


class TestSnapshots:

    def test_elapsed_helpers_floor(self):
        assert hours_since(NOW - timedelta(hours=30, minutes=59), NOW) == 30
        assert days_since(NOW - timedelta(days=90, hours=23), NOW) == 90
        assert hours_since(None, NOW) == 0

    def test_order_snapshot(self):
        row = _row(hours_ago=30, status="pending", order_number="ORD-42", buyer_id=9,
                   total_amount=Decimal("149.90"), payment_status="escrow_pending")
        snap = get_rule("order").build_snapshot(row, NOW)
        assert isinstance(snap, OrderSnapshot)
        assert snap.hours_stuck == 30
        data = snap.to_dict()
        assert data["orderNumber"] == "ORD-42"
        assert data["totalAmount"] == "149.90"
        assert data["hoursStuck"] >= 24

    def test_activity_log_snapshot_uses_days(self):
        row = _row(days_ago=120, user_id=7, activity_type="login", entity_type=None, entity_id=None)
        data = get_rule("activity_log").build_snapshot(row, NOW).to_dict()
        assert data["daysOld"] == 120
        assert "hoursStuck" not in data

    def test_snapshot_from_dict_restores_type(self):
        row = _row(hours_ago=3, status="pending", order_id=5, buyer_id=1, seller_id=2,
                   amount=Decimal("10.00"), transaction_type="escrow_hold")
        snap = get_rule("transaction").build_snapshot(row, NOW)
        assert snapshot_from_dict("transaction", snap.to_dict()) == snap
