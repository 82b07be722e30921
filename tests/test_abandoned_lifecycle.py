"""
Tests: Abandoned Process Lifecycle.

Covers:
    1. Permitted transitions and their timestamp side effects
    2. Validation (id, status, resolution action) leaves the record untouched
    3. Resolved is terminal (StateConflictError)
    4. Lost-race handling in the guarded UPDATE
    5. Storage failure rolls back and raises UPDATE_FAILED
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from marketgc.core.exceptions import (
    InternalError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from marketgc.models import db
from marketgc.models.abandoned_process import AbandonedProcess
from marketgc.services.abandoned_lifecycle import transition_abandoned_process
from marketgc.services.abandoned_store import SqlTrackingStore
from marketgc.utils.helpers import as_utc

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _fresh(record_id):
    return db.session.get(AbandonedProcess, record_id, populate_existing=True)


class TestTransitions:

    def test_notify_sets_last_notified_at(self, make_record):
        record = make_record()

        updated = transition_abandoned_process(record.id, "notified", now=NOW)

        assert updated.status == "notified"
        assert as_utc(updated.last_notified_at) == NOW
        assert as_utc(updated.updated_at) == NOW
        assert updated.resolved_at is None

    def test_escalate_sets_last_notified_at(self, make_record):
        record = make_record(status="notified")

        updated = transition_abandoned_process(record.id, "escalated", now=NOW)

        assert updated.status == "escalated"
        assert as_utc(updated.last_notified_at) == NOW

    def test_escalated_back_to_notified_is_allowed(self, make_record):
        record = make_record(status="escalated")

        assert transition_abandoned_process(record.id, "notified").status == "notified"

    def test_resolve_from_detected_with_trimmed_action(self, make_record):
        record = make_record()

        updated = transition_abandoned_process(record.id, "resolved", "  Refunded buyer  ", now=NOW)

        assert updated.status == "resolved"
        assert updated.resolution_action == "Refunded buyer"
        assert as_utc(updated.resolved_at) == NOW

    def test_metadata_untouched_by_transition(self, make_record):
        record = make_record(metadata={"hoursStuck": 31, "orderNumber": "ORD-42"})

        updated = transition_abandoned_process(record.id, "notified")

        assert updated.snapshot_data == {"hoursStuck": 31, "orderNumber": "ORD-42"}

    def test_string_id_accepted(self, make_record):
        record = make_record()

        assert transition_abandoned_process(str(record.id), "notified").id == record.id


class TestValidation:

    @pytest.mark.parametrize("record_id", ["abc", None, 1.5, True])
    def test_invalid_id(self, record_id):
        with pytest.raises(ValidationError) as exc_info:
            transition_abandoned_process(record_id, "notified")
        assert exc_info.value.code == "INVALID_ID"

    def test_missing_status(self, make_record):
        record = make_record()
        with pytest.raises(ValidationError) as exc_info:
            transition_abandoned_process(record.id, None)
        assert exc_info.value.code == "MISSING_STATUS"

    @pytest.mark.parametrize("status", ["detected", "closed"])
    def test_invalid_target_status(self, make_record, status):
        record = make_record()
        with pytest.raises(ValidationError) as exc_info:
            transition_abandoned_process(record.id, status)
        assert exc_info.value.code == "INVALID_STATUS"
        assert _fresh(record.id).status == "detected"

    @pytest.mark.parametrize("action", [None, "", "   "])
    def test_resolve_without_action_leaves_record_detected(self, make_record, action):
        record = make_record()

        with pytest.raises(ValidationError) as exc_info:
            transition_abandoned_process(record.id, "resolved", action)

        assert exc_info.value.code == "MISSING_RESOLUTION_ACTION"
        fresh = _fresh(record.id)
        assert fresh.status == "detected"
        assert fresh.resolved_at is None

    @pytest.mark.parametrize("status,action", [("resolved", 123), ("notified", ["Called"])])
    def test_non_string_action_is_invalid_not_missing(self, make_record, status, action):
        record = make_record()

        with pytest.raises(ValidationError) as exc_info:
            transition_abandoned_process(record.id, status, action)

        assert exc_info.value.code == "INVALID_RESOLUTION_ACTION"
        fresh = _fresh(record.id)
        assert fresh.status == "detected"
        assert fresh.resolution_action is None

    def test_unknown_record(self):
        with pytest.raises(NotFoundError) as exc_info:
            transition_abandoned_process(999, "notified")
        assert exc_info.value.code == "PROCESS_NOT_FOUND"


class TestTerminalResolved:

    def test_resolving_twice_conflicts_and_changes_nothing(self, make_record):
        record = make_record()
        first = transition_abandoned_process(record.id, "resolved", "Refunded", now=NOW)
        resolved_at = first.resolved_at

        with pytest.raises(StateConflictError) as exc_info:
            transition_abandoned_process(record.id, "resolved", "Refunded again")

        assert exc_info.value.code == "INVALID_STATUS_TRANSITION"
        fresh = _fresh(record.id)
        assert fresh.resolution_action == "Refunded"
        assert fresh.resolved_at == resolved_at

    def test_notify_after_resolve_conflicts(self, make_record):
        record = make_record(status="resolved", resolved_days_ago=1, resolution_action="done")

        with pytest.raises(StateConflictError):
            transition_abandoned_process(record.id, "notified")


class TestConcurrencyAndFailures:

    def test_lost_race_reports_conflict(self, make_record, monkeypatch):
        record = make_record()
        store = SqlTrackingStore()
        real_apply = store.apply_transition

        def resolve_first(record_id, changes):
            # Another operator resolves the row between our read and our write
            real_apply(record_id, {"status": "resolved", "resolution_action": "other",
                                   "resolved_at": NOW})
            store.commit()
            return real_apply(record_id, changes)

        monkeypatch.setattr(store, "apply_transition", resolve_first)

        with pytest.raises(StateConflictError):
            transition_abandoned_process(record.id, "escalated", store=store)

        fresh = _fresh(record.id)
        assert fresh.status == "resolved"
        assert fresh.resolution_action == "other"

    def test_lost_race_to_deletion_reports_not_found(self, memory_store):
        from marketgc.models.snapshots import OrderSnapshot
        snap = OrderSnapshot("ORD-1", 1, "1.00", "pending", None, None, 30)
        record = memory_store.create_if_absent("order", 1, snap, NOW)
        real_apply = memory_store.apply_transition

        def deleted_first(record_id, changes):
            memory_store.records.pop(record_id)
            return real_apply(record_id, changes)

        memory_store.apply_transition = deleted_first

        with pytest.raises(NotFoundError):
            transition_abandoned_process(record.id, "notified", store=memory_store)
        assert memory_store.rollbacks == 1

    def test_storage_failure_rolls_back(self, make_record, monkeypatch):
        record = make_record()
        store = SqlTrackingStore()

        def boom(record_id, changes):
            raise OperationalError("UPDATE", {}, Exception("disk I/O error"))

        monkeypatch.setattr(store, "apply_transition", boom)

        with pytest.raises(InternalError) as exc_info:
            transition_abandoned_process(record.id, "resolved", "Refunded", store=store)

        assert exc_info.value.code == "UPDATE_FAILED"
        assert _fresh(record.id).status == "detected"
