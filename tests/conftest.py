"""
Shared pytest fixtures for the Marketplace Garbage Collector test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_order / make_delivery_task / make_transaction / make_activity_log:
      monitored-entity factories that back-date created_at
    - make_record: tracking-record factory (any status, any resolved_at)
    - memory_source / memory_store: in-memory repository fakes for
      deterministic and multi-threaded service tests
"""

import itertools
import threading
from datetime import datetime, timedelta, timezone

import pytest

from marketgc import create_app
from marketgc.models import db as _db
from marketgc.models.abandoned_process import AbandonedProcess, STATUS_DETECTED, STATUS_RESOLVED
from marketgc.models.marketplace import ActivityLog, DeliveryTask, Order, Transaction
from marketgc.services.abandoned_store import EntitySource, SORT_COLUMNS, TrackingStore


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Entity factories ─────────────────────────────────────────────────────

_seq = itertools.count(1)


def _ago(hours=0, days=0):
    return datetime.now(timezone.utc) - timedelta(hours=hours, days=days)


@pytest.fixture()
def make_order():
    def _make(*, hours_ago=30, status="pending", payment_status="escrow_pending",
              buyer_id=7, total_amount="149.90"):
        order = Order(
            order_number=f"ORD-{next(_seq):05d}",
            buyer_id=buyer_id,
            total_amount=total_amount,
            status=status,
            payment_status=payment_status,
            created_at=_ago(hours=hours_ago),
        )
        _db.session.add(order)
        _db.session.commit()
        return order
    return _make


@pytest.fixture()
def make_delivery_task(make_order):
    def _make(*, hours_ago=50, status="assigned", driver_id=3, seller_id=11):
        order = make_order(hours_ago=hours_ago, status="shipped")
        task = DeliveryTask(
            order_id=order.id,
            driver_id=driver_id,
            seller_id=seller_id,
            status=status,
            assigned_at=_ago(hours=hours_ago),
            created_at=_ago(hours=hours_ago),
        )
        _db.session.add(task)
        _db.session.commit()
        return task
    return _make


@pytest.fixture()
def make_transaction(make_order):
    def _make(*, hours_ago=2, status="pending", transaction_type="escrow_hold", amount="149.90"):
        order = make_order(hours_ago=hours_ago, status="payment_received")
        txn = Transaction(
            order_id=order.id,
            buyer_id=order.buyer_id,
            seller_id=11,
            amount=amount,
            transaction_type=transaction_type,
            status=status,
            created_at=_ago(hours=hours_ago),
        )
        _db.session.add(txn)
        _db.session.commit()
        return txn
    return _make


@pytest.fixture()
def make_activity_log():
    def _make(*, days_ago=120, activity_type="order_created", user_id=7):
        log = ActivityLog(
            user_id=user_id,
            user_role="buyer",
            activity_type=activity_type,
            entity_type="order",
            entity_id=1,
            description="Order created",
            created_at=_ago(days=days_ago),
        )
        _db.session.add(log)
        _db.session.commit()
        return log
    return _make


@pytest.fixture()
def make_record():
    """Insert a tracking record directly, bypassing the scanner."""
    def _make(*, process_type="order", entity_id=None, status=STATUS_DETECTED,
              detected_days_ago=1, resolved_days_ago=None, resolution_action=None,
              metadata=None):
        detected_at = _ago(days=detected_days_ago)
        record = AbandonedProcess(
            process_type=process_type,
            entity_id=entity_id if entity_id is not None else next(_seq),
            status=status,
            detected_at=detected_at,
            resolved_at=_ago(days=resolved_days_ago) if resolved_days_ago is not None else None,
            resolution_action=resolution_action,
            snapshot_data=metadata if metadata is not None else {"hoursStuck": 30},
            created_at=detected_at,
            updated_at=detected_at,
        )
        _db.session.add(record)
        _db.session.commit()
        return record
    return _make


# ── In-memory repository fakes ───────────────────────────────────────────


class InMemoryEntitySource(EntitySource):
    """Monitored rows held in plain lists, filtered with ProcessRule.matches()."""

    def __init__(self, rows_by_type=None):
        self.rows_by_type = rows_by_type or {}

    def find_stale(self, rule, now, limit=None):
        rows = [r for r in self.rows_by_type.get(rule.process_type, []) if rule.matches(r, now)]
        return rows[:limit] if limit else rows


class InMemoryTrackingStore(TrackingStore):
    """Thread-safe tracking store; a single lock makes create_if_absent atomic."""

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.records = {}
        self.commits = 0
        self.rollbacks = 0

    def _active(self, process_type, entity_id):
        return any(
            r.process_type == process_type and r.entity_id == entity_id and r.status != STATUS_RESOLVED
            for r in self.records.values()
        )

    def has_active(self, process_type, entity_id):
        with self._lock:
            return self._active(process_type, entity_id)

    def create_if_absent(self, process_type, entity_id, snapshot, detected_at):
        with self._lock:
            if self._active(process_type, entity_id):
                return None
            record = AbandonedProcess(
                id=next(self._ids),
                process_type=process_type,
                entity_id=entity_id,
                status=STATUS_DETECTED,
                detected_at=detected_at,
                snapshot_data=snapshot.to_dict(),
                created_at=detected_at,
                updated_at=detected_at,
            )
            self.records[record.id] = record
            return record

    def get(self, record_id):
        return self.records.get(record_id)

    def apply_transition(self, record_id, changes):
        with self._lock:
            record = self.records.get(record_id)
            if record is None or record.status == STATUS_RESOLVED:
                return False
            for key, value in changes.items():
                setattr(record, key, value)
            return True

    def _filtered(self, process_type=None, status=None):
        return [
            r for r in self.records.values()
            if (not process_type or r.process_type == process_type)
            and (not status or r.status == status)
        ]

    def list(self, *, process_type, status, sort_by, sort_order, limit, offset):
        attr = SORT_COLUMNS[sort_by].key
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        rows = sorted(
            self._filtered(process_type, status),
            key=lambda r: (getattr(r, attr) or epoch, r.id),
            reverse=sort_order == "desc",
        )
        return rows[offset:offset + limit]

    def count(self, *, process_type=None, status=None):
        return len(self._filtered(process_type, status))

    def count_by(self, field, *, process_type=None, status=None):
        counts = {}
        for r in self._filtered(process_type, status):
            key = getattr(r, field)
            counts[key] = counts.get(key, 0) + 1
        return counts

    def _resolved_before(self, process_type, cutoff):
        return [
            r for r in self.records.values()
            if r.process_type == process_type and r.status == STATUS_RESOLVED
            and r.resolved_at is not None and r.resolved_at < cutoff
        ]

    def count_resolved_before(self, process_type, cutoff):
        return len(self._resolved_before(process_type, cutoff))

    def delete_resolved_before(self, process_type, cutoff):
        with self._lock:
            doomed = self._resolved_before(process_type, cutoff)
            for r in doomed:
                del self.records[r.id]
            return len(doomed)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


@pytest.fixture()
def memory_source():
    return InMemoryEntitySource()


@pytest.fixture()
def memory_store():
    return InMemoryTrackingStore()
