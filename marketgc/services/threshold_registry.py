"""
Marketplace Garbage Collector
Threshold Registry.

Declarative table of monitored process types. Each rule pairs a staleness
predicate (status set, or None for "any status") with the duration after
which a matching row counts as abandoned, plus the builder for the
detection-time metadata snapshot.

    order          status ∈ {pending, payment_received}   age > 24h
    delivery_task  status ∈ {assigned, picked_up}         age > 48h
    transaction    status = pending                       age > 1h
    activity_log   any status                             age > 90 days (archival)

Adding a process type = one ProcessRule here + one model mapping in the
entity source. The scan loop never changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from marketgc.models.snapshots import (
    ActivityLogSnapshot,
    DeliveryTaskSnapshot,
    OrderSnapshot,
    ProcessSnapshot,
    TransactionSnapshot,
)
from marketgc.utils.helpers import as_utc, iso


@dataclass(frozen=True)
class ProcessRule:
    process_type: str
    statuses: frozenset[str] | None
    threshold: timedelta
    build_snapshot: Callable[[Any, datetime], ProcessSnapshot]
    description: str = ""

    def cutoff(self, now: datetime) -> datetime:
        """Rows created strictly before this instant are stale."""
        return now - self.threshold

    def matches(self, candidate: Any, now: datetime) -> bool:
        """In-memory form of the predicate (used by non-SQL entity sources)."""
        if self.statuses is not None and candidate.status not in self.statuses:
            return False
        return as_utc(candidate.created_at) < self.cutoff(now)


# ── Elapsed-time helpers ────────────────────────────────────────────────────


def hours_since(created_at: datetime | None, now: datetime) -> int:
    if created_at is None:
        return 0
    return int((now - as_utc(created_at)).total_seconds() // 3600)


def days_since(created_at: datetime | None, now: datetime) -> int:
    if created_at is None:
        return 0
    return int((now - as_utc(created_at)).total_seconds() // 86400)


def _amount(value) -> str | None:
    return None if value is None else str(value)


# ── Snapshot builders ───────────────────────────────────────────────────────


def _order_snapshot(row, now: datetime) -> OrderSnapshot:
    return OrderSnapshot(
        order_number=row.order_number,
        buyer_id=row.buyer_id,
        total_amount=_amount(row.total_amount),
        status=row.status,
        payment_status=getattr(row, "payment_status", None),
        created_at=iso(row.created_at),
        hours_stuck=hours_since(row.created_at, now),
    )


def _delivery_task_snapshot(row, now: datetime) -> DeliveryTaskSnapshot:
    return DeliveryTaskSnapshot(
        order_id=row.order_id,
        driver_id=row.driver_id,
        seller_id=row.seller_id,
        status=row.status,
        assigned_at=iso(getattr(row, "assigned_at", None)),
        created_at=iso(row.created_at),
        hours_stuck=hours_since(row.created_at, now),
    )


def _transaction_snapshot(row, now: datetime) -> TransactionSnapshot:
    return TransactionSnapshot(
        order_id=row.order_id,
        buyer_id=row.buyer_id,
        seller_id=row.seller_id,
        amount=_amount(row.amount),
        status=row.status,
        transaction_type=row.transaction_type,
        created_at=iso(row.created_at),
        hours_stuck=hours_since(row.created_at, now),
    )


def _activity_log_snapshot(row, now: datetime) -> ActivityLogSnapshot:
    return ActivityLogSnapshot(
        user_id=row.user_id,
        activity_type=row.activity_type,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        created_at=iso(row.created_at),
        days_old=days_since(row.created_at, now),
    )


# ── Registry ────────────────────────────────────────────────────────────────

_RULES = (
    ProcessRule(
        process_type="order",
        statuses=frozenset({"pending", "payment_received"}),
        threshold=timedelta(hours=24),
        build_snapshot=_order_snapshot,
        description="Order stuck before shipment for more than 24 hours",
    ),
    ProcessRule(
        process_type="delivery_task",
        statuses=frozenset({"assigned", "picked_up"}),
        threshold=timedelta(hours=48),
        build_snapshot=_delivery_task_snapshot,
        description="Delivery not completed within 48 hours",
    ),
    ProcessRule(
        process_type="transaction",
        statuses=frozenset({"pending"}),
        threshold=timedelta(hours=1),
        build_snapshot=_transaction_snapshot,
        description="Escrow transaction pending for more than 1 hour",
    ),
    ProcessRule(
        process_type="activity_log",
        statuses=None,
        threshold=timedelta(days=90),
        build_snapshot=_activity_log_snapshot,
        description="Activity log older than 90 days (archival candidate)",
    ),
)

THRESHOLD_REGISTRY: dict[str, ProcessRule] = {rule.process_type: rule for rule in _RULES}


def get_rule(process_type: str) -> ProcessRule:
    """Return the rule for ``process_type``; KeyError for unknown types."""
    return THRESHOLD_REGISTRY[process_type]


def registered_process_types() -> list[str]:
    """All monitored process types in registry order."""
    return list(THRESHOLD_REGISTRY)


def describe_registry() -> list[dict]:
    return [
        {
            "processType": rule.process_type,
            "statuses": sorted(rule.statuses) if rule.statuses is not None else None,
            "thresholdSeconds": int(rule.threshold.total_seconds()),
            "description": rule.description,
        }
        for rule in _RULES
    ]
