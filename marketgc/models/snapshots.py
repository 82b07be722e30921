"""
Marketplace Garbage Collector
Detection-time metadata snapshots.

One frozen dataclass per monitored process type. The tracking record keeps
the snapshot as JSON; these classes are the in-memory form and own the
camelCase wire shape (``to_dict`` / ``from_dict``).

    OrderSnapshot         → process_type "order"
    DeliveryTaskSnapshot  → process_type "delivery_task"
    TransactionSnapshot   → process_type "transaction"
    ActivityLogSnapshot   → process_type "activity_log"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union


@dataclass(frozen=True)
class OrderSnapshot:
    process_type: ClassVar[str] = "order"

    order_number: str
    buyer_id: int
    total_amount: str
    status: str
    payment_status: str | None
    created_at: str | None
    hours_stuck: int

    def to_dict(self) -> dict:
        return {
            "orderNumber": self.order_number,
            "buyerId": self.buyer_id,
            "totalAmount": self.total_amount,
            "status": self.status,
            "paymentStatus": self.payment_status,
            "createdAt": self.created_at,
            "hoursStuck": self.hours_stuck,
        }

    @classmethod
    def from_dict(cls, data: dict) -> OrderSnapshot:
        return cls(
            order_number=data.get("orderNumber"),
            buyer_id=data.get("buyerId"),
            total_amount=data.get("totalAmount"),
            status=data.get("status"),
            payment_status=data.get("paymentStatus"),
            created_at=data.get("createdAt"),
            hours_stuck=data.get("hoursStuck", 0),
        )


@dataclass(frozen=True)
class DeliveryTaskSnapshot:
    process_type: ClassVar[str] = "delivery_task"

    order_id: int
    driver_id: int
    seller_id: int
    status: str
    assigned_at: str | None
    created_at: str | None
    hours_stuck: int

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "driverId": self.driver_id,
            "sellerId": self.seller_id,
            "status": self.status,
            "assignedAt": self.assigned_at,
            "createdAt": self.created_at,
            "hoursStuck": self.hours_stuck,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DeliveryTaskSnapshot:
        return cls(
            order_id=data.get("orderId"),
            driver_id=data.get("driverId"),
            seller_id=data.get("sellerId"),
            status=data.get("status"),
            assigned_at=data.get("assignedAt"),
            created_at=data.get("createdAt"),
            hours_stuck=data.get("hoursStuck", 0),
        )


@dataclass(frozen=True)
class TransactionSnapshot:
    process_type: ClassVar[str] = "transaction"

    order_id: int
    buyer_id: int
    seller_id: int
    amount: str
    status: str
    transaction_type: str
    created_at: str | None
    hours_stuck: int

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "buyerId": self.buyer_id,
            "sellerId": self.seller_id,
            "amount": self.amount,
            "status": self.status,
            "transactionType": self.transaction_type,
            "createdAt": self.created_at,
            "hoursStuck": self.hours_stuck,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TransactionSnapshot:
        return cls(
            order_id=data.get("orderId"),
            buyer_id=data.get("buyerId"),
            seller_id=data.get("sellerId"),
            amount=data.get("amount"),
            status=data.get("status"),
            transaction_type=data.get("transactionType"),
            created_at=data.get("createdAt"),
            hours_stuck=data.get("hoursStuck", 0),
        )


@dataclass(frozen=True)
class ActivityLogSnapshot:
    process_type: ClassVar[str] = "activity_log"

    user_id: int | None
    activity_type: str
    entity_type: str | None
    entity_id: int | None
    created_at: str | None
    days_old: int

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "activityType": self.activity_type,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "createdAt": self.created_at,
            "daysOld": self.days_old,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ActivityLogSnapshot:
        return cls(
            user_id=data.get("userId"),
            activity_type=data.get("activityType"),
            entity_type=data.get("entityType"),
            entity_id=data.get("entityId"),
            created_at=data.get("createdAt"),
            days_old=data.get("daysOld", 0),
        )


ProcessSnapshot = Union[OrderSnapshot, DeliveryTaskSnapshot, TransactionSnapshot, ActivityLogSnapshot]

SNAPSHOT_TYPES: dict[str, type] = {
    cls.process_type: cls
    for cls in (OrderSnapshot, DeliveryTaskSnapshot, TransactionSnapshot, ActivityLogSnapshot)
}


def snapshot_from_dict(process_type: str, data: dict | None) -> ProcessSnapshot | None:
    """Rebuild the typed snapshot for ``process_type`` from its stored JSON."""
    if data is None:
        return None
    cls = SNAPSHOT_TYPES.get(process_type)
    if cls is None:
        raise KeyError(f"No snapshot type registered for process type {process_type!r}")
    return cls.from_dict(data)
