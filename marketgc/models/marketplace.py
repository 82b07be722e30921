"""
Marketplace Garbage Collector
Monitored business entities.

These tables are owned by the marketplace application (checkout, delivery,
escrow payments, activity logging). The garbage collector only reads them;
the columns below are the subset its staleness queries and metadata
snapshots rely on.

Models:
    - Order: buyer order with escrow payment status
    - DeliveryTask: driver pickup/delivery assignment
    - Transaction: escrow payment movement
    - ActivityLog: user/system activity trail
"""

from datetime import datetime, timezone

from marketgc.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ORDER_STATUSES = {"pending", "payment_received", "shipped", "delivered", "completed", "cancelled"}
DELIVERY_TASK_STATUSES = {"assigned", "picked_up", "in_transit", "delivered", "failed"}
TRANSACTION_STATUSES = {"pending", "held", "released", "refunded", "failed"}


def _utcnow():
    return datetime.now(timezone.utc)


class Order(db.Model):
    """Buyer order. Funds sit in escrow until the buyer approves delivery."""

    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(40), unique=True, nullable=False)
    buyer_id = db.Column(db.Integer, nullable=False, index=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    status = db.Column(db.String(30), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<Order {self.order_number} [{self.status}]>"


class DeliveryTask(db.Model):
    """Driver assignment for moving an order from seller to buyer."""

    __tablename__ = "delivery_tasks"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, nullable=False, index=True)
    seller_id = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(30), nullable=False, default="assigned", index=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<DeliveryTask {self.id} order={self.order_id} [{self.status}]>"


class Transaction(db.Model):
    """Escrow payment movement tied to an order."""

    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, nullable=False)
    seller_id = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    transaction_type = db.Column(db.String(30), nullable=False, default="escrow_hold",
                                 comment="escrow_hold, escrow_release, refund, payout")
    status = db.Column(db.String(30), nullable=False, default="pending", index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<Transaction {self.id} {self.transaction_type} [{self.status}]>"


class ActivityLog(db.Model):
    """Append-only activity trail. Old rows are archival candidates."""

    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    user_role = db.Column(db.String(30), nullable=True)
    activity_type = db.Column(db.String(50), nullable=False)
    entity_type = db.Column(db.String(50), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    def __repr__(self):
        return f"<ActivityLog {self.id} {self.activity_type}>"
