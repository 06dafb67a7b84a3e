from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Stock(db.Model):
    """
    On-hand quantity of one variant at one branch.

    MULTI-TENANT: Rows are scoped by tenant_id; variant and branch ids come from
    the external catalog and branch provisioning collaborators.

    OWNERSHIP: quantity is written only by StockLedger. Every write appends a
    StockAdjustment in the same unit, so
        initial_quantity + SUM(stock_adjustments.delta) == quantity
    holds at every commit.

    Rows are never deleted, only driven to zero.
    """
    __tablename__ = "stocks"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "variant_id", "branch_id", name="uq_stocks_tenant_variant_branch"),
        db.CheckConstraint("quantity >= 0", name="ck_stocks_quantity_non_negative"),
        db.CheckConstraint("min_stock >= 0", name="ck_stocks_min_stock_non_negative"),
        db.Index("ix_stocks_tenant_branch", "tenant_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    variant_id = db.Column(db.Integer, nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    initial_quantity = db.Column(db.Integer, nullable=False, default=0)

    # Low-stock alert threshold (0 disables the alert)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low(self) -> bool:
        return bool(self.min_stock) and self.quantity < self.min_stock

    def __repr__(self) -> str:
        return (
            f"<Stock tenant_id={self.tenant_id} variant_id={self.variant_id} "
            f"branch_id={self.branch_id} quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "variant_id": self.variant_id,
            "branch_id": self.branch_id,
            "quantity": self.quantity,
            "initial_quantity": self.initial_quantity,
            "min_stock": self.min_stock,
            "is_low": self.is_low,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockAdjustment(db.Model):
    """
    Append-only stock movement log.

    One row per quantity change, whether it came from a sale, a transfer, a
    return, a cancellation or a manual correction. Never updated or deleted.
    reference_type/reference_id point at the document that caused the move.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adj_key_created", "tenant_id", "variant_id", "branch_id", "created_at"),
        db.Index("ix_stock_adj_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    stock_id = db.Column(db.Integer, db.ForeignKey("stocks.id"), nullable=True, index=True)
    variant_id = db.Column(db.Integer, nullable=False)
    branch_id = db.Column(db.Integer, nullable=False)

    delta = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    # SALE, TRANSFER_OUT, TRANSFER_IN, RETURN, SALE_CANCELLED, or a manual reason
    reason = db.Column(db.String(32), nullable=False, index=True)
    actor_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    stock = db.relationship("Stock", backref=db.backref("adjustments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "variant_id": self.variant_id,
            "branch_id": self.branch_id,
            "delta": self.delta,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reason": self.reason,
            "actor_id": self.actor_id,
            "note": self.note,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }
