from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class StockTransfer(db.Model):
    """
    Request to move stock of one variant between two branches of a tenant.

    LIFECYCLE:
    1. PENDING: requested; no stock has moved
    2. APPROVED: source debited and destination credited in one unit (terminal)
    3. REJECTED: declined; no stock moved (terminal)

    Approval re-validates source stock. If the source ran short in the
    meantime the transfer stays PENDING and can be approved later.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "transfer_number", name="uq_stock_transfers_tenant_number"),
        db.CheckConstraint("from_branch_id <> to_branch_id", name="ck_stock_transfers_distinct_branches"),
        db.CheckConstraint("quantity > 0", name="ck_stock_transfers_quantity_positive"),
        db.Index("ix_stock_transfers_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    transfer_number = db.Column(db.String(64), nullable=False)

    variant_id = db.Column(db.Integer, nullable=False, index=True)
    from_branch_id = db.Column(db.Integer, nullable=False, index=True)
    to_branch_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # PENDING, APPROVED, REJECTED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    notes = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    requested_by = db.Column(db.Integer, nullable=True)
    decided_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockTransfer id={self.id} number={self.transfer_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "transfer_number": self.transfer_number,
            "variant_id": self.variant_id,
            "from_branch_id": self.from_branch_id,
            "to_branch_id": self.to_branch_id,
            "quantity": self.quantity,
            "status": self.status,
            "notes": self.notes,
            "rejection_reason": self.rejection_reason,
            "requested_by": self.requested_by,
            "decided_by": self.decided_by,
            "created_at": to_utc_z(self.created_at),
            "decided_at": to_utc_z(self.decided_at) if self.decided_at else None,
        }


class Return(db.Model):
    """
    Customer return against a prior Transaction.

    LIFECYCLE:
    1. PENDING: requested; waiting for a manager when tenant policy requires approval
    2. APPROVED: stock credited back at the transaction's branch, refund issued (terminal)
    3. REJECTED: declined; no stock moved (terminal)

    Quantities of non-rejected returns never exceed what was sold, per variant.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "return_number", name="uq_returns_tenant_number"),
        db.Index("ix_returns_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    return_number = db.Column(db.String(64), nullable=False)

    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)

    # CUSTOMER_REQUEST, WRONG_SIZE, WRONG_ITEM, DEFECTIVE, EXPIRED, OTHER
    reason = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    # PENDING, APPROVED, REJECTED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    refund_method = db.Column(db.String(16), nullable=False)
    refund_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    requested_by = db.Column(db.Integer, nullable=True)
    decided_by = db.Column(db.Integer, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    transaction = db.relationship("Transaction", backref=db.backref("returns", lazy=True))
    items = db.relationship("ReturnItem", backref="return_doc", lazy=True, cascade="all, delete-orphan")
    refund = db.relationship("Refund", backref="return_doc", uselist=False, cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Return id={self.id} number={self.return_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "return_number": self.return_number,
            "transaction_id": self.transaction_id,
            "branch_id": self.branch_id,
            "reason": self.reason,
            "notes": self.notes,
            "status": self.status,
            "refund_method": self.refund_method,
            "refund_amount_cents": self.refund_amount_cents,
            "requested_by": self.requested_by,
            "decided_by": self.decided_by,
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
            "decided_at": to_utc_z(self.decided_at) if self.decided_at else None,
            "items": [item.to_dict() for item in self.items],
            "refund": self.refund.to_dict() if self.refund else None,
        }


class ReturnItem(db.Model):
    """Returned units from one sale line, priced at what was charged on that line."""
    __tablename__ = "return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    # The sale line the units came back from; one ReturnItem per line touched
    transaction_item_id = db.Column(db.Integer, db.ForeignKey("transaction_items.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "transaction_item_id": self.transaction_item_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class Refund(db.Model):
    """Money handed back for an approved Return."""
    __tablename__ = "refunds"
    __table_args__ = (
        db.UniqueConstraint("return_id", name="uq_refunds_return"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False)
    method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Per-tenant, per-day document counters.

    WHY: Human-readable numbers (INV-/TRF-/RET-YYYYMMDD-NNNN) must be unique
    without relying on random suffixes. The counter row is locked while a number
    is allocated, inside the same unit as the document that uses it.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_type", "day", name="uq_document_sequences_tenant_type_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    day = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
