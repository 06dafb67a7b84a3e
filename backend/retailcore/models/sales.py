from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Transaction(db.Model):
    """
    Committed point-of-sale transaction.

    Written once, together with its items and the stock debits, inside a single
    unit. Afterwards the only permitted change is COMPLETED -> CANCELLED, which
    is a compensating action and never rewrites stock history.

    SPLIT PAYMENT: payment_amount_cents + payment_amount2_cents == total_cents
    and payment_method != payment_method2.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "transaction_number", name="uq_transactions_tenant_number"),
        db.Index("ix_transactions_tenant_branch_created", "tenant_id", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)

    # Human-readable number (e.g., "INV-20261018-0001")
    transaction_number = db.Column(db.String(64), nullable=False)

    # COMPLETED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)

    cashier_id = db.Column(db.Integer, nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    # CASH, DEBIT, TRANSFER, QRIS
    payment_method = db.Column(db.String(16), nullable=False)
    payment_amount_cents = db.Column(db.Integer, nullable=False)
    is_split_payment = db.Column(db.Boolean, nullable=False, default=False)
    payment_method2 = db.Column(db.String(16), nullable=True)
    payment_amount2_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TransactionItem.position",
    )
    price_discrepancies = db.relationship(
        "PriceDiscrepancy",
        backref="transaction",
        lazy=True,
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def quantity_sold(self, variant_id: int) -> int:
        return sum(item.quantity for item in self.items if item.variant_id == variant_id)

    def lines_for(self, variant_id: int) -> list:
        """Sale lines carrying this variant, in line order."""
        return sorted(
            (item for item in self.items if item.variant_id == variant_id),
            key=lambda item: item.position,
        )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "transaction_number": self.transaction_number,
            "status": self.status,
            "cashier_id": self.cashier_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_amount_cents": self.payment_amount_cents,
            "is_split_payment": self.is_split_payment,
            "payment_method2": self.payment_method2,
            "payment_amount2_cents": self.payment_amount2_cents,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by": self.cancelled_by,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["price_discrepancies"] = [d.to_dict() for d in self.price_discrepancies]
        return data


class TransactionItem(db.Model):
    """Line item of a Transaction, in cart order."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_transaction_items_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    variant_id = db.Column(db.Integer, nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "position": self.position,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class PriceDiscrepancy(db.Model):
    """
    Audit record: a variant was sold at a price other than its catalog price.

    Informational only. Recording one never blocks or alters the sale.
    """
    __tablename__ = "price_discrepancies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, nullable=False, index=True)

    catalog_price_cents = db.Column(db.Integer, nullable=False)
    sold_price_cents = db.Column(db.Integer, nullable=False)
    # sold - catalog (negative means sold below catalog)
    difference_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "variant_id": self.variant_id,
            "catalog_price_cents": self.catalog_price_cents,
            "sold_price_cents": self.sold_price_cents,
            "difference_cents": self.difference_cents,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
