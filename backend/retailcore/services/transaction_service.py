# Overview: Point-of-sale transactions: cart -> committed sale, and its cancellation.
"""
TransactionProcessor

WHY: A sale must either happen completely (transaction, items, stock debits,
price audit) or not at all. All validation that does not need stock runs before
the unit opens; everything else runs inside one atomic unit that holds the row
locks of every stock key in the cart.

CANCELLATION: Compensating action. Stock is credited back with new adjustment
rows (reason SALE_CANCELLED); the original SALE adjustments are never touched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Transaction, TransactionItem
from ..ports import DomainEvent, StockKey
from ..time_utils import utcnow
from ..validation import (
    coerce_choice,
    coerce_date_range,
    coerce_int,
    coerce_optional_int,
    coerce_positive_int,
    coerce_price_cents,
    optional_text,
)
from .concurrency import RetryPolicy, run_atomic
from .events import TRANSACTION_CANCELLED, TRANSACTION_CREATED
from .price_discrepancy import detect
from .stock_ledger import REASON_SALE, REASON_SALE_CANCELLED, StockLedger

logger = logging.getLogger(__name__)


PAYMENT_METHODS = ("CASH", "DEBIT", "TRANSFER", "QRIS")

TRANSACTION_STATUS_COMPLETED = "COMPLETED"
TRANSACTION_STATUS_CANCELLED = "CANCELLED"
TRANSACTION_STATUSES = (TRANSACTION_STATUS_COMPLETED, TRANSACTION_STATUS_CANCELLED)

DOCUMENT_TYPE = "TRANSACTION"
DOCUMENT_PREFIX = "INV"


@dataclass(frozen=True)
class CartItem:
    variant_id: int
    quantity: int
    unit_price_cents: int

    @property
    def subtotal_cents(self) -> int:
        return self.quantity * self.unit_price_cents


def _normalize_items(items) -> list[CartItem]:
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("Transaction must contain at least one item")

    normalized = []
    for index, item in enumerate(items):
        if isinstance(item, CartItem):
            item = {
                "variant_id": item.variant_id,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
            }
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        normalized.append(CartItem(
            variant_id=coerce_positive_int(item.get("variant_id"), f"items[{index}].variant_id"),
            quantity=coerce_positive_int(item.get("quantity"), f"items[{index}].quantity"),
            unit_price_cents=coerce_price_cents(item.get("unit_price_cents"), f"items[{index}].unit_price_cents"),
        ))
    return normalized


@dataclass(frozen=True)
class _Payment:
    method: str
    amount_cents: int
    method2: str | None = None
    amount2_cents: int | None = None

    @property
    def is_split(self) -> bool:
        return self.method2 is not None


def _validate_payment(total_cents: int, method, amount, method2, amount2) -> _Payment:
    method = coerce_choice(method, "payment_method", PAYMENT_METHODS)
    amount = coerce_optional_int(amount, "payment_amount_cents", minimum=0)

    if method2 is None and amount2 is None:
        if amount is None:
            amount = total_cents
        if amount < total_cents:
            raise ValidationError(
                "Payment amount is less than the transaction total",
                {"total_cents": total_cents, "payment_amount_cents": amount},
            )
        return _Payment(method, amount)

    # Split payment
    if method2 is None:
        raise ValidationError("payment_method2 is required when payment_amount2_cents is given")
    method2 = coerce_choice(method2, "payment_method2", PAYMENT_METHODS)
    if amount is None or amount2 is None:
        raise ValidationError("Split payment requires both payment amounts")
    amount2 = coerce_int(amount2, "payment_amount2_cents")
    if amount <= 0 or amount2 <= 0:
        raise ValidationError("Split payment amounts must be greater than zero")
    if method == method2:
        raise ValidationError("Split payment methods must differ")
    if amount + amount2 != total_cents:
        raise ValidationError(
            "Split payment amounts must add up to the transaction total",
            {"total_cents": total_cents, "paid_cents": amount + amount2},
        )
    return _Payment(method, amount, method2, amount2)


class TransactionProcessor:
    def __init__(self, store, ledger: StockLedger, catalog, *, publisher=None, retry: RetryPolicy | None = None):
        self.store = store
        self.ledger = ledger
        self.catalog = catalog
        self.publisher = publisher
        self.retry = retry or RetryPolicy()

    def create_transaction(
        self,
        tenant_id: int,
        branch_id: int,
        items,
        *,
        payment_method: str,
        payment_amount_cents: int | None = None,
        payment_method2: str | None = None,
        payment_amount2_cents: int | None = None,
        discount_cents: int = 0,
        tax_cents: int = 0,
        cashier_id: int | None = None,
        customer_name: str | None = None,
        customer_phone: str | None = None,
        notes: str | None = None,
    ) -> Transaction:
        """
        Persist a sale and debit stock for every line, all or nothing.

        Raises:
            ValidationError: empty cart, bad quantity/price/discount, bad payment
            NotFoundError: a variant unknown to the catalog
            InsufficientStockError: any line exceeds on-hand (nothing is kept)
        """
        branch_id = coerce_positive_int(branch_id, "branch_id")
        cart = _normalize_items(items)
        subtotal = sum(item.subtotal_cents for item in cart)
        discount = coerce_int(discount_cents, "discount_cents", minimum=0)
        tax = coerce_int(tax_cents, "tax_cents", minimum=0)
        if discount > subtotal:
            raise ValidationError("discount_cents cannot exceed the subtotal")
        total = subtotal - discount + tax

        payment = _validate_payment(total, payment_method, payment_amount_cents, payment_method2, payment_amount2_cents)

        catalog_prices = {}
        for item in cart:
            variant = self.catalog.get_variant(tenant_id, item.variant_id)
            if variant is None:
                raise NotFoundError("Variant", item.variant_id)
            catalog_prices[item.variant_id] = variant.price_cents

        customer_name = optional_text(customer_name, "customer_name", max_length=255)
        customer_phone = optional_text(customer_phone, "customer_phone", max_length=64)
        notes = optional_text(notes, "notes")

        def _op(uow):
            self.ledger.lock_keys(uow, [StockKey(tenant_id, item.variant_id, branch_id) for item in cart])

            now = utcnow()
            txn = Transaction(
                tenant_id=tenant_id,
                branch_id=branch_id,
                transaction_number=uow.next_document_number(
                    tenant_id, DOCUMENT_TYPE, DOCUMENT_PREFIX, now.strftime("%Y%m%d")
                ),
                status=TRANSACTION_STATUS_COMPLETED,
                cashier_id=cashier_id,
                customer_name=customer_name,
                customer_phone=customer_phone,
                notes=notes,
                subtotal_cents=subtotal,
                discount_cents=discount,
                tax_cents=tax,
                total_cents=total,
                payment_method=payment.method,
                payment_amount_cents=payment.amount_cents,
                is_split_payment=payment.is_split,
                payment_method2=payment.method2,
                payment_amount2_cents=payment.amount2_cents,
                created_at=now,
            )
            for position, item in enumerate(cart, start=1):
                txn.items.append(TransactionItem(
                    position=position,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    unit_price_cents=item.unit_price_cents,
                    subtotal_cents=item.subtotal_cents,
                ))
                discrepancy = detect(item.variant_id, catalog_prices[item.variant_id], item.unit_price_cents)
                if discrepancy is not None:
                    txn.price_discrepancies.append(discrepancy)
            uow.add(txn)

            # Input order; the first shortfall aborts the whole unit.
            for item in cart:
                self.ledger.debit(
                    tenant_id, item.variant_id, branch_id, item.quantity,
                    reason=REASON_SALE,
                    actor_id=cashier_id,
                    reference_type="TRANSACTION",
                    reference_id=txn.id,
                    uow=uow,
                )

            uow.emit(DomainEvent(TRANSACTION_CREATED, tenant_id, {
                "transaction_id": txn.id,
                "transaction_number": txn.transaction_number,
                "branch_id": branch_id,
                "total_cents": total,
                "price_discrepancies": len(txn.price_discrepancies),
            }))
            return txn

        txn = run_atomic(self.store, _op, publisher=self.publisher, retry=self.retry)
        logger.info("Transaction %s committed (total=%s)", txn.transaction_number, txn.total_cents)
        return txn

    def cancel_transaction(self, tenant_id: int, transaction_id: int, *, actor_id: int | None = None) -> Transaction:
        """Cancel a COMPLETED transaction and credit its items back to the branch."""
        def _op(uow):
            txn = uow.get_transaction(tenant_id, transaction_id, lock=True)
            if txn is None:
                raise NotFoundError("Transaction", transaction_id)
            if txn.status == TRANSACTION_STATUS_CANCELLED:
                raise ConflictError("Transaction is already cancelled")
            if uow.returned_quantities(tenant_id, txn.id):
                raise ConflictError("Transaction has returns and cannot be cancelled")

            self.ledger.lock_keys(uow, [StockKey(tenant_id, item.variant_id, txn.branch_id) for item in txn.items])
            for item in txn.items:
                self.ledger.credit(
                    tenant_id, item.variant_id, txn.branch_id, item.quantity,
                    reason=REASON_SALE_CANCELLED,
                    actor_id=actor_id,
                    reference_type="TRANSACTION",
                    reference_id=txn.id,
                    uow=uow,
                )

            txn.status = TRANSACTION_STATUS_CANCELLED
            txn.cancelled_at = utcnow()
            txn.cancelled_by = actor_id

            uow.emit(DomainEvent(TRANSACTION_CANCELLED, tenant_id, {
                "transaction_id": txn.id,
                "transaction_number": txn.transaction_number,
                "branch_id": txn.branch_id,
            }))
            return txn

        return run_atomic(self.store, _op, publisher=self.publisher, retry=self.retry)

    def get_transaction(self, tenant_id: int, transaction_id: int) -> Transaction:
        with self.store.reading() as uow:
            txn = uow.get_transaction(tenant_id, transaction_id)
        if txn is None:
            raise NotFoundError("Transaction", transaction_id)
        return txn

    def list_transactions(
        self,
        tenant_id: int,
        *,
        branch_id=None,
        status: str | None = None,
        payment_method: str | None = None,
        start_date=None,
        end_date=None,
        limit=100,
    ) -> list[Transaction]:
        """Newest first. A payment method matches either leg of a split payment."""
        branch_id = coerce_optional_int(branch_id, "branch_id", minimum=1)
        if status is not None:
            status = coerce_choice(status, "status", TRANSACTION_STATUSES)
        if payment_method is not None:
            payment_method = coerce_choice(payment_method, "payment_method", PAYMENT_METHODS)
        created_from, created_before = coerce_date_range(start_date, end_date)
        limit = coerce_int(limit, "limit", minimum=1, maximum=1000)

        with self.store.reading() as uow:
            return uow.list_transactions(
                tenant_id,
                branch_id=branch_id,
                status=status,
                payment_method=payment_method,
                created_from=created_from,
                created_before=created_before,
                limit=limit,
            )
