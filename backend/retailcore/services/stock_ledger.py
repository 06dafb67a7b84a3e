# Overview: Sole writer of per-(variant, branch) stock quantities.
"""
StockLedger

INVARIANTS:
- Stock.quantity >= 0 after every committed unit.
- Every quantity change appends exactly one StockAdjustment in the same unit,
  so initial_quantity + SUM(delta) == quantity.
- Mutations of one key are strictly serialized by the key's row lock;
  different keys never block each other.

Every mutator takes an optional uow. With uow=None the call runs as its own
atomic unit (with retry and post-commit events); inside a workflow the caller
passes its unit and the ledger joins it.
"""
from __future__ import annotations

import logging

from ..errors import InsufficientStockError, ValidationError
from ..models import StockAdjustment
from ..ports import DomainEvent, StockKey
from ..time_utils import utcnow
from ..validation import (
    coerce_choice,
    coerce_date_range,
    coerce_int,
    coerce_optional_int,
    coerce_positive_int,
    optional_text,
)
from .concurrency import RetryPolicy, run_atomic
from .events import STOCK_CHANGED, STOCK_LOW

logger = logging.getLogger(__name__)


# Manual corrections (AdjustStock)
MANUAL_REASONS = (
    "STOCK_OPNAME",
    "DAMAGED",
    "LOST",
    "SUPPLIER_RETURN",
    "INPUT_ERROR",
    "RESTOCK",
    "OTHER",
)

# Written by workflows only
REASON_SALE = "SALE"
REASON_SALE_CANCELLED = "SALE_CANCELLED"
REASON_TRANSFER_OUT = "TRANSFER_OUT"
REASON_TRANSFER_IN = "TRANSFER_IN"
REASON_RETURN = "RETURN"
SYSTEM_REASONS = (
    REASON_SALE,
    REASON_SALE_CANCELLED,
    REASON_TRANSFER_OUT,
    REASON_TRANSFER_IN,
    REASON_RETURN,
)

ALL_REASONS = MANUAL_REASONS + SYSTEM_REASONS


class StockLedger:
    def __init__(self, store, *, publisher=None, retry: RetryPolicy | None = None):
        self.store = store
        self.publisher = publisher
        self.retry = retry or RetryPolicy()

    def _run(self, uow, func):
        if uow is not None:
            return func(uow)
        return run_atomic(self.store, func, publisher=self.publisher, retry=self.retry)

    @staticmethod
    def lock_keys(uow, keys) -> None:
        """Lock stock keys in global order so multi-key units cannot deadlock."""
        for key in sorted(set(keys)):
            uow.lock_stock(key)

    # -- mutations ------------------------------------------------------------

    def _apply(
        self,
        uow,
        key: StockKey,
        delta: int,
        *,
        reason: str,
        actor_id: int | None = None,
        note: str | None = None,
        reference_type: str | None = None,
        reference_id: int | None = None,
    ) -> StockAdjustment:
        stock = uow.lock_stock(key)
        if stock is None:
            # A missing row holds nothing.
            if delta < 0:
                raise InsufficientStockError(
                    variant_id=key.variant_id,
                    branch_id=key.branch_id,
                    on_hand=0,
                    requested=-delta,
                )
            stock = uow.create_stock(key)

        previous = stock.quantity
        new_quantity = previous + delta
        if new_quantity < 0:
            raise InsufficientStockError(
                variant_id=key.variant_id,
                branch_id=key.branch_id,
                on_hand=previous,
                requested=-delta,
            )

        stock.quantity = new_quantity
        stock.updated_at = utcnow()

        adjustment = uow.add(StockAdjustment(
            tenant_id=key.tenant_id,
            stock_id=stock.id,
            variant_id=key.variant_id,
            branch_id=key.branch_id,
            delta=delta,
            previous_quantity=previous,
            new_quantity=new_quantity,
            reason=reason,
            actor_id=actor_id,
            note=note,
            reference_type=reference_type,
            reference_id=reference_id,
            created_at=utcnow(),
        ))

        payload = {
            "variant_id": key.variant_id,
            "branch_id": key.branch_id,
            "previous_quantity": previous,
            "quantity": new_quantity,
            "delta": delta,
            "reason": reason,
        }
        uow.emit(DomainEvent(STOCK_CHANGED, key.tenant_id, payload))
        if stock.is_low:
            uow.emit(DomainEvent(STOCK_LOW, key.tenant_id, dict(payload, min_stock=stock.min_stock)))

        return adjustment

    def debit(
        self,
        tenant_id: int,
        variant_id: int,
        branch_id: int,
        quantity: int,
        *,
        reason: str = REASON_SALE,
        actor_id: int | None = None,
        note: str | None = None,
        reference_type: str | None = None,
        reference_id: int | None = None,
        uow=None,
    ) -> StockAdjustment:
        """Remove quantity units. InsufficientStockError if on-hand < quantity."""
        quantity = coerce_positive_int(quantity, "quantity")
        reason = coerce_choice(reason, "reason", ALL_REASONS)
        key = StockKey(tenant_id, variant_id, branch_id)

        return self._run(uow, lambda u: self._apply(
            u, key, -quantity,
            reason=reason,
            actor_id=actor_id,
            note=note,
            reference_type=reference_type,
            reference_id=reference_id,
        ))

    def credit(
        self,
        tenant_id: int,
        variant_id: int,
        branch_id: int,
        quantity: int,
        *,
        reason: str = "RESTOCK",
        actor_id: int | None = None,
        note: str | None = None,
        reference_type: str | None = None,
        reference_id: int | None = None,
        uow=None,
    ) -> StockAdjustment:
        """Add quantity units, creating the stock row on first use."""
        quantity = coerce_positive_int(quantity, "quantity")
        reason = coerce_choice(reason, "reason", ALL_REASONS)
        key = StockKey(tenant_id, variant_id, branch_id)

        return self._run(uow, lambda u: self._apply(
            u, key, quantity,
            reason=reason,
            actor_id=actor_id,
            note=note,
            reference_type=reference_type,
            reference_id=reference_id,
        ))

    def adjust(
        self,
        tenant_id: int,
        variant_id: int,
        branch_id: int,
        delta: int,
        reason: str,
        *,
        actor_id: int | None = None,
        note: str | None = None,
        uow=None,
    ) -> StockAdjustment:
        """
        Manual correction by a signed delta.

        Only MANUAL_REASONS are accepted; system reasons belong to the workflows
        that own the matching documents.
        """
        delta = coerce_int(delta, "delta")
        if delta == 0:
            raise ValidationError("delta must be non-zero")
        reason = coerce_choice(reason, "reason", MANUAL_REASONS)
        note = optional_text(note, "note", max_length=255)
        key = StockKey(tenant_id, variant_id, branch_id)

        return self._run(uow, lambda u: self._apply(
            u, key, delta,
            reason=reason,
            actor_id=actor_id,
            note=note,
            reference_type="MANUAL",
        ))

    def set_min_stock(self, tenant_id: int, variant_id: int, branch_id: int, min_stock: int, *, uow=None):
        """Set the low-stock alert threshold (0 disables it). Creates the row if needed."""
        min_stock = coerce_int(min_stock, "min_stock", minimum=0)
        key = StockKey(tenant_id, variant_id, branch_id)

        def _op(u):
            stock = u.lock_stock(key) or u.create_stock(key)
            stock.min_stock = min_stock
            stock.updated_at = utcnow()
            if stock.is_low:
                u.emit(DomainEvent(STOCK_LOW, tenant_id, {
                    "variant_id": variant_id,
                    "branch_id": branch_id,
                    "quantity": stock.quantity,
                    "min_stock": min_stock,
                }))
            return stock

        return self._run(uow, _op)

    # -- reads ----------------------------------------------------------------

    def read(self, tenant_id: int, variant_id: int, branch_id: int) -> int:
        """Current on-hand. Display only: the value may be stale by the time it is used."""
        with self.store.reading() as u:
            stock = u.get_stock(StockKey(tenant_id, variant_id, branch_id))
            return stock.quantity if stock is not None else 0

    def get_stock(self, tenant_id: int, variant_id: int, branch_id: int):
        with self.store.reading() as u:
            return u.get_stock(StockKey(tenant_id, variant_id, branch_id))

    def history(self, tenant_id: int, variant_id: int, branch_id: int, *, limit: int = 100) -> list:
        """Adjustment log for one key, newest first."""
        limit = coerce_int(limit, "limit", minimum=1, maximum=1000)
        with self.store.reading() as u:
            return u.list_adjustments(StockKey(tenant_id, variant_id, branch_id), limit=limit)

    def verify(self, tenant_id: int, variant_id: int, branch_id: int) -> dict:
        """Replay the adjustment log for one key against the stored quantity."""
        key = StockKey(tenant_id, variant_id, branch_id)
        with self.store.reading() as u:
            stock = u.get_stock(key)
            adjustments = u.list_adjustments(key, limit=None)

        initial = stock.initial_quantity if stock is not None else 0
        quantity = stock.quantity if stock is not None else 0
        replayed = initial + sum(adj.delta for adj in adjustments)
        consistent = replayed == quantity
        if not consistent:
            logger.error(
                "Ledger mismatch for %s: stored=%s replayed=%s",
                key, quantity, replayed,
            )
        return {
            "variant_id": variant_id,
            "branch_id": branch_id,
            "quantity": quantity,
            "initial_quantity": initial,
            "adjustment_count": len(adjustments),
            "replayed_quantity": replayed,
            "consistent": consistent,
        }

    def search_adjustments(
        self,
        tenant_id: int,
        *,
        branch_id=None,
        variant_id=None,
        reason: str | None = None,
        start_date=None,
        end_date=None,
        page=1,
        limit=50,
    ) -> dict:
        """Tenant-wide adjustment log, newest first, one page at a time."""
        branch_id = coerce_optional_int(branch_id, "branch_id", minimum=1)
        variant_id = coerce_optional_int(variant_id, "variant_id", minimum=1)
        if reason is not None:
            reason = coerce_choice(reason, "reason", ALL_REASONS)
        created_from, created_before = coerce_date_range(start_date, end_date)
        page = coerce_int(page, "page", minimum=1)
        limit = coerce_int(limit, "limit", minimum=1, maximum=500)

        with self.store.reading() as u:
            rows, total = u.search_adjustments(
                tenant_id,
                branch_id=branch_id,
                variant_id=variant_id,
                reason=reason,
                created_from=created_from,
                created_before=created_before,
                limit=limit,
                offset=(page - 1) * limit,
            )
        return {
            "adjustments": rows,
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        }

    def low_stock(self, tenant_id: int, *, branch_id=None) -> list:
        """Rows with an alert threshold set and on-hand below it."""
        branch_id = coerce_optional_int(branch_id, "branch_id", minimum=1)
        with self.store.reading() as u:
            return u.list_low_stock(tenant_id, branch_id=branch_id)
