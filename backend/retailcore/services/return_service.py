# Overview: Customer returns against prior transactions, with approval and refunds.
"""
ReturnWorkflow

LIFECYCLE:
1. PENDING: requested; waits for a manager when the tenant policy requires approval
2. APPROVED: stock credited back to the transaction's branch, Refund produced (terminal)
3. REJECTED: declined; no stock moved (terminal)

INVARIANT: For each (transaction, variant) the quantity across all non-rejected
returns never exceeds the quantity sold. RequestReturn holds the transaction's
row lock while it checks and writes, so concurrent requests against the same
transaction serialize and the later one sees the earlier one's items.

Return policy (enabled, approval required, deadline) is a value handed in by
the caller or read from the PolicyProvider; nothing here is a constant.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import timedelta

from ..errors import ConflictError, DeadlineExceededError, NotFoundError, ValidationError
from ..models import Refund, Return, ReturnItem
from ..ports import DomainEvent, ReturnPolicy, StockKey
from ..time_utils import as_utc_naive, utcnow
from ..validation import coerce_choice, coerce_positive_int, optional_text
from .concurrency import RetryPolicy, run_atomic
from .events import RETURN_DECIDED, RETURN_REQUESTED
from .stock_ledger import REASON_RETURN, StockLedger
from .transaction_service import PAYMENT_METHODS, TRANSACTION_STATUS_CANCELLED

logger = logging.getLogger(__name__)


RETURN_STATUS_PENDING = "PENDING"
RETURN_STATUS_APPROVED = "APPROVED"
RETURN_STATUS_REJECTED = "REJECTED"
RETURN_STATUSES = (RETURN_STATUS_PENDING, RETURN_STATUS_APPROVED, RETURN_STATUS_REJECTED)

RETURN_REASONS = (
    "CUSTOMER_REQUEST",
    "WRONG_SIZE",
    "WRONG_ITEM",
    "DEFECTIVE",
    "EXPIRED",
    "OTHER",
)

DOCUMENT_TYPE = "RETURN"
DOCUMENT_PREFIX = "RET"


def _normalize_return_items(items) -> "OrderedDict[int, int]":
    """variant_id -> requested quantity, duplicates summed, request order kept."""
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("Return must contain at least one item")
    requested: OrderedDict[int, int] = OrderedDict()
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        variant_id = coerce_positive_int(item.get("variant_id"), f"items[{index}].variant_id")
        quantity = coerce_positive_int(item.get("quantity"), f"items[{index}].quantity")
        requested[variant_id] = requested.get(variant_id, 0) + quantity
    return requested


class ReturnWorkflow:
    def __init__(
        self,
        store,
        ledger: StockLedger,
        policy_provider,
        *,
        publisher=None,
        retry: RetryPolicy | None = None,
    ):
        self.store = store
        self.ledger = ledger
        self.policy_provider = policy_provider
        self.publisher = publisher
        self.retry = retry or RetryPolicy()

    def _run(self, func):
        return run_atomic(self.store, func, publisher=self.publisher, retry=self.retry)

    @staticmethod
    def _decided_event(ret: Return) -> DomainEvent:
        return DomainEvent(RETURN_DECIDED, ret.tenant_id, {
            "return_id": ret.id,
            "return_number": ret.return_number,
            "transaction_id": ret.transaction_id,
            "status": ret.status,
            "refund_amount_cents": ret.refund_amount_cents,
        })

    def request_return(
        self,
        tenant_id: int,
        transaction_id: int,
        items,
        reason: str,
        *,
        policy: ReturnPolicy | None = None,
        refund_method: str | None = None,
        requested_by: int | None = None,
        notes: str | None = None,
    ) -> Return:
        """
        Create a return for part of a transaction.

        Raises:
            NotFoundError: unknown transaction
            ValidationError: returns disabled, cancelled transaction, variant not
                sold on the transaction, quantity <= 0 or above what is left to return
            DeadlineExceededError: the return window has passed
        """
        if policy is None:
            policy = self.policy_provider.return_policy(tenant_id)
        if not policy.returns_enabled:
            raise ValidationError("Returns are disabled for this tenant")

        requested = _normalize_return_items(items)
        reason = coerce_choice(reason, "reason", RETURN_REASONS)
        if refund_method is not None:
            refund_method = coerce_choice(refund_method, "refund_method", PAYMENT_METHODS)
        notes = optional_text(notes, "notes")

        def _op(uow):
            txn = uow.get_transaction(tenant_id, transaction_id, lock=True)
            if txn is None:
                raise NotFoundError("Transaction", transaction_id)
            if txn.status == TRANSACTION_STATUS_CANCELLED:
                raise ValidationError("Cannot return items from a cancelled transaction")

            now = utcnow()
            deadline = as_utc_naive(txn.created_at) + timedelta(days=policy.return_deadline_days)
            if now > deadline:
                raise DeadlineExceededError(
                    f"Return window of {policy.return_deadline_days} days has passed",
                    {"transaction_id": txn.id, "return_deadline_days": policy.return_deadline_days},
                )

            taken_by_line = uow.returned_line_quantities(tenant_id, txn.id)
            return_items = []
            for variant_id, quantity in requested.items():
                lines = txn.lines_for(variant_id)
                if not lines:
                    raise ValidationError(
                        f"Variant {variant_id} is not part of transaction {txn.transaction_number}",
                        {"variant_id": variant_id},
                    )
                open_lines = [(line, line.quantity - taken_by_line.get(line.id, 0)) for line in lines]
                returnable = sum(max(left, 0) for _, left in open_lines)
                if quantity > returnable:
                    raise ValidationError(
                        f"Return quantity for variant {variant_id} exceeds the returnable quantity",
                        {
                            "variant_id": variant_id,
                            "sold": txn.quantity_sold(variant_id),
                            "returnable": returnable,
                            "requested": quantity,
                        },
                    )

                # Units come back off the earliest lines first, at each line's own price
                remaining = quantity
                for line, left in open_lines:
                    take = min(remaining, left)
                    if take <= 0:
                        continue
                    return_items.append(ReturnItem(
                        transaction_item_id=line.id,
                        variant_id=variant_id,
                        quantity=take,
                        unit_price_cents=line.unit_price_cents,
                        subtotal_cents=line.unit_price_cents * take,
                    ))
                    remaining -= take
                    if remaining == 0:
                        break

            # Line prices are pre-discount; never refund more than the sale collected
            refunded = sum(
                r.refund_amount_cents
                for r in uow.list_returns(tenant_id, transaction_id=txn.id)
                if r.status != RETURN_STATUS_REJECTED
            )
            refund_amount = min(
                sum(item.subtotal_cents for item in return_items),
                max(txn.total_cents - refunded, 0),
            )

            ret = Return(
                tenant_id=tenant_id,
                return_number=uow.next_document_number(
                    tenant_id, DOCUMENT_TYPE, DOCUMENT_PREFIX, now.strftime("%Y%m%d")
                ),
                transaction_id=txn.id,
                branch_id=txn.branch_id,
                reason=reason,
                notes=notes,
                status=RETURN_STATUS_PENDING,
                refund_method=refund_method or txn.payment_method,
                refund_amount_cents=refund_amount,
                requested_by=requested_by,
                created_at=now,
                items=return_items,
            )
            uow.add(ret)
            uow.emit(DomainEvent(RETURN_REQUESTED, tenant_id, {
                "return_id": ret.id,
                "return_number": ret.return_number,
                "transaction_id": txn.id,
                "refund_amount_cents": ret.refund_amount_cents,
                "requires_approval": policy.return_requires_approval,
            }))

            if not policy.return_requires_approval:
                self._approve_locked(uow, ret, decided_by=requested_by)
            return ret

        ret = self._run(_op)
        logger.info("Return %s created with status %s", ret.return_number, ret.status)
        return ret

    def _approve_locked(self, uow, ret: Return, *, decided_by: int | None) -> None:
        units: dict[int, int] = OrderedDict()
        for item in ret.items:
            units[item.variant_id] = units.get(item.variant_id, 0) + item.quantity

        self.ledger.lock_keys(uow, [StockKey(ret.tenant_id, variant_id, ret.branch_id) for variant_id in units])
        for variant_id, quantity in units.items():
            self.ledger.credit(
                ret.tenant_id, variant_id, ret.branch_id, quantity,
                reason=REASON_RETURN,
                actor_id=decided_by,
                reference_type="RETURN",
                reference_id=ret.id,
                uow=uow,
            )

        now = utcnow()
        refund = Refund(
            tenant_id=ret.tenant_id,
            return_id=ret.id,
            method=ret.refund_method,
            amount_cents=ret.refund_amount_cents,
            created_at=now,
        )
        ret.refund = refund
        uow.add(refund)

        ret.status = RETURN_STATUS_APPROVED
        ret.decided_by = decided_by
        ret.decided_at = now
        uow.emit(self._decided_event(ret))

    def _locked_pending(self, uow, tenant_id: int, return_id: int) -> Return:
        ret = uow.get_return(tenant_id, return_id, lock=True)
        if ret is None:
            raise NotFoundError("Return", return_id)
        if ret.status != RETURN_STATUS_PENDING:
            raise ConflictError(f"Cannot decide return in {ret.status} status")
        return ret

    def approve_return(self, tenant_id: int, return_id: int, *, decided_by: int | None = None) -> Return:
        """Credit returned stock to the transaction's branch and issue the refund."""
        def _op(uow):
            ret = self._locked_pending(uow, tenant_id, return_id)
            self._approve_locked(uow, ret, decided_by=decided_by)
            return ret

        return self._run(_op)

    def reject_return(
        self,
        tenant_id: int,
        return_id: int,
        *,
        reason: str | None = None,
        decided_by: int | None = None,
    ) -> Return:
        reason = optional_text(reason, "reason")

        def _op(uow):
            ret = self._locked_pending(uow, tenant_id, return_id)
            ret.status = RETURN_STATUS_REJECTED
            ret.rejection_reason = reason
            ret.decided_by = decided_by
            ret.decided_at = utcnow()
            uow.emit(self._decided_event(ret))
            return ret

        return self._run(_op)

    def get_return(self, tenant_id: int, return_id: int) -> Return:
        with self.store.reading() as uow:
            ret = uow.get_return(tenant_id, return_id)
        if ret is None:
            raise NotFoundError("Return", return_id)
        return ret

    def list_returns(self, tenant_id: int, *, status: str | None = None, transaction_id: int | None = None) -> list[Return]:
        if status is not None:
            status = coerce_choice(status, "status", RETURN_STATUSES)
        with self.store.reading() as uow:
            return uow.list_returns(tenant_id, status=status, transaction_id=transaction_id)

    def stats(self, tenant_id: int) -> dict:
        """Counts per status and the total refunded on approved returns."""
        counts = {status: 0 for status in RETURN_STATUSES}
        refunded = 0
        for ret in self.list_returns(tenant_id):
            counts[ret.status] = counts.get(ret.status, 0) + 1
            if ret.status == RETURN_STATUS_APPROVED:
                refunded += ret.refund_amount_cents
        return {
            "total": sum(counts.values()),
            "pending": counts[RETURN_STATUS_PENDING],
            "approved": counts[RETURN_STATUS_APPROVED],
            "rejected": counts[RETURN_STATUS_REJECTED],
            "refunded_cents": refunded,
        }
