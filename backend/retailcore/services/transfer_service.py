# Overview: Inter-branch stock transfer workflow.
"""
TransferWorkflow

LIFECYCLE:
1. PENDING: requested; nothing has moved
2. APPROVED: source debited and destination credited in the same unit (terminal)
3. REJECTED: declined (terminal)

Source stock is NOT reserved at request time. Approval re-validates it under
the row lock; when the source ran short the approval fails with
InsufficientStockError, the unit rolls back and the transfer stays PENDING so
it can be approved again after a restock.
"""
from __future__ import annotations

import logging

from ..errors import ConflictError, NotFoundError
from ..models import StockTransfer
from ..ports import DomainEvent, StockKey
from ..time_utils import utcnow
from ..validation import coerce_choice, coerce_optional_int, coerce_positive_int, optional_text
from .concurrency import RetryPolicy, run_atomic
from .events import TRANSFER_DECIDED, TRANSFER_REQUESTED
from .stock_ledger import REASON_TRANSFER_IN, REASON_TRANSFER_OUT, StockLedger

logger = logging.getLogger(__name__)


# Transfer status constants
TRANSFER_STATUS_PENDING = "PENDING"
TRANSFER_STATUS_APPROVED = "APPROVED"
TRANSFER_STATUS_REJECTED = "REJECTED"
TRANSFER_STATUSES = (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_APPROVED, TRANSFER_STATUS_REJECTED)

DOCUMENT_TYPE = "TRANSFER"
DOCUMENT_PREFIX = "TRF"


class TransferWorkflow:
    def __init__(self, store, ledger: StockLedger, catalog, *, publisher=None, retry: RetryPolicy | None = None):
        self.store = store
        self.ledger = ledger
        self.catalog = catalog
        self.publisher = publisher
        self.retry = retry or RetryPolicy()

    def _run(self, func):
        return run_atomic(self.store, func, publisher=self.publisher, retry=self.retry)

    @staticmethod
    def _decided_event(transfer: StockTransfer) -> DomainEvent:
        return DomainEvent(TRANSFER_DECIDED, transfer.tenant_id, {
            "transfer_id": transfer.id,
            "transfer_number": transfer.transfer_number,
            "status": transfer.status,
            "variant_id": transfer.variant_id,
            "from_branch_id": transfer.from_branch_id,
            "to_branch_id": transfer.to_branch_id,
            "quantity": transfer.quantity,
        })

    def request_transfer(
        self,
        tenant_id: int,
        variant_id: int,
        from_branch_id: int,
        to_branch_id: int,
        quantity: int,
        *,
        requested_by: int | None = None,
        notes: str | None = None,
    ) -> StockTransfer:
        """
        Create a PENDING transfer.

        Raises:
            ConflictError: source and destination are the same branch
            ValidationError: quantity <= 0
            NotFoundError: variant unknown to the catalog
        """
        if from_branch_id == to_branch_id:
            raise ConflictError("Cannot transfer to the same branch")
        quantity = coerce_positive_int(quantity, "quantity")
        if self.catalog.get_variant(tenant_id, variant_id) is None:
            raise NotFoundError("Variant", variant_id)
        notes = optional_text(notes, "notes")

        def _op(uow):
            now = utcnow()
            transfer = uow.add(StockTransfer(
                tenant_id=tenant_id,
                transfer_number=uow.next_document_number(
                    tenant_id, DOCUMENT_TYPE, DOCUMENT_PREFIX, now.strftime("%Y%m%d")
                ),
                variant_id=variant_id,
                from_branch_id=from_branch_id,
                to_branch_id=to_branch_id,
                quantity=quantity,
                status=TRANSFER_STATUS_PENDING,
                notes=notes,
                requested_by=requested_by,
                created_at=now,
            ))
            uow.emit(DomainEvent(TRANSFER_REQUESTED, tenant_id, {
                "transfer_id": transfer.id,
                "transfer_number": transfer.transfer_number,
                "variant_id": variant_id,
                "from_branch_id": from_branch_id,
                "to_branch_id": to_branch_id,
                "quantity": quantity,
            }))
            return transfer

        return self._run(_op)

    def _locked_pending(self, uow, tenant_id: int, transfer_id: int) -> StockTransfer:
        transfer = uow.get_transfer(tenant_id, transfer_id, lock=True)
        if transfer is None:
            raise NotFoundError("Transfer", transfer_id)
        if transfer.status != TRANSFER_STATUS_PENDING:
            raise ConflictError(f"Cannot decide transfer in {transfer.status} status")
        return transfer

    def approve_transfer(self, tenant_id: int, transfer_id: int, *, decided_by: int | None = None) -> StockTransfer:
        """
        Move the stock: debit source, credit destination, mark APPROVED.

        On InsufficientStockError nothing changes and the transfer remains PENDING.
        """
        def _op(uow):
            transfer = self._locked_pending(uow, tenant_id, transfer_id)

            self.ledger.lock_keys(uow, [
                StockKey(tenant_id, transfer.variant_id, transfer.from_branch_id),
                StockKey(tenant_id, transfer.variant_id, transfer.to_branch_id),
            ])
            self.ledger.debit(
                tenant_id, transfer.variant_id, transfer.from_branch_id, transfer.quantity,
                reason=REASON_TRANSFER_OUT,
                actor_id=decided_by,
                reference_type="TRANSFER",
                reference_id=transfer.id,
                uow=uow,
            )
            self.ledger.credit(
                tenant_id, transfer.variant_id, transfer.to_branch_id, transfer.quantity,
                reason=REASON_TRANSFER_IN,
                actor_id=decided_by,
                reference_type="TRANSFER",
                reference_id=transfer.id,
                uow=uow,
            )

            transfer.status = TRANSFER_STATUS_APPROVED
            transfer.decided_by = decided_by
            transfer.decided_at = utcnow()
            uow.emit(self._decided_event(transfer))
            return transfer

        transfer = self._run(_op)
        logger.info("Transfer %s approved", transfer.transfer_number)
        return transfer

    def reject_transfer(
        self,
        tenant_id: int,
        transfer_id: int,
        *,
        reason: str | None = None,
        decided_by: int | None = None,
    ) -> StockTransfer:
        reason = optional_text(reason, "reason")

        def _op(uow):
            transfer = self._locked_pending(uow, tenant_id, transfer_id)
            transfer.status = TRANSFER_STATUS_REJECTED
            transfer.rejection_reason = reason
            transfer.decided_by = decided_by
            transfer.decided_at = utcnow()
            uow.emit(self._decided_event(transfer))
            return transfer

        return self._run(_op)

    def get_transfer(self, tenant_id: int, transfer_id: int) -> StockTransfer:
        with self.store.reading() as uow:
            transfer = uow.get_transfer(tenant_id, transfer_id)
        if transfer is None:
            raise NotFoundError("Transfer", transfer_id)
        return transfer

    def list_transfers(
        self,
        tenant_id: int,
        *,
        status: str | None = None,
        branch_id: int | None = None,
        variant_id: int | None = None,
    ) -> list[StockTransfer]:
        if status is not None:
            status = coerce_choice(status, "status", TRANSFER_STATUSES)
        with self.store.reading() as uow:
            return uow.list_transfers(tenant_id, status=status, branch_id=branch_id, variant_id=variant_id)

    def stats(self, tenant_id: int, *, branch_id=None) -> dict:
        """Counts per status and units requested/moved; branch_id matches either end."""
        branch_id = coerce_optional_int(branch_id, "branch_id", minimum=1)
        counts = {status: 0 for status in TRANSFER_STATUSES}
        total_quantity = 0
        moved_quantity = 0
        for transfer in self.list_transfers(tenant_id, branch_id=branch_id):
            counts[transfer.status] = counts.get(transfer.status, 0) + 1
            total_quantity += transfer.quantity
            if transfer.status == TRANSFER_STATUS_APPROVED:
                moved_quantity += transfer.quantity
        return {
            "total": sum(counts.values()),
            "pending": counts[TRANSFER_STATUS_PENDING],
            "approved": counts[TRANSFER_STATUS_APPROVED],
            "rejected": counts[TRANSFER_STATUS_REJECTED],
            "total_quantity": total_quantity,
            "moved_quantity": moved_quantity,
        }
