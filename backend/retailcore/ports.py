# Overview: Boundary contracts between the consistency core and its collaborators.
"""
Ports

The core never talks to a database session, a catalog service or a message
bus directly. Workflows receive these collaborators at construction time:

- Catalog: variant existence and catalog price
- PolicyProvider: per-tenant return policy
- EventPublisher: outbound notifications, called only after commit
- Store / UnitOfWork: persistence with row-exclusive locks per stock key
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ContextManager, Optional, Protocol

from .time_utils import utcnow


@dataclass(frozen=True, order=True)
class StockKey:
    """Identity of one Stock row. Ordering is the global lock order."""
    tenant_id: int
    variant_id: int
    branch_id: int


@dataclass(frozen=True)
class CatalogVariant:
    variant_id: int
    price_cents: int


@dataclass(frozen=True)
class ReturnPolicy:
    returns_enabled: bool = True
    return_requires_approval: bool = True
    return_deadline_days: int = 7


@dataclass(frozen=True)
class DomainEvent:
    event_type: str
    tenant_id: int
    payload: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)


class Catalog(Protocol):
    def get_variant(self, tenant_id: int, variant_id: int) -> Optional[CatalogVariant]:
        ...


class PolicyProvider(Protocol):
    def return_policy(self, tenant_id: int) -> ReturnPolicy:
        ...


class EventPublisher(Protocol):
    def publish(self, event: DomainEvent) -> None:
        ...


class UnitOfWork(Protocol):
    """
    One atomic unit. Everything written through it commits together or not at all.

    Locks taken through lock_stock/get_*(lock=True) are held until the unit ends.
    """
    events: list

    def lock_stock(self, key: StockKey) -> Optional[Any]:
        ...

    def create_stock(self, key: StockKey, *, initial_quantity: int = 0, min_stock: int = 0) -> Any:
        ...

    def get_stock(self, key: StockKey) -> Optional[Any]:
        ...

    def add(self, record: Any) -> Any:
        ...

    def get_transaction(self, tenant_id: int, transaction_id: int, *, lock: bool = False) -> Optional[Any]:
        ...

    def get_transfer(self, tenant_id: int, transfer_id: int, *, lock: bool = False) -> Optional[Any]:
        ...

    def get_return(self, tenant_id: int, return_id: int, *, lock: bool = False) -> Optional[Any]:
        ...

    def returned_quantities(self, tenant_id: int, transaction_id: int) -> dict[int, int]:
        ...

    def returned_line_quantities(self, tenant_id: int, transaction_id: int) -> dict[int, int]:
        """Units already taken back per TransactionItem id (non-rejected returns)."""
        ...

    def list_transactions(
        self,
        tenant_id: int,
        *,
        branch_id: int | None = None,
        status: str | None = None,
        payment_method: str | None = None,
        created_from: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 100,
    ) -> list:
        ...

    def list_adjustments(self, key: StockKey, *, limit: int | None = 100) -> list:
        ...

    def search_adjustments(
        self,
        tenant_id: int,
        *,
        branch_id: int | None = None,
        variant_id: int | None = None,
        reason: str | None = None,
        created_from: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list, int]:
        """One page of matching adjustments (newest first) and the total match count."""
        ...

    def list_low_stock(self, tenant_id: int, *, branch_id: int | None = None) -> list:
        """Stock rows with an active alert (min_stock > 0) and quantity below it."""
        ...

    def list_transfers(
        self,
        tenant_id: int,
        *,
        status: str | None = None,
        branch_id: int | None = None,
        variant_id: int | None = None,
    ) -> list:
        ...

    def list_returns(
        self,
        tenant_id: int,
        *,
        status: str | None = None,
        transaction_id: int | None = None,
    ) -> list:
        ...

    def next_document_number(self, tenant_id: int, document_type: str, prefix: str, day: str) -> str:
        ...

    def emit(self, event: DomainEvent) -> None:
        ...


class Store(Protocol):
    def atomic(self) -> ContextManager[UnitOfWork]:
        ...

    def reading(self) -> ContextManager[UnitOfWork]:
        ...
