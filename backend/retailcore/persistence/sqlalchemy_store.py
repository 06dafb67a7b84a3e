# Overview: Relational persistence for the consistency core (Flask-SQLAlchemy session).
"""
SqlAlchemyStore

One atomic unit == one database transaction on db.session.

LOCKING:
- Stock, Transaction, StockTransfer, Return and DocumentSequence rows touched by
  a unit are read with SELECT ... FOR UPDATE and held until commit/rollback.
- SQLite has no row locks. With SQLITE_BEGIN_IMMEDIATE the unit takes the
  database write lock up front instead, which serializes writers.
- On PostgreSQL, lock waits are bounded by SET LOCAL lock_timeout; a timeout
  surfaces as OperationalError and is retried by run_with_retry.

Stock rows are created inside a savepoint so that two units racing to create
the same (tenant, variant, branch) row resolve to a single row: the loser
catches the unique violation and locks the winner's row.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy import func, or_, text, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    DocumentSequence,
    Return,
    ReturnItem,
    Stock,
    StockAdjustment,
    StockTransfer,
    Transaction,
)
from ..ports import StockKey
from ..services.concurrency import lock_for_update
from .base import BaseUnitOfWork, format_document_number

logger = logging.getLogger(__name__)


class SqlAlchemyUnitOfWork(BaseUnitOfWork):
    def __init__(self, session, *, locking: bool = True):
        super().__init__()
        self.session = session
        self.locking = locking

    def _maybe_lock(self, query, lock: bool):
        if lock and self.locking:
            return lock_for_update(query)
        return query

    def _stock_query(self, key: StockKey):
        return self.session.query(Stock).filter_by(
            tenant_id=key.tenant_id,
            variant_id=key.variant_id,
            branch_id=key.branch_id,
        )

    def lock_stock(self, key: StockKey):
        return self._maybe_lock(self._stock_query(key), True).first()

    def get_stock(self, key: StockKey):
        return self._stock_query(key).first()

    def create_stock(self, key: StockKey, *, initial_quantity: int = 0, min_stock: int = 0):
        stock = Stock(
            tenant_id=key.tenant_id,
            variant_id=key.variant_id,
            branch_id=key.branch_id,
            quantity=initial_quantity,
            initial_quantity=initial_quantity,
            min_stock=min_stock,
        )
        try:
            with self.session.begin_nested():
                self.session.add(stock)
        except IntegrityError:
            # Lost the race; the other unit's row is committed now.
            logger.info("Stock row %s created concurrently; locking existing row", key)
            stock = self.lock_stock(key)
            if stock is None:
                raise
        return stock

    def add(self, record):
        self.session.add(record)
        self.session.flush()
        return record

    def get_transaction(self, tenant_id: int, transaction_id: int, *, lock: bool = False):
        query = self.session.query(Transaction).filter_by(tenant_id=tenant_id, id=transaction_id)
        return self._maybe_lock(query, lock).first()

    def get_transfer(self, tenant_id: int, transfer_id: int, *, lock: bool = False):
        query = self.session.query(StockTransfer).filter_by(tenant_id=tenant_id, id=transfer_id)
        return self._maybe_lock(query, lock).first()

    def get_return(self, tenant_id: int, return_id: int, *, lock: bool = False):
        query = self.session.query(Return).filter_by(tenant_id=tenant_id, id=return_id)
        return self._maybe_lock(query, lock).first()

    def returned_quantities(self, tenant_id: int, transaction_id: int) -> dict[int, int]:
        rows = (
            self.session.query(ReturnItem.variant_id, func.sum(ReturnItem.quantity))
            .join(Return, Return.id == ReturnItem.return_id)
            .filter(
                Return.tenant_id == tenant_id,
                Return.transaction_id == transaction_id,
                Return.status != "REJECTED",
            )
            .group_by(ReturnItem.variant_id)
            .all()
        )
        return {variant_id: int(total or 0) for variant_id, total in rows}

    def returned_line_quantities(self, tenant_id: int, transaction_id: int) -> dict[int, int]:
        rows = (
            self.session.query(ReturnItem.transaction_item_id, func.sum(ReturnItem.quantity))
            .join(Return, Return.id == ReturnItem.return_id)
            .filter(
                Return.tenant_id == tenant_id,
                Return.transaction_id == transaction_id,
                Return.status != "REJECTED",
            )
            .group_by(ReturnItem.transaction_item_id)
            .all()
        )
        return {item_id: int(total or 0) for item_id, total in rows}

    def list_transactions(
        self,
        tenant_id: int,
        *,
        branch_id=None,
        status=None,
        payment_method=None,
        created_from=None,
        created_before=None,
        limit: int = 100,
    ) -> list:
        query = self.session.query(Transaction).filter_by(tenant_id=tenant_id)
        if branch_id is not None:
            query = query.filter(Transaction.branch_id == branch_id)
        if status:
            query = query.filter(Transaction.status == status)
        if payment_method:
            query = query.filter(
                or_(Transaction.payment_method == payment_method, Transaction.payment_method2 == payment_method)
            )
        if created_from is not None:
            query = query.filter(Transaction.created_at >= created_from)
        if created_before is not None:
            query = query.filter(Transaction.created_at < created_before)
        return query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit).all()

    def list_adjustments(self, key: StockKey, *, limit: int | None = 100) -> list:
        return (
            self.session.query(StockAdjustment)
            .filter_by(tenant_id=key.tenant_id, variant_id=key.variant_id, branch_id=key.branch_id)
            .order_by(StockAdjustment.id.desc())
            .limit(limit)
            .all()
        )

    def search_adjustments(
        self,
        tenant_id: int,
        *,
        branch_id=None,
        variant_id=None,
        reason=None,
        created_from=None,
        created_before=None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list, int]:
        query = self.session.query(StockAdjustment).filter_by(tenant_id=tenant_id)
        if branch_id is not None:
            query = query.filter(StockAdjustment.branch_id == branch_id)
        if variant_id is not None:
            query = query.filter(StockAdjustment.variant_id == variant_id)
        if reason:
            query = query.filter(StockAdjustment.reason == reason)
        if created_from is not None:
            query = query.filter(StockAdjustment.created_at >= created_from)
        if created_before is not None:
            query = query.filter(StockAdjustment.created_at < created_before)

        total = query.count()
        rows = query.order_by(StockAdjustment.id.desc()).offset(offset).limit(limit).all()
        return rows, total

    def list_low_stock(self, tenant_id: int, *, branch_id=None) -> list:
        query = self.session.query(Stock).filter(
            Stock.tenant_id == tenant_id,
            Stock.min_stock > 0,
            Stock.quantity < Stock.min_stock,
        )
        if branch_id is not None:
            query = query.filter(Stock.branch_id == branch_id)
        return query.order_by(Stock.branch_id, Stock.variant_id).all()

    def list_transfers(self, tenant_id: int, *, status=None, branch_id=None, variant_id=None) -> list:
        query = self.session.query(StockTransfer).filter_by(tenant_id=tenant_id)
        if status:
            query = query.filter(StockTransfer.status == status)
        if branch_id is not None:
            query = query.filter(
                or_(StockTransfer.from_branch_id == branch_id, StockTransfer.to_branch_id == branch_id)
            )
        if variant_id is not None:
            query = query.filter(StockTransfer.variant_id == variant_id)
        return query.order_by(StockTransfer.id.desc()).all()

    def list_returns(self, tenant_id: int, *, status=None, transaction_id=None) -> list:
        query = self.session.query(Return).filter_by(tenant_id=tenant_id)
        if status:
            query = query.filter(Return.status == status)
        if transaction_id is not None:
            query = query.filter(Return.transaction_id == transaction_id)
        return query.order_by(Return.id.desc()).all()

    def next_document_number(self, tenant_id: int, document_type: str, prefix: str, day: str) -> str:
        """
        Allocate the next number for (tenant, type, day).

        The UPDATE takes the row lock and holds it until the unit ends, so two
        units never receive the same number.
        """
        stmt = (
            update(DocumentSequence)
            .where(
                DocumentSequence.tenant_id == tenant_id,
                DocumentSequence.document_type == document_type,
                DocumentSequence.day == day,
            )
            .values(next_number=DocumentSequence.next_number + 1)
            .execution_options(synchronize_session=False)
        )

        def _current() -> int:
            return (
                self.session.query(DocumentSequence.next_number)
                .filter_by(tenant_id=tenant_id, document_type=document_type, day=day)
                .scalar()
            )

        result = self.session.execute(stmt)
        if result.rowcount:
            number = _current() - 1
        else:
            seq = DocumentSequence(tenant_id=tenant_id, document_type=document_type, day=day, next_number=2)
            try:
                with self.session.begin_nested():
                    self.session.add(seq)
                number = 1
            except IntegrityError:
                result = self.session.execute(stmt)
                if not result.rowcount:
                    raise
                number = _current() - 1

        return format_document_number(prefix, day, number)


class SqlAlchemyStore:
    """Store backed by the Flask-SQLAlchemy scoped session. Requires an app context."""

    def __init__(self, *, begin_immediate: bool = False, lock_timeout_ms: int | None = None):
        self.begin_immediate = begin_immediate
        self.lock_timeout_ms = lock_timeout_ms

    @classmethod
    def from_config(cls, config) -> "SqlAlchemyStore":
        return cls(
            begin_immediate=bool(config.get("SQLITE_BEGIN_IMMEDIATE", False)),
            lock_timeout_ms=config.get("LOCK_TIMEOUT_MS"),
        )

    def _begin(self, session) -> None:
        dialect = db.engine.dialect.name
        if dialect == "sqlite" and self.begin_immediate:
            session.execute(text("BEGIN IMMEDIATE"))
        elif dialect == "postgresql" and self.lock_timeout_ms:
            session.execute(text(f"SET LOCAL lock_timeout = '{int(self.lock_timeout_ms)}ms'"))

    @contextmanager
    def atomic(self):
        session = db.session
        # Never join a half-finished transaction left on the scoped session.
        session.rollback()
        self._begin(session)
        uow = SqlAlchemyUnitOfWork(session, locking=True)
        try:
            yield uow
            session.commit()
        except Exception:
            session.rollback()
            uow.events.clear()
            raise

    @contextmanager
    def reading(self):
        yield SqlAlchemyUnitOfWork(db.session, locking=False)
