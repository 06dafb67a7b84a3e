# Overview: In-process persistence for unit tests and single-process tooling.
"""
MemoryStore

Holds the same model classes as the relational store, as transient instances
kept in per-model dicts. Concurrency semantics mirror SqlAlchemyStore:

- Every lockable row (stock key, transaction, transfer, return, document
  sequence) has its own threading.Lock. A unit acquires it with a timeout and
  holds it until the unit ends; re-locking a key the unit already holds is a no-op.
- Before a locked row is first handed out, its attribute state is snapshotted.
  Aborting a unit restores every snapshot and drops every row the unit added.

Reads through reading() take no locks.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from contextlib import contextmanager
from itertools import count

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import RelationshipDirection

from ..errors import LockTimeout
from ..models import DocumentSequence, Return, Stock, StockAdjustment, StockTransfer, Transaction
from ..ports import StockKey
from .base import BaseUnitOfWork, format_document_number


def _apply_column_defaults(record) -> None:
    for column in sa_inspect(type(record)).mapper.columns:
        if getattr(record, column.key) is not None or column.default is None:
            continue
        default = column.default
        if default.is_scalar:
            setattr(record, column.key, default.arg)
        elif default.is_callable:
            setattr(record, column.key, default.arg(None))


def _snapshot(record) -> dict:
    state = {}
    for attr in sa_inspect(type(record)).mapper.attrs:
        value = getattr(record, attr.key)
        state[attr.key] = list(value) if isinstance(value, list) else value
    return state


def _restore(record, state: dict) -> None:
    for key, value in state.items():
        setattr(record, key, value)


def _within(created_at, created_from, created_before) -> bool:
    if created_from is not None and created_at < created_from:
        return False
    if created_before is not None and created_at >= created_before:
        return False
    return True


class MemoryUnitOfWork(BaseUnitOfWork):
    def __init__(self, store: "MemoryStore", *, locking: bool = True):
        super().__init__()
        self.store = store
        self.locking = locking
        self._held: list = []
        self._snapshots: dict[int, tuple] = {}
        self._added: list = []

    # -- locking ------------------------------------------------------------

    def _acquire(self, lock_key) -> None:
        if not self.locking or lock_key in self._held:
            return
        lock = self.store._lock_for(lock_key)
        if not lock.acquire(timeout=self.store.lock_timeout):
            raise LockTimeout(f"Timed out waiting for lock on {lock_key}")
        self._held.append(lock_key)

    def _track(self, record):
        if record is not None and self.locking and id(record) not in self._snapshots:
            self._snapshots[id(record)] = (record, _snapshot(record))
        return record

    def release(self) -> None:
        while self._held:
            self.store._lock_for(self._held.pop()).release()

    def rollback(self) -> None:
        for record, state in self._snapshots.values():
            _restore(record, state)
        for record in reversed(self._added):
            self.store._tables[type(record)].pop(record.id, None)
        self._snapshots.clear()
        self._added.clear()
        self.events.clear()

    # -- records ------------------------------------------------------------

    def _find_stock(self, key: StockKey):
        return self.store._stock_index.get(key)

    def lock_stock(self, key: StockKey):
        self._acquire(("stock", key))
        return self._track(self._find_stock(key))

    def get_stock(self, key: StockKey):
        return self._find_stock(key)

    def create_stock(self, key: StockKey, *, initial_quantity: int = 0, min_stock: int = 0):
        self._acquire(("stock", key))
        existing = self._find_stock(key)
        if existing is not None:
            return self._track(existing)
        stock = Stock(
            tenant_id=key.tenant_id,
            variant_id=key.variant_id,
            branch_id=key.branch_id,
            quantity=initial_quantity,
            initial_quantity=initial_quantity,
            min_stock=min_stock,
        )
        return self.add(stock)

    def add(self, record):
        _apply_column_defaults(record)
        if record.id is None:
            record.id = self.store._next_id(type(record))
        self.store._tables[type(record)][record.id] = record
        self._added.append(record)

        mapper = sa_inspect(type(record)).mapper
        for rel in mapper.relationships:
            if rel.direction is not RelationshipDirection.ONETOMANY:
                continue
            children = getattr(record, rel.key)
            if children is None:
                continue
            if not isinstance(children, list):
                children = [children]
            for child in children:
                for local, remote in rel.local_remote_pairs:
                    setattr(child, remote.key, getattr(record, local.key))
                if child.id is None:
                    self.add(child)
        return record

    def _get(self, model, lock_name: str, tenant_id: int, record_id: int, lock: bool):
        if lock:
            self._acquire((lock_name, tenant_id, record_id))
        record = self.store._tables[model].get(record_id)
        if record is None or record.tenant_id != tenant_id:
            return None
        return self._track(record) if lock else record

    def get_transaction(self, tenant_id: int, transaction_id: int, *, lock: bool = False):
        return self._get(Transaction, "transaction", tenant_id, transaction_id, lock)

    def get_transfer(self, tenant_id: int, transfer_id: int, *, lock: bool = False):
        return self._get(StockTransfer, "transfer", tenant_id, transfer_id, lock)

    def get_return(self, tenant_id: int, return_id: int, *, lock: bool = False):
        return self._get(Return, "return", tenant_id, return_id, lock)

    def returned_quantities(self, tenant_id: int, transaction_id: int) -> dict[int, int]:
        totals: dict[int, int] = defaultdict(int)
        for ret in self.list_returns(tenant_id, transaction_id=transaction_id):
            if ret.status == "REJECTED":
                continue
            for item in ret.items:
                totals[item.variant_id] += item.quantity
        return dict(totals)

    def returned_line_quantities(self, tenant_id: int, transaction_id: int) -> dict[int, int]:
        totals: dict[int, int] = defaultdict(int)
        for ret in self.list_returns(tenant_id, transaction_id=transaction_id):
            if ret.status == "REJECTED":
                continue
            for item in ret.items:
                totals[item.transaction_item_id] += item.quantity
        return dict(totals)

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
        rows = []
        for txn in self.store._tables[Transaction].values():
            if txn.tenant_id != tenant_id:
                continue
            if branch_id is not None and txn.branch_id != branch_id:
                continue
            if status and txn.status != status:
                continue
            if payment_method and payment_method not in (txn.payment_method, txn.payment_method2):
                continue
            if not _within(txn.created_at, created_from, created_before):
                continue
            rows.append(txn)
        rows.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        return rows[:limit]

    def list_adjustments(self, key: StockKey, *, limit: int | None = 100) -> list:
        rows = [
            adj for adj in self.store._tables[StockAdjustment].values()
            if (adj.tenant_id, adj.variant_id, adj.branch_id) == (key.tenant_id, key.variant_id, key.branch_id)
        ]
        rows.sort(key=lambda adj: adj.id, reverse=True)
        return rows[:limit]

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
        rows = []
        for adj in self.store._tables[StockAdjustment].values():
            if adj.tenant_id != tenant_id:
                continue
            if branch_id is not None and adj.branch_id != branch_id:
                continue
            if variant_id is not None and adj.variant_id != variant_id:
                continue
            if reason and adj.reason != reason:
                continue
            if not _within(adj.created_at, created_from, created_before):
                continue
            rows.append(adj)
        rows.sort(key=lambda adj: adj.id, reverse=True)
        return rows[offset:offset + limit], len(rows)

    def list_low_stock(self, tenant_id: int, *, branch_id=None) -> list:
        rows = [
            s for s in list(self.store._tables[Stock].values())
            if s.tenant_id == tenant_id
            and (branch_id is None or s.branch_id == branch_id)
            and s.is_low
        ]
        return sorted(rows, key=lambda s: (s.branch_id, s.variant_id))

    def list_transfers(self, tenant_id: int, *, status=None, branch_id=None, variant_id=None) -> list:
        rows = []
        for transfer in self.store._tables[StockTransfer].values():
            if transfer.tenant_id != tenant_id:
                continue
            if status and transfer.status != status:
                continue
            if branch_id is not None and branch_id not in (transfer.from_branch_id, transfer.to_branch_id):
                continue
            if variant_id is not None and transfer.variant_id != variant_id:
                continue
            rows.append(transfer)
        return sorted(rows, key=lambda t: t.id, reverse=True)

    def list_returns(self, tenant_id: int, *, status=None, transaction_id=None) -> list:
        rows = []
        for ret in self.store._tables[Return].values():
            if ret.tenant_id != tenant_id:
                continue
            if status and ret.status != status:
                continue
            if transaction_id is not None and ret.transaction_id != transaction_id:
                continue
            rows.append(ret)
        return sorted(rows, key=lambda r: r.id, reverse=True)

    def next_document_number(self, tenant_id: int, document_type: str, prefix: str, day: str) -> str:
        seq_key = (tenant_id, document_type, day)
        self._acquire(("sequence",) + seq_key)
        seq = self.store._sequence_index.get(seq_key)
        if seq is None:
            seq = self.add(DocumentSequence(tenant_id=tenant_id, document_type=document_type, day=day, next_number=1))
        else:
            self._track(seq)
        number = seq.next_number
        seq.next_number = number + 1
        return format_document_number(prefix, day, number)


class MemoryStore:
    def __init__(self, *, lock_timeout: float = 5.0):
        self.lock_timeout = lock_timeout
        self._tables: dict[type, dict[int, object]] = defaultdict(dict)
        self._ids: dict[type, count] = defaultdict(lambda: count(1))
        self._locks: dict = {}
        self._registry_lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> "MemoryStore":
        return cls(lock_timeout=int(config.get("LOCK_TIMEOUT_MS", 5000)) / 1000.0)

    def _next_id(self, model) -> int:
        with self._registry_lock:
            return next(self._ids[model])

    def _lock_for(self, lock_key) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(lock_key)
            if lock is None:
                lock = self._locks[lock_key] = threading.Lock()
            return lock

    @property
    def _stock_index(self) -> dict:
        return {
            StockKey(s.tenant_id, s.variant_id, s.branch_id): s
            for s in list(self._tables[Stock].values())
        }

    @property
    def _sequence_index(self) -> dict:
        return {
            (s.tenant_id, s.document_type, s.day): s
            for s in list(self._tables[DocumentSequence].values())
        }

    @contextmanager
    def atomic(self):
        uow = MemoryUnitOfWork(self, locking=True)
        try:
            yield uow
        except Exception:
            uow.rollback()
            raise
        finally:
            uow.release()

    @contextmanager
    def reading(self):
        yield MemoryUnitOfWork(self, locking=False)

    def row_count(self, model) -> int:
        return len(self._tables[model])
