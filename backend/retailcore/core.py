# Overview: Wires the consistency core's services around one store.
from __future__ import annotations

from dataclasses import dataclass

from .collaborators import DictCatalog, StaticPolicyProvider
from .services.concurrency import RetryPolicy
from .services.events import LoggingEventPublisher
from .services.return_service import ReturnWorkflow
from .services.stock_ledger import StockLedger
from .services.transaction_service import TransactionProcessor
from .services.transfer_service import TransferWorkflow


@dataclass
class RetailCore:
    store: object
    catalog: object
    policy: object
    publisher: object
    ledger: StockLedger
    transactions: TransactionProcessor
    transfers: TransferWorkflow
    returns: ReturnWorkflow


def build_core(store, *, catalog=None, policy=None, publisher=None, retry: RetryPolicy | None = None) -> RetailCore:
    catalog = catalog if catalog is not None else DictCatalog()
    policy = policy if policy is not None else StaticPolicyProvider()
    publisher = publisher if publisher is not None else LoggingEventPublisher()
    retry = retry or RetryPolicy()

    ledger = StockLedger(store, publisher=publisher, retry=retry)
    return RetailCore(
        store=store,
        catalog=catalog,
        policy=policy,
        publisher=publisher,
        ledger=ledger,
        transactions=TransactionProcessor(store, ledger, catalog, publisher=publisher, retry=retry),
        transfers=TransferWorkflow(store, ledger, catalog, publisher=publisher, retry=retry),
        returns=ReturnWorkflow(store, ledger, policy, publisher=publisher, retry=retry),
    )


def current_core() -> RetailCore:
    from flask import current_app
    return current_app.extensions["retailcore"]
