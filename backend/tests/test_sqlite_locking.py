# Overview: SqlAlchemyStore on a file-backed SQLite database with default locking (BEGIN IMMEDIATE).

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import OperationalError

from retailcore import create_app
from retailcore.collaborators import DictCatalog
from retailcore.errors import InsufficientStockError, LockTimeout
from retailcore.extensions import db
from retailcore.models import Transaction

from conftest import BRANCH_A, CATALOG_PRICES, SHIRT, TENANT


@pytest.fixture
def file_app(tmp_path):
    """App on its own SQLite file; SQLITE_BEGIN_IMMEDIATE keeps its default."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'retailcore.sqlite3'}",
            'RETRY_BACKOFF_SECONDS': 0.01,
        },
        catalog=DictCatalog(CATALOG_PRICES),
    )
    assert app.config['SQLITE_BEGIN_IMMEDIATE'] is True

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _run_threads(app, fn, count, workers=8):
    barrier = threading.Barrier(min(count, workers))

    def _task(i):
        try:
            barrier.wait(timeout=5)
        except threading.BrokenBarrierError:
            pass
        # Each thread gets its own app context, hence its own session and connection
        with app.app_context():
            return fn(app.extensions["retailcore"], i)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return [f.result() for f in [pool.submit(_task, i) for i in range(count)]]


class TestFileBackedSqlite:
    def test_concurrent_debits_never_oversell(self, file_app):
        with file_app.app_context():
            file_app.extensions["retailcore"].ledger.credit(TENANT, SHIRT, BRANCH_A, 10)

        def _debit(core, i):
            try:
                core.ledger.debit(TENANT, SHIRT, BRANCH_A, 1)
                return "ok"
            except InsufficientStockError:
                return "short"
            except (LockTimeout, OperationalError):
                return "busy"

        outcomes = _run_threads(file_app, _debit, 24)
        sold = outcomes.count("ok")

        assert sold <= 10
        with file_app.app_context():
            core = file_app.extensions["retailcore"]
            assert core.ledger.read(TENANT, SHIRT, BRANCH_A) == 10 - sold
            result = core.ledger.verify(TENANT, SHIRT, BRANCH_A)
            assert result["consistent"] is True
            assert result["adjustment_count"] == 1 + sold

    def test_concurrent_sales_are_all_or_nothing(self, file_app):
        with file_app.app_context():
            file_app.extensions["retailcore"].ledger.credit(TENANT, SHIRT, BRANCH_A, 6)

        def _sell(core, i):
            try:
                core.transactions.create_transaction(
                    TENANT,
                    BRANCH_A,
                    [{"variant_id": SHIRT, "quantity": 2, "unit_price_cents": 1000}],
                    payment_method="CASH",
                )
                return "ok"
            except InsufficientStockError:
                return "short"
            except (LockTimeout, OperationalError):
                return "busy"

        outcomes = _run_threads(file_app, _sell, 16)
        sold = outcomes.count("ok")

        assert sold <= 3
        with file_app.app_context():
            core = file_app.extensions["retailcore"]
            assert core.ledger.read(TENANT, SHIRT, BRANCH_A) == 6 - 2 * sold
            assert db.session.query(Transaction).count() == sold
            numbers = [t.transaction_number for t in db.session.query(Transaction).all()]
            assert len(set(numbers)) == len(numbers)
            assert core.ledger.verify(TENANT, SHIRT, BRANCH_A)["consistent"] is True
