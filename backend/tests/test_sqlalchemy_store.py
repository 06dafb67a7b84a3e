# Overview: The same core scenarios run against SqlAlchemyStore on SQLite.

import re

import pytest

from retailcore.errors import ConflictError, InsufficientStockError, ValidationError
from retailcore.extensions import db
from retailcore.models import Refund, StockAdjustment, Transaction

from conftest import BRANCH_A, BRANCH_B, JACKET, SHIRT, TENANT


def _cash_sale(core, lines, branch_id=BRANCH_A, **kwargs):
    return core.transactions.create_transaction(
        TENANT,
        branch_id,
        [{"variant_id": v, "quantity": q, "unit_price_cents": p} for v, q, p in lines],
        payment_method=kwargs.pop("payment_method", "CASH"),
        **kwargs,
    )


class TestSqlLedger:
    def test_credit_creates_row_and_history(self, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        sql_core.ledger.adjust(TENANT, SHIRT, BRANCH_A, -2, "DAMAGED", note="water damage")

        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 8
        history = sql_core.ledger.history(TENANT, SHIRT, BRANCH_A)
        assert [a.delta for a in history] == [-2, 10]
        assert history[0].previous_quantity == 10
        assert history[0].new_quantity == 8
        assert sql_core.ledger.verify(TENANT, SHIRT, BRANCH_A)["consistent"]

    def test_negative_adjustment_refused(self, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 3)

        with pytest.raises(InsufficientStockError):
            sql_core.ledger.adjust(TENANT, SHIRT, BRANCH_A, -4, "LOST")

        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 3
        assert sql_core.ledger.verify(TENANT, SHIRT, BRANCH_A)["consistent"]

    def test_set_min_stock_flags_low(self, sql_core, app_publisher):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 3)

        stock = sql_core.ledger.set_min_stock(TENANT, SHIRT, BRANCH_A, 5)

        assert stock.is_low
        assert app_publisher.of_type("stock.low")


class TestSqlTransactions:
    def test_sale_debits_and_numbers(self, sql_core, app_publisher):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)

        txn = _cash_sale(sql_core, [(SHIRT, 3, 1000)])

        assert re.fullmatch(r"INV-\d{8}-\d{4}", txn.transaction_number)
        assert txn.total_cents == 3000
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 7
        assert len(app_publisher.of_type("transaction.created")) == 1

    def test_numbers_increase_within_a_day(self, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)

        first = _cash_sale(sql_core, [(SHIRT, 1, 1000)])
        second = _cash_sale(sql_core, [(SHIRT, 1, 1000)])

        assert first.transaction_number[:12] == second.transaction_number[:12]
        assert int(second.transaction_number[-4:]) > int(first.transaction_number[-4:])

    def test_insufficient_line_rolls_back_whole_sale(self, sql_core, app_publisher):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        sql_core.ledger.credit(TENANT, JACKET, BRANCH_A, 1)
        app_publisher.clear()

        with pytest.raises(InsufficientStockError) as exc:
            _cash_sale(sql_core, [(SHIRT, 2, 1000), (JACKET, 5, 2500)])

        assert exc.value.variant_id == JACKET
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 10
        assert sql_core.ledger.read(TENANT, JACKET, BRANCH_A) == 1
        assert db.session.query(Transaction).count() == 0
        assert app_publisher.events == []

    def test_split_payment(self, sql_core):
        sql_core.ledger.credit(TENANT, JACKET, BRANCH_A, 2)

        txn = _cash_sale(
            sql_core,
            [(JACKET, 2, 2500)],
            payment_amount_cents=3000,
            payment_method2="QRIS",
            payment_amount2_cents=2000,
        )

        data = txn.to_dict()
        assert data["is_split_payment"] is True
        assert data["payment_method2"] == "QRIS"
        assert len(data["items"]) == 1

    def test_cancel_restores_stock(self, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 5)
        txn = _cash_sale(sql_core, [(SHIRT, 4, 1000)])

        cancelled = sql_core.transactions.cancel_transaction(TENANT, txn.id, actor_id=7)

        assert cancelled.status == "CANCELLED"
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 5
        with pytest.raises(ConflictError):
            sql_core.transactions.cancel_transaction(TENANT, txn.id)
        assert sql_core.ledger.verify(TENANT, SHIRT, BRANCH_A)["consistent"]


class TestSqlTransfers:
    def test_approve_moves_stock(self, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        transfer = sql_core.transfers.request_transfer(TENANT, SHIRT, BRANCH_A, BRANCH_B, 4)

        approved = sql_core.transfers.approve_transfer(TENANT, transfer.id, decided_by=3)

        assert approved.status == "APPROVED"
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 6
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_B) == 4
        reasons = {a.reason for a in db.session.query(StockAdjustment).filter_by(reference_type="TRANSFER")}
        assert reasons == {"TRANSFER_OUT", "TRANSFER_IN"}

    def test_short_source_keeps_transfer_pending(self, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 2)
        transfer = sql_core.transfers.request_transfer(TENANT, SHIRT, BRANCH_A, BRANCH_B, 5)

        with pytest.raises(InsufficientStockError):
            sql_core.transfers.approve_transfer(TENANT, transfer.id)

        assert sql_core.transfers.get_transfer(TENANT, transfer.id).status == "PENDING"
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 2
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_B) == 0

    def test_list_filters(self, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        first = sql_core.transfers.request_transfer(TENANT, SHIRT, BRANCH_A, BRANCH_B, 1)
        sql_core.transfers.request_transfer(TENANT, SHIRT, BRANCH_A, BRANCH_B, 2)
        sql_core.transfers.reject_transfer(TENANT, first.id, reason="not needed")

        pending = sql_core.transfers.list_transfers(TENANT, status="PENDING")
        rejected = sql_core.transfers.list_transfers(TENANT, status="rejected")

        assert [t.quantity for t in pending] == [2]
        assert [t.rejection_reason for t in rejected] == ["not needed"]


class TestSqlReturns:
    def test_return_lifecycle(self, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        txn = _cash_sale(sql_core, [(SHIRT, 5, 1000)])

        ret = sql_core.returns.request_return(
            TENANT, txn.id, [{"variant_id": SHIRT, "quantity": 3}], "WRONG_SIZE"
        )
        assert ret.status == "PENDING"
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 5

        approved = sql_core.returns.approve_return(TENANT, ret.id, decided_by=9)

        assert approved.status == "APPROVED"
        assert approved.refund.amount_cents == 3000
        assert db.session.query(Refund).count() == 1
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 8

        with pytest.raises(ValidationError):
            sql_core.returns.request_return(TENANT, txn.id, [{"variant_id": SHIRT, "quantity": 3}], "WRONG_SIZE")

        stats = sql_core.returns.stats(TENANT)
        assert stats["approved"] == 1
        assert stats["refunded_cents"] == 3000
        assert sql_core.ledger.verify(TENANT, SHIRT, BRANCH_A)["consistent"]

    def test_cancel_blocked_after_return(self, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        txn = _cash_sale(sql_core, [(SHIRT, 2, 1000)])
        sql_core.returns.request_return(TENANT, txn.id, [{"variant_id": SHIRT, "quantity": 1}], "OTHER")

        with pytest.raises(ConflictError):
            sql_core.transactions.cancel_transaction(TENANT, txn.id)

    def test_return_priced_per_sale_line(self, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        txn = _cash_sale(sql_core, [(SHIRT, 1, 1000), (SHIRT, 1, 0)], payment_amount_cents=1000)

        first = sql_core.returns.request_return(TENANT, txn.id, [{"variant_id": SHIRT, "quantity": 1}], "OTHER")
        second = sql_core.returns.request_return(TENANT, txn.id, [{"variant_id": SHIRT, "quantity": 1}], "OTHER")

        assert first.refund_amount_cents == 1000
        assert second.refund_amount_cents == 0
        assert first.items[0].transaction_item_id != second.items[0].transaction_item_id
        assert sql_core.returns.stats(TENANT)["total"] == 2
