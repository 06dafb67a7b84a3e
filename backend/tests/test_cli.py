# Overview: Flask CLI tests for the system and stock command groups.

from retailcore.extensions import db
from retailcore.models import Stock

from conftest import BRANCH_A, SHIRT, TENANT

KEY_ARGS = ["--tenant-id", str(TENANT), "--variant-id", str(SHIRT), "--branch-id", str(BRANCH_A)]


class TestSystemCommands:
    def test_init_db_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init-db"])

        assert result.exit_code == 0
        assert "PASS" in result.output


class TestStockCommands:
    def test_show_without_row(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stock", "show", *KEY_ARGS])

        assert result.exit_code == 0
        assert "on-hand 0" in result.output

    def test_adjust_then_show(self, app, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 5)
        runner = app.test_cli_runner()

        adjusted = runner.invoke(args=["stock", "adjust", *KEY_ARGS, "--delta", "-2", "--reason", "damaged"])
        shown = runner.invoke(args=["stock", "show", *KEY_ARGS, "--limit", "5"])

        assert adjusted.exit_code == 0
        assert "5 -> 3" in adjusted.output
        assert "on-hand 3" in shown.output
        assert "DAMAGED" in shown.output
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 3

    def test_adjust_below_zero_fails(self, app, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 1)

        result = app.test_cli_runner().invoke(args=["stock", "adjust", *KEY_ARGS, "--delta", "-4", "--reason", "LOST"])

        assert result.exit_code != 0
        assert "Insufficient stock" in result.output
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 1

    def test_adjust_rejects_system_reason(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stock", "adjust", *KEY_ARGS, "--delta", "1", "--reason", "SALE"])

        assert result.exit_code == 2

    def test_verify_pass_and_fail(self, app, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 4)
        runner = app.test_cli_runner()

        passed = runner.invoke(args=["stock", "verify", *KEY_ARGS])
        assert passed.exit_code == 0
        assert passed.output.startswith("PASS")

        # Tamper with the stored quantity behind the ledger's back
        db.session.query(Stock).filter_by(tenant_id=TENANT, variant_id=SHIRT).update({"quantity": 99})
        db.session.commit()

        failed = runner.invoke(args=["stock", "verify", *KEY_ARGS])
        assert failed.exit_code == 1
        assert "FAIL" in failed.output
