"""Tests for the inventory command-line interface."""

import logging
from datetime import timedelta

import pytest

from batch_tracker import main as app_main
from batch_tracker.services import adjustment_service
from batch_tracker.utils import inventory_cli
from batch_tracker.utils.datetime_utils import today


@pytest.fixture
def cli(test_db, monkeypatch):
    """Run CLI commands against the test database."""
    monkeypatch.setattr(inventory_cli, "initialize_app_database", lambda: None)

    def _run(*argv):
        return inventory_cli.main([str(arg) for arg in argv])

    return _run


def _expiry(days):
    return (today() + timedelta(days=days)).isoformat()


class TestProductCommands:
    def test_add_product_with_stock(self, cli, capsys):
        code = cli("add-product", "Aceite de Oliva", "--price", "8.50", "--unit", "bottle", "--stock", 12)

        assert code == 0
        assert "Created product 1: Aceite de Oliva (stock 12)" in capsys.readouterr().out

    def test_add_product_invalid(self, cli, capsys):
        code = cli("add-product", "Harina", "--price", "-1", "--unit", "kg")

        assert code == 1
        assert capsys.readouterr().out.startswith("ERROR: Validation failed")


class TestStockCommands:
    @pytest.fixture
    def product_id(self, cli, capsys):
        cli("add-product", "Aceite de Oliva", "--price", "8.50", "--unit", "bottle")
        cli("restock", 1, 5, "--expiry", _expiry(2))
        cli("restock", 1, 10, "--expiry", _expiry(20))
        capsys.readouterr()
        return 1

    def test_restock_prints_code(self, cli, capsys, product_id):
        code = cli("restock", product_id, 3, "--expiry", _expiry(30))

        assert code == 0
        assert f"AcDeOl-3-{today().strftime('%d%m%Y')}" in capsys.readouterr().out

    def test_consume(self, cli, capsys, product_id):
        code = cli("consume", product_id, 8, "--actor", "pos")

        out = capsys.readouterr().out
        assert code == 0
        assert out.startswith("Consumed 8 units:")
        assert "(remaining 0)" in out
        assert "(remaining 7)" in out

    def test_consume_dry_run(self, cli, capsys, product_id):
        cli("consume", product_id, 8, "--dry-run")
        assert capsys.readouterr().out.startswith("Would consume 8 units:")

        cli("summary", product_id)
        assert "Total stock:        15" in capsys.readouterr().out

    def test_consume_insufficient(self, cli, capsys, product_id):
        code = cli("consume", product_id, 99)

        assert code == 1
        assert "Insufficient batch stock" in capsys.readouterr().out

    def test_correct_and_reconcile(self, cli, capsys, product_id):
        cli("correct", product_id, 20, "--note", "stocktake")
        assert "Stock corrected: 15 -> 20 (+5)" in capsys.readouterr().out

        cli("reconcile", product_id)
        assert "Stock reconciled: 20 -> 15" in capsys.readouterr().out

        cli("reconcile", "--all")
        assert "All products consistent." in capsys.readouterr().out

    def test_reconcile_requires_target(self, cli, capsys, product_id):
        assert cli("reconcile") == 1
        assert "--all" in capsys.readouterr().out

    def test_history(self, cli, capsys, product_id):
        cli("consume", product_id, 1, "--note", "order 7")
        capsys.readouterr()

        cli("history", product_id, "--limit", 1)

        out = capsys.readouterr().out
        assert "Consumption" in out
        assert "order 7; FIFO:" in out

    def test_expiring(self, cli, capsys, product_id):
        cli("expiring", "--days", 7)

        out = capsys.readouterr().out
        assert "CRITICAL" in out
        assert "qty     5" in out

    def test_expiring_empty(self, cli, capsys):
        cli("expiring")
        assert "No batches expire within 7 days." in capsys.readouterr().out

    def test_low_stock(self, cli, capsys, product_id):
        adjustment_service.set_stock(product_id, 20)
        cli("add-product", "Sal", "--price", "1", "--unit", "kg")
        capsys.readouterr()

        cli("low-stock")

        out = capsys.readouterr().out
        assert "Sal" in out
        assert "Aceite" not in out

    def test_purge(self, cli, capsys, product_id):
        cli("purge", "--days", 0)
        assert capsys.readouterr().out.startswith("Purged ")


class TestEntryPoint:
    def test_no_command_prints_help(self, cli, capsys):
        assert cli() == 1
        assert "usage: batch-tracker" in capsys.readouterr().out

    def test_main_configures_logging(self, cli, monkeypatch):
        app_logger = logging.getLogger("batch_tracker")
        saved_handlers = list(app_logger.handlers)
        saved_level = app_logger.level
        try:
            assert app_main.main(["-v", "expired"]) == 0
            assert app_logger.level == logging.DEBUG
            assert len(app_logger.handlers) == len(saved_handlers) + 1

            app_main.configure_logging()
            assert app_logger.level == logging.WARNING
            assert len(app_logger.handlers) == len(saved_handlers) + 1
        finally:
            app_logger.handlers = saved_handlers
            app_logger.setLevel(saved_level)
