# Overview: Pytest coverage for the theaterpos-admin command groups and exit codes.

import json
from datetime import date

import pytest

from theaterpos import create_app
from theaterpos.cli import EXIT_CONFIG, EXIT_DATASTORE, run
from theaterpos.models import Otp, Theater
from theaterpos.services import login_throttle_service, stock_ledger_service

from conftest import PASSWORD


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestTheaterCommands:

    def test_create_and_list(self, runner, db_session):
        result = runner.invoke(args=["theaters", "create", "--name", "Galaxy Cinemas", "--code", "GLX"])
        assert result.exit_code == 0, result.output
        assert "PASS Created theater: Galaxy Cinemas" in result.output
        assert db_session.query(Theater).filter_by(code="GLX").count() == 1

        listed = runner.invoke(args=["theaters", "list"])
        assert listed.exit_code == 0
        assert "Galaxy Cinemas" in listed.output

    def test_duplicate_code_exits_1(self, runner, theater_a):
        result = runner.invoke(args=["theaters", "create", "--name", "Again", "--code", "TA"])
        assert result.exit_code == 1

    def test_ensure_defaults_is_idempotent(self, runner, theater_a):
        result = runner.invoke(args=["theaters", "ensure-defaults", "--theater-id", str(theater_a.id)])
        assert result.exit_code == 0
        assert "0 catalog, 0 role(s), 0 setting(s) created" in result.output


class TestUserCommands:

    def test_unlock_clears_lock(self, runner, db_session, admin_a):
        for _ in range(5):
            login_throttle_service.register_failed_login(admin_a.id)
        assert login_throttle_service.is_locked(admin_a)

        result = runner.invoke(args=["users", "unlock", "admin_a"])

        assert result.exit_code == 0
        assert not login_throttle_service.is_locked(admin_a)
        assert admin_a.login_attempts == 0

    def test_unlock_unknown_user(self, runner, db_session):
        result = runner.invoke(args=["users", "unlock", "nobody"])
        assert result.exit_code == 1

    def test_seed_super_admin_skips_existing(self, runner, super_admin):
        result = runner.invoke(args=[
            "system", "seed-super-admin", "--username", "root", "--email", "root@example.com",
            "--password", PASSWORD,
        ])
        assert result.exit_code == 0
        assert "already exists" in result.output


class TestStockCommands:

    def test_export_prints_current_names(self, runner, product_a):
        stock_ledger_service.record_receipt(product_a.id, date(2024, 1, 5), 40)
        stock_ledger_service.record_sale(product_a.id, date(2024, 1, 9), 15)

        result = runner.invoke(args=["stock", "export", "--product-id", str(product_a.id)])

        assert result.exit_code == 0, result.output
        documents = json.loads(result.output)
        assert len(documents) == 1
        assert documents[0]["sales"] == 15
        assert documents[0]["closingBalance"] == 25
        assert "usedStock" not in documents[0]

    def test_export_unknown_product(self, runner, db_session):
        result = runner.invoke(args=["stock", "export", "--product-id", "99999"])
        assert result.exit_code == 1

    def test_import_legacy_file(self, runner, tmp_path, product_a):
        path = tmp_path / "march.json"
        path.write_text(json.dumps({
            "year": 2024,
            "month": "March",
            "carryForward": 0,
            "closingBalance": 12,
            "stockDetails": [{"date": "2024-03-02", "type": "ADDED", "invordStock": 12}],
        }))

        result = runner.invoke(args=["stock", "import-legacy", str(path), "--product-id", str(product_a.id)])

        assert result.exit_code == 0, result.output
        assert stock_ledger_service.get_month(product_a.id, 2024, 3).closing_balance == 12

    def test_import_rejects_invalid_json(self, runner, tmp_path, db_session):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        result = runner.invoke(args=["stock", "import-legacy", str(path)])
        assert result.exit_code == 1


class TestMaintenanceCommands:

    def test_purge_otps(self, runner, client, db_session, clock):
        client.post("/api/otp/issue", json={"phoneNumber": "+919876543210", "ttlSeconds": 30})
        clock.advance(minutes=5)

        result = runner.invoke(args=["maintenance", "purge-otps"])

        assert result.exit_code == 0
        assert "Deleted 1 expired OTP record(s)" in result.output
        assert db_session.query(Otp).count() == 0

    def test_drop_legacy_index_when_absent(self, runner, db_session):
        result = runner.invoke(args=["pages", "drop-legacy-index"])
        assert result.exit_code == 0
        assert "No legacy page-name index found" in result.output

    def test_purge_null_pages(self, runner, theater_a):
        result = runner.invoke(args=["pages", "purge-null"])
        assert result.exit_code == 0
        assert "Cleaned 0 catalog document(s) and 0 role(s)" in result.output


class TestExitCodes:

    def test_missing_database_url(self):
        with pytest.raises(SystemExit) as excinfo:
            run(["theaters", "list"], app_factory=lambda: create_app({"SQLALCHEMY_DATABASE_URI": ""}))
        assert excinfo.value.code == EXIT_CONFIG

    def test_datastore_failure(self):
        def factory():
            # Tables are never created, so the first query fails
            return create_app({
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
                "OTP_REAPER_INTERVAL_SECONDS": 0,
            })

        with pytest.raises(SystemExit) as excinfo:
            run(["theaters", "list"], app_factory=factory)
        assert excinfo.value.code == EXIT_DATASTORE
