# Overview: Pytest coverage for legacy monthly-stock documents.

import json

import pytest

from theaterpos.errors import ValidationError
from theaterpos.models import MonthlyStock
from theaterpos.services import stock_ledger_service, stock_legacy


LEGACY_MARCH = {
    "year": 2024,
    "month": "March",
    "carryForward": 20,
    "usedStock": 25,
    "usedCarryForwardStock": 15,
    "expiredCarryForwardStock": 0,
    "closingBalance": 25,
    "stockDetails": [
        {"date": "2024-03-02", "type": "ADDED", "invordStock": 30, "expiredStock": 0},
        {"date": "2024-03-10", "type": "SOLD", "usedStock": 25},
    ],
}


class TestParseMonth:

    @pytest.mark.parametrize("value,expected", [
        (3, 3),
        ("3", 3),
        ("03", 3),
        ("2024-03", 3),
        ("March", 3),
        ("mar", 3),
        ("DECEMBER", 12),
    ])
    def test_accepted_spellings(self, value, expected):
        assert stock_legacy.parse_month(value) == expected

    @pytest.mark.parametrize("value", [0, 13, "Smarch", "", None])
    def test_rejected(self, value):
        with pytest.raises(ValueError):
            stock_legacy.parse_month(value)


class TestNormalizeDocument:

    def test_legacy_names_map_to_ledger_fields(self):
        fields = stock_legacy.normalize_document(LEGACY_MARCH)

        assert (fields["year"], fields["month"]) == (2024, 3)
        assert fields["opening_old_stock"] == 20
        assert fields["used_old_stock"] == 15
        assert fields["sales"] == 25
        assert fields["closing_balance"] == 25

    def test_synthetic_opening_lot_holds_unused_balance(self):
        fields = stock_legacy.normalize_document(LEGACY_MARCH)

        assert len(fields["opening_lots"]) == 1
        lot = fields["opening_lots"][0]
        assert lot["lot_id"] == "opening-2024-03"
        assert lot["opening_quantity"] == 20
        assert lot["remaining"] == 5

    def test_only_receipt_entries_become_lots(self):
        fields = stock_legacy.normalize_document(LEGACY_MARCH)

        assert len(fields["stock_details"]) == 1
        lot = fields["stock_details"][0]
        assert lot["quantity"] == 30
        # closing 25 = 5 unused old stock + 20 left of the receipt
        assert lot["remaining"] == 20
        assert lot["sold"] == 10

    def test_current_names_pass_through(self):
        doc = {
            "year": 2024,
            "monthNumber": 5,
            "oldStock": 8,
            "usedOldStock": 3,
            "expiredOldStock": 1,
            "sales": 3,
            "closingBalance": 4,
            "openingLots": [{"lotId": "x1", "oldStock": 8, "usedOldStock": 3, "expiredOldStock": 1, "remaining": 4}],
            "stockDetails": [],
        }
        fields = stock_legacy.normalize_document(doc)
        assert fields["month"] == 5
        assert fields["expired_old_stock"] == 1
        assert fields["opening_lots"][0]["lot_id"] == "x1"
        assert fields["opening_lots"][0]["remaining"] == 4

    def test_receipt_lot_aliases(self):
        lot = stock_legacy.normalize_receipt_lot({
            "lotId": "abc",
            "date": "2024-03-02",
            "invordStock": 12,
            "sales": 2,
            "expiredStock": 1,
            "expireDate": "2024-04-01",
            "unitCost": "9.5",
        })
        assert lot == {
            "lot_id": "abc",
            "lot_date": "2024-03-02",
            "quantity": 12,
            "unit_cost": 9.5,
            "expires_at": "2024-04-01T00:00:00Z",
            "remaining": 9,
            "sold": 2,
            "expired": 1,
            "batch_number": None,
        }

    def test_needs_migration(self):
        assert stock_legacy.needs_migration([{"lotId": "a", "invordStock": 1}], "receipt")
        current = stock_legacy.normalize_lots([{"lotId": "a", "invordStock": 1}], "receipt")
        assert not stock_legacy.needs_migration(current, "receipt")


class TestImportExport:

    def test_import_writes_normalized_row(self, db_session, product_a):
        written = stock_ledger_service.import_documents([LEGACY_MARCH], product_id=product_a.id)

        assert written == 1
        row = stock_ledger_service.get_month(product_a.id, 2024, 3)
        assert row.opening_old_stock == 20
        assert row.used_old_stock == 15
        assert row.sales == 25
        assert row.closing_balance == 25
        assert row.total_receipts == 30

    def test_export_uses_current_names_only(self, db_session, product_a):
        stock_ledger_service.import_documents([LEGACY_MARCH], product_id=product_a.id)
        row = stock_ledger_service.get_month(product_a.id, 2024, 3)

        doc = stock_legacy.to_document(row)
        text = json.dumps(doc)

        assert doc["oldStock"] == 20
        assert doc["usedOldStock"] == 15
        assert doc["sales"] == 25
        assert doc["month"] == "March"
        for legacy_name in ("carryForward", "usedStock", "usedCarryForwardStock", "expiredCarryForwardStock", "totalUsedStock"):
            assert f'"{legacy_name}"' not in text

    def test_export_round_trips_through_import(self, db_session, product_a):
        stock_ledger_service.import_documents([LEGACY_MARCH], product_id=product_a.id)
        exported = stock_legacy.to_document(stock_ledger_service.get_month(product_a.id, 2024, 3))

        fields = stock_legacy.normalize_document(exported)

        assert fields["opening_old_stock"] == 20
        assert fields["closing_balance"] == 25
        assert sum(lot["remaining"] for lot in fields["stock_details"]) == 20

    def test_imported_month_continues_with_ledger_writes(self, db_session, product_a):
        stock_ledger_service.import_documents([LEGACY_MARCH], product_id=product_a.id)

        april = stock_ledger_service.rollover(product_a.id, 2024, 3)

        assert april.opening_old_stock == 25
        assert sum(lot["remaining"] for lot in april.opening_lots) == 25

    def test_import_requires_product(self, db_session):
        with pytest.raises(ValidationError):
            stock_ledger_service.import_documents([dict(LEGACY_MARCH)])

    def test_import_rejects_bad_month(self, db_session, product_a):
        with pytest.raises(ValidationError):
            stock_ledger_service.import_documents([dict(LEGACY_MARCH, month="Smarch")], product_id=product_a.id)

    def test_migrate_legacy_rows(self, db_session, product_a):
        db_session.add(MonthlyStock(
            theater_id=product_a.theater_id,
            product_id=product_a.id,
            year=2024,
            month=4,
            opening_old_stock=0,
            closing_balance=10,
            opening_lots=[],
            stock_details=[{"lotId": "a1", "date": "2024-04-01", "invordStock": 10, "remaining": 10}],
        ))
        db_session.commit()

        assert stock_ledger_service.migrate_legacy_rows() == 1
        row = stock_ledger_service.get_month(product_a.id, 2024, 4)
        assert set(row.stock_details[0]) == set(stock_legacy.RECEIPT_LOT_ALIASES)
        assert row.stock_details[0]["lot_id"] == "a1"
        assert row.total_receipts == 10

        assert stock_ledger_service.migrate_legacy_rows() == 0
