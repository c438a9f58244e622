from __future__ import annotations

from datetime import date
from io import BytesIO

from openpyxl import load_workbook


def _seed(client, add_txn, category_id) -> None:
    add_txn(3_000_000, "INCOME", description="Gaji Maret")
    add_txn(125_000, description="Makan <malam> & dessert")
    client.post("/api/budgets", json={
        "category_id": category_id("Makan & Minum"), "amount": 1_000_000,
        "year": date.today().year, "month": date.today().month,
    })


def test_csv_export_has_totals_and_rows(client, add_txn, category_id) -> None:
    _seed(client, add_txn, category_id)

    resp = client.get("/api/export/transactions?format=csv")

    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert "attachment" in resp.headers["Content-Disposition"]
    text = resp.get_data(as_text=True)
    assert "Total Income,3000000.00" in text
    assert "Total Expense,125000.00" in text
    assert "Date,Description,Category,Wallet,Type,Amount,Notes" in text
    assert "Makan <malam> & dessert" in text


def test_csv_export_filters_by_type(client, add_txn, category_id) -> None:
    _seed(client, add_txn, category_id)

    text = client.get("/api/export/transactions?format=csv&type=income").get_data(as_text=True)

    assert "Gaji Maret" in text
    assert "dessert" not in text


def test_xlsx_export_is_a_workbook(client, add_txn, category_id) -> None:
    _seed(client, add_txn, category_id)

    resp = client.get("/api/export/transactions?format=xlsx")

    assert resp.status_code == 200
    assert resp.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    ws = load_workbook(BytesIO(resp.data)).active
    values = [row for row in ws.iter_rows(values_only=True)]
    header_index = values.index(("Date", "Description", "Category", "Wallet", "Type", "Amount", "Notes"))
    descriptions = {row[1] for row in values[header_index + 1:]}
    assert descriptions == {"Gaji Maret", "Makan <malam> & dessert"}


def test_pdf_exports(client, add_txn, category_id) -> None:
    _seed(client, add_txn, category_id)

    txn_pdf = client.get("/api/export/transactions?format=pdf")
    budget_pdf = client.get("/api/export/budgets?format=pdf")

    for resp in (txn_pdf, budget_pdf):
        assert resp.status_code == 200
        assert resp.mimetype == "application/pdf"
        assert resp.data.startswith(b"%PDF")


def test_budget_xlsx_lists_status_rows(client, add_txn, category_id) -> None:
    _seed(client, add_txn, category_id)

    resp = client.get("/api/export/budgets?format=xlsx")

    ws = load_workbook(BytesIO(resp.data)).active
    rows = [row for row in ws.iter_rows(values_only=True) if row and row[0] == "Makan & Minum"]
    assert len(rows) == 1


def test_export_is_recorded_in_activity_log(client, add_txn, category_id) -> None:
    _seed(client, add_txn, category_id)
    client.get("/api/export/transactions?format=csv")

    activity = client.get("/api/family/activity?action=EXPORT").get_json()["activities"]

    assert activity[0]["entity_type"] == "Transaction"
    assert activity[0]["details"]["rows"] == 2


def test_unknown_format_is_rejected(client, admin) -> None:
    resp = client.get("/api/export/transactions?format=docx")

    assert resp.status_code == 400
    assert resp.get_json()["field"] == "format"
