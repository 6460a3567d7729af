import io
from datetime import datetime, timedelta

import pytest
from openpyxl import load_workbook

import loaders
import reports
from models import Category, Transaction, TransactionItem
from conftest import make_product

# 12:00 WIB
NOW = datetime(2024, 5, 10, 5, 0)


def record_sale(db, user, lines, created_at):
    total = sum(qty * price for _, qty, price in lines)
    trx = Transaction(user_id=user.id, total_price=total, payment=total, change_amount=0, created_at=created_at)
    for product, qty, price in lines:
        trx.items.append(TransactionItem(product_id=product.id, quantity=qty, price=price, subtotal=qty * price))
    db.add(trx)
    db.commit()
    return trx


@pytest.fixture()
def sales(db_session, owner, category):
    snack = Category(name="Snack")
    db_session.add(snack)
    db_session.commit()
    kopi = make_product(db_session, category, "Kopi", 20000, 50)
    teh = make_product(db_session, category, "Teh", 8000, 3)
    roti = make_product(db_session, snack, "Roti", 15000, 20)

    record_sale(db_session, owner, [(kopi, 2, 20000), (teh, 1, 8000)], NOW - timedelta(hours=1))
    record_sale(db_session, owner, [(roti, 4, 15000)], NOW - timedelta(days=2))
    record_sale(db_session, owner, [(kopi, 1, 20000)], NOW - timedelta(days=20))
    record_sale(db_session, owner, [(teh, 10, 8000)], NOW - timedelta(days=40))
    return {"kopi": kopi, "teh": teh, "roti": roti}


def test_top_products_ordered_by_quantity(db_session, sales):
    top = reports.get_top_products(db_session, limit=2)
    assert [p["name"] for p in top] == ["Teh", "Roti"]
    assert top[0]["sold"] == 11
    assert top[0]["revenue"] == 88000


def test_category_revenue(db_session, sales):
    rows = {r["category"]: r["revenue"] for r in reports.get_category_revenue(db_session)}
    assert rows == {"Minuman": 40000 + 8000 + 20000 + 80000, "Snack": 60000}


def test_total_products_sold_in_range(db_session, sales):
    assert reports.get_total_products_sold(db_session, NOW - timedelta(days=7), NOW) == 7


def test_build_report_covers_last_30_days(db_session, sales):
    report = reports.build_report(db_session, now=NOW)
    assert report["period_start"] == "2024-04-10"
    assert report["period_end"] == "2024-05-10"
    stats = report["stats"]
    assert stats["total_revenue"] == 48000 + 60000 + 20000
    assert stats["total_transactions"] == 3
    assert stats["total_products"] == 3 + 4 + 1
    assert stats["average_transaction"] == pytest.approx(128000 / 3)
    assert [d["date"] for d in report["daily_revenue"]] == ["2024-04-20", "2024-05-08", "2024-05-10"]
    assert len(report["top_products"]) == 3


def test_build_report_without_transactions(db_session):
    stats = reports.build_report(db_session, now=NOW)["stats"]
    assert stats == {"total_revenue": 0, "total_transactions": 0, "total_products": 0, "average_transaction": 0}


def test_export_workbook_layout(db_session, sales):
    report = reports.build_report(db_session, now=NOW)
    ws = load_workbook(io.BytesIO(reports.export_report_xlsx(report)))["Laporan"]

    assert ws["A1"].value == "LAPORAN PENJUALAN"
    assert ws["A2"].value == "Periode: 2024-04-10 s/d 2024-05-10"
    assert ws["A4"].value == "RINGKASAN"
    assert [ws.cell(row=r, column=1).value for r in range(5, 9)] == [
        "Total Pendapatan", "Total Transaksi", "Produk Terjual", "Rata-rata Transaksi",
    ]
    assert ws["B5"].value == 128000
    assert ws["B6"].value == 3
    assert ws["B8"].value == round(128000 / 3)
    assert ws["A10"].value == "DETAIL PRODUK TERLARIS"
    assert [c.value for c in ws[11]][:4] == ["No", "Nama Produk", "Terjual", "Pendapatan"]
    assert [c.value for c in ws[12]][:4] == [1, "Teh", 11, 88000]
    assert ws["A1"].font.bold


def test_export_endpoint_returns_xlsx(owner_client, sales):
    r = owner_client.get("/dashboard/reports/export")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")
    assert "laporan-penjualan-" in r.headers["content-disposition"]
    ws = load_workbook(io.BytesIO(r.content))["Laporan"]
    assert ws["A1"].value == "LAPORAN PENJUALAN"


def test_reports_page_shows_top_products(owner_client, sales):
    page = owner_client.get("/dashboard/reports").text
    assert "Teh" in page and "Roti" in page


def test_owner_dashboard_stats(db_session, owner, sales):
    data = loaders.load_owner_dashboard(db_session, now=NOW)
    stats = data["stats"]
    assert stats["total_products"] == 3
    assert stats["total_transactions"] == 4
    assert stats["total_revenue"] == 48000 + 60000 + 20000 + 80000
    assert stats["active_users"] == 1
    assert stats["low_stock_products"] == 1  # Teh, stok 3
    assert stats["today_transactions"] == 1
    assert stats["today_revenue"] == 48000

    chart = data["chart"]
    assert len(chart["dates"]) == 7
    assert chart["revenues"][-1] == 48000
    assert chart["revenues"][4] == 60000
    assert sum(chart["transactions"]) == 2
    assert [p["name"] for p in data["top_products"]][:2] == ["Teh", "Roti"]


def test_kasir_dashboard_stats(db_session, sales):
    data = loaders.load_kasir_dashboard(db_session, now=NOW)
    assert data["stats"]["today_transactions"] == 1
    assert data["stats"]["today_revenue"] == 48000
    assert data["recent_transactions"][0]["items_count"] == 2
