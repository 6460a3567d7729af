import io
from datetime import datetime, timedelta
from typing import Optional

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from sqlalchemy import func
from sqlalchemy.orm import Session

from clock import to_local, utcnow
from models import Category, Product, Transaction, TransactionItem

REPORT_DAYS = 30


# -------- Aggregasi ----------
def get_top_products(db: Session, limit: int = 5):
    rows = (
        db.query(
            Product.id,
            Product.name,
            func.sum(TransactionItem.quantity).label("sold"),
            func.sum(TransactionItem.subtotal).label("revenue"),
        )
        .join(TransactionItem, TransactionItem.product_id == Product.id)
        .group_by(Product.id, Product.name)
        .order_by(func.sum(TransactionItem.quantity).desc())
        .limit(limit)
        .all()
    )
    return [{"product_id": r.id, "name": r.name, "sold": int(r.sold or 0), "revenue": r.revenue or 0} for r in rows]

def get_category_revenue(db: Session):
    rows = (
        db.query(
            Category.id,
            Category.name,
            func.sum(TransactionItem.subtotal).label("revenue"),
        )
        .join(Product, Product.category_id == Category.id)
        .join(TransactionItem, TransactionItem.product_id == Product.id)
        .group_by(Category.id, Category.name)
        .order_by(func.sum(TransactionItem.subtotal).desc())
        .all()
    )
    return [{"category_id": r.id, "category": r.name, "revenue": r.revenue or 0} for r in rows]

def get_total_products_sold(db: Session, start: datetime, end: datetime) -> int:
    total = (
        db.query(func.sum(TransactionItem.quantity))
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(Transaction.created_at >= start, Transaction.created_at <= end)
        .scalar()
    )
    return int(total or 0)


def build_report(db: Session, now: Optional[datetime] = None):
    now = now or utcnow()
    start = now - timedelta(days=REPORT_DAYS)
    transactions = (
        db.query(Transaction.created_at, Transaction.total_price)
        .filter(Transaction.created_at >= start)
        .all()
    )

    daily = {}
    for t in transactions:
        day = to_local(t.created_at).strftime("%Y-%m-%d")
        daily[day] = daily.get(day, 0) + t.total_price
    daily_revenue = [{"date": d, "revenue": daily[d]} for d in sorted(daily)]

    total_revenue = sum(t.total_price for t in transactions)
    count = len(transactions)
    return {
        "period_start": to_local(start).strftime("%Y-%m-%d"),
        "period_end": to_local(now).strftime("%Y-%m-%d"),
        "stats": {
            "total_revenue": total_revenue,
            "total_transactions": count,
            "total_products": get_total_products_sold(db, start, now),
            "average_transaction": total_revenue / count if count else 0,
        },
        "daily_revenue": daily_revenue,
        "top_products": get_top_products(db, limit=10),
        "category_revenue": get_category_revenue(db),
    }


# -------- Export Excel ----------
# Nomor baris Excel untuk judul blok. Data ditulis tepat di bawahnya
# (startrow pandas dihitung dari 0).
SUMMARY_ROW = 4
TABLE_ROW = 10

def export_report_xlsx(report) -> bytes:
    stats = report["stats"]
    df_summary = pd.DataFrame([
        ["Total Pendapatan", stats["total_revenue"]],
        ["Total Transaksi", stats["total_transactions"]],
        ["Produk Terjual", stats["total_products"]],
        ["Rata-rata Transaksi", round(stats["average_transaction"])],
    ])
    df_top = pd.DataFrame(
        [[i + 1, p["name"], p["sold"], p["revenue"]] for i, p in enumerate(report["top_products"])],
        columns=["No", "Nama Produk", "Terjual", "Pendapatan"],
    )

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df_summary.to_excel(writer, sheet_name="Laporan", index=False, header=False, startrow=SUMMARY_ROW)
        df_top.to_excel(writer, sheet_name="Laporan", index=False, startrow=TABLE_ROW)
        ws = writer.book["Laporan"]

        ws["A1"] = "LAPORAN PENJUALAN"
        ws["A2"] = f"Periode: {report['period_start']} s/d {report['period_end']}"
        ws.cell(row=SUMMARY_ROW, column=1, value="RINGKASAN")
        ws.cell(row=TABLE_ROW, column=1, value="DETAIL PRODUK TERLARIS")
        ws.merge_cells("A1:D1")
        ws.merge_cells("A2:D2")

        _apply_report_styling(ws)

    return output.getvalue()

def _apply_report_styling(ws):
    header_fill = PatternFill(start_color="E5E7EB", end_color="E5E7EB", fill_type="solid")
    border_style = Border(
        left=Side(style="thin"),
        right=Side(style="thin"),
        top=Side(style="thin"),
        bottom=Side(style="thin")
    )

    for row in ws.iter_rows(min_row=1, max_row=ws.max_row, max_col=4):
        for cell in row:
            if cell.value is None:
                continue
            cell.border = border_style
            horizontal = "left" if cell.column == 1 else "right"
            cell.alignment = Alignment(horizontal=horizontal, vertical="center")
            if isinstance(cell.value, (int, float)):
                cell.number_format = "#,##0"

    ws["A1"].font = Font(bold=True, size=16)
    ws["A1"].alignment = Alignment(horizontal="center")
    for cell in ws[TABLE_ROW + 1]:
        cell.fill = header_fill
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")

    for letter, width in zip("ABCD", (6, 25, 15, 20)):
        ws.column_dimensions[letter].width = width
