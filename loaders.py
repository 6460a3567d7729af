"""Data untuk setiap halaman dashboard."""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from config import LOW_STOCK_THRESHOLD
from clock import utcnow, to_local, local_day_start_utc
from models import Category, Discount, Product, Transaction, TransactionItem, User
import auth
import reports


# -------- CRUD pages ----------
def load_products_page(db: Session):
    products = (
        db.query(Product)
        .options(joinedload(Product.category), joinedload(Product.discount))
        .order_by(Product.created_at.desc())
        .all()
    )
    categories = db.query(Category).order_by(Category.name).all()
    discounts = db.query(Discount).order_by(Discount.name).all()
    return {"products": products, "categories": categories, "discounts": discounts}

def load_categories_page(db: Session):
    return {"categories": db.query(Category).order_by(Category.created_at.desc()).all()}

def load_discounts_page(db: Session):
    return {"discounts": db.query(Discount).order_by(Discount.created_at.desc()).all()}

def load_users_page(db: Session):
    users = db.query(User).order_by(User.created_at.desc()).all()
    emails = {identity.id: identity.email for identity in auth.list_identities(db)}
    return {"users": [{"user": u, "email": emails.get(u.id, "")} for u in users]}


# -------- Transactions ----------
def _transactions_query(db: Session):
    return db.query(Transaction).options(
        joinedload(Transaction.user),
        selectinload(Transaction.items).joinedload(TransactionItem.product),
    )

def load_transactions_page(db: Session, date_filter: Optional[str] = None):
    transactions = _transactions_query(db).order_by(Transaction.created_at.desc()).all()
    if date_filter:
        transactions = [t for t in transactions if to_local(t.created_at).strftime("%Y-%m-%d") == date_filter]
    return {
        "transactions": transactions,
        "date_filter": date_filter or "",
        "total_revenue": sum(t.total_price for t in transactions),
        "total_transactions": len(transactions),
    }

def load_transaction(db: Session, trx_id: str) -> Optional[Transaction]:
    return _transactions_query(db).filter(Transaction.id == trx_id).first()

def load_checkout_page(db: Session, search: str = ""):
    query = (
        db.query(Product)
        .options(joinedload(Product.discount))
        .filter(Product.is_active == True, Product.stock > 0)  # noqa: E712
    )
    if search:
        query = query.filter(func.lower(Product.name).contains(search.lower()))
    return {"products": query.order_by(Product.name).all(), "search": search}


# -------- Dashboards ----------
def _chart_last_7_days(transactions, now: datetime):
    today = to_local(now).date()
    days = [today - timedelta(days=6 - i) for i in range(7)]
    data = {d: {"revenue": 0, "count": 0} for d in days}
    for t in transactions:
        d = to_local(t.created_at).date()
        if d in data:
            data[d]["revenue"] += t.total_price
            data[d]["count"] += 1
    return {
        "dates": [d.strftime("%d %b") for d in days],
        "revenues": [data[d]["revenue"] for d in days],
        "transactions": [data[d]["count"] for d in days],
    }

def load_owner_dashboard(db: Session, now: Optional[datetime] = None):
    now = now or utcnow()
    today_start = local_day_start_utc(now)
    all_trx = db.query(Transaction.total_price, Transaction.created_at).all()
    today_trx = [t for t in all_trx if t.created_at >= today_start]
    last_7 = [t for t in all_trx if t.created_at >= now - timedelta(days=7)]
    stats = {
        "total_products": db.query(Product).count(),
        "total_transactions": len(all_trx),
        "total_revenue": sum(t.total_price for t in all_trx),
        "active_users": db.query(User).filter(User.is_active == True).count(),  # noqa: E712
        "low_stock_products": db.query(Product).filter(Product.stock <= LOW_STOCK_THRESHOLD).count(),
        "today_transactions": len(today_trx),
        "today_revenue": sum(t.total_price for t in today_trx),
    }
    return {
        "stats": stats,
        "chart": _chart_last_7_days(last_7, now),
        "top_products": reports.get_top_products(db, limit=5),
    }

def load_kasir_dashboard(db: Session, now: Optional[datetime] = None):
    now = now or utcnow()
    today_start = local_day_start_utc(now)
    today_trx = db.query(Transaction).filter(Transaction.created_at >= today_start)
    recent = (
        today_trx.options(selectinload(Transaction.items))
        .order_by(Transaction.created_at.desc())
        .limit(5)
        .all()
    )
    today_all = today_trx.all()
    return {
        "stats": {
            "today_transactions": len(today_all),
            "today_revenue": sum(t.total_price for t in today_all),
            "low_stock_count": db.query(Product).filter(Product.stock <= LOW_STOCK_THRESHOLD).count(),
        },
        "recent_transactions": [
            {"id": t.id, "created_at": t.created_at, "total_price": t.total_price, "items_count": len(t.items)}
            for t in recent
        ],
    }
