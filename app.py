import io
import math
import logging
import os
from typing import Optional

from fastapi import FastAPI, Request, Depends, Form, Query
from fastapi.responses import HTMLResponse, RedirectResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload
from starlette.middleware.sessions import SessionMiddleware

import config
import auth
import checkout
import loaders
import reports
from cart import Cart, StockInsufficient, unit_price_for
from clock import format_datetime_tz
from db import engine, Base, get_db
from models import CartDraft, Category, Discount, Product, User
from schemas import (
    CategoryIn, DiscountIn, ProductIn, UserCreateIn, UserUpdateIn, LoginIn, field_errors,
)

logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)
logger.info("Tabel database siap")

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

app = FastAPI(title="Frendo POS")
app.add_middleware(SessionMiddleware, secret_key=config.SECRET_KEY)
app.mount("/static", StaticFiles(directory=os.path.join(BASE_DIR, "static")), name="static")
templates = Jinja2Templates(directory=os.path.join(BASE_DIR, "templates"))

def format_idr(value):
    return "{:,}".format(int(value)).replace(",", ".")

templates.env.filters["format_idr"] = format_idr
templates.env.filters["format_datetime_tz"] = format_datetime_tz
templates.env.globals["unit_price_for"] = unit_price_for

def flash(request: Request, message: str, kind: str = "error"):
    request.session["flash"] = {"message": message, "kind": kind}

def render(request: Request, name: str, principal=None, status_code: int = 200, **context):
    context.update({
        "principal": principal,
        "flash": request.session.pop("flash", None),
        "store": {"name": config.STORE_NAME, "address": config.STORE_ADDRESS, "phone": config.STORE_PHONE},
    })
    return templates.TemplateResponse(request, name, context, status_code=status_code)

def get_cart(db: Session, principal) -> Cart:
    # Keranjang disimpan di database, cookie session hanya berisi user_id
    draft = db.query(CartDraft).filter(CartDraft.user_id == principal.user_id).first()
    return Cart.from_dict(draft.data if draft else None)

def save_cart(db: Session, principal, cart: Cart):
    draft = db.query(CartDraft).filter(CartDraft.user_id == principal.user_id).first()
    if draft is None:
        draft = CartDraft(user_id=principal.user_id)
        db.add(draft)
    draft.data = cart.to_dict()
    db.commit()

def parse_amount(value: Optional[str]) -> Optional[float]:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) else None

def parse_delta(value: Optional[str]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None

def checked(value: Optional[str]) -> bool:
    # Checkbox HTML hanya terkirim saat dicentang
    return value is not None and value not in ("", "0", "false", "off")


def save_record(db: Session, model, record_id: Optional[str], values: dict, label: str) -> bool:
    """Insert (tanpa id) atau update berdasarkan primary key. False jika gagal."""
    try:
        if record_id:
            obj = db.query(model).filter(model.id == record_id).first()
            if not obj:
                return False
            for key, value in values.items():
                setattr(obj, key, value)
            action = "diperbarui"
        else:
            obj = model(**values)
            db.add(obj)
            action = "ditambahkan"
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Gagal menyimpan {label}: {e}")
        return False
    logger.info(f"{label} {obj.id} {action}")
    return True

def delete_record(db: Session, model, record_id: str, label: str) -> bool:
    try:
        obj = db.query(model).filter(model.id == record_id).first()
        if not obj:
            return False
        db.delete(obj)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Gagal menghapus {label} {record_id}: {e}")
        return False
    logger.info(f"{label} {record_id} dihapus")
    return True


@app.get("/health")
def health_check():
    return {"status": "healthy"}

@app.get("/", response_class=HTMLResponse)
def home(request: Request):
    if not request.session.get("user_id"):
        return RedirectResponse("/login", status_code=302)
    return RedirectResponse("/dashboard", status_code=302)

# -------- LOGIN ----------
@app.get("/login", response_class=HTMLResponse)
def login_page(request: Request, db: Session = Depends(get_db)):
    if auth.resolve_session(request, db):
        return RedirectResponse("/dashboard", status_code=302)
    return render(request, "login.html", errors={}, email="")

@app.post("/login")
def login(request: Request, email: str = Form(""), password: str = Form(""), db: Session = Depends(get_db)):
    try:
        data = LoginIn(email=email, password=password)
    except ValidationError as e:
        return render(request, "login.html", status_code=400, errors=field_errors(e, "login"), email=email)

    user = auth.sign_in(db, data.email, data.password)
    if not user:
        return render(request, "login.html", status_code=400, errors={"form": "Email atau password salah"}, email=email)
    request.session.clear()
    request.session["user_id"] = user.id
    flash(request, "Login berhasil!", "success")
    return RedirectResponse("/dashboard", status_code=302)

@app.get("/logout")
def logout(request: Request):
    request.session.clear()
    return RedirectResponse("/login", status_code=302)

# -------- DASHBOARD ----------
@app.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request, db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "dashboard")
    if r: return r
    if principal.can("reports"):
        return render(request, "dashboard_owner.html", principal, **loaders.load_owner_dashboard(db))
    return render(request, "dashboard_kasir.html", principal, **loaders.load_kasir_dashboard(db))

# -------- PRODUCTS ----------
@app.get("/dashboard/products", response_class=HTMLResponse)
def products_page(request: Request, edit: str = None, db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "products")
    if r: return r
    draft = db.query(Product).filter(Product.id == edit).first() if edit else None
    return render(request, "products.html", principal, draft=draft, errors={}, **loaders.load_products_page(db))

@app.post("/dashboard/products/save")
def save_product(
    request: Request,
    id: str = Form(""),
    name: str = Form(""),
    price: str = Form(""),
    stock: str = Form(""),
    category_id: str = Form(""),
    discount_id: str = Form(""),
    is_active: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    principal, r = auth.require_capability(request, db, "products")
    if r: return r
    form = dict(name=name, price=price, stock=stock, category_id=category_id, discount_id=discount_id, is_active=checked(is_active))
    try:
        data = ProductIn(**form)
    except ValidationError as e:
        draft = dict(form, id=id)
        return render(request, "products.html", principal, status_code=400, draft=draft,
                      errors=field_errors(e, "product"), **loaders.load_products_page(db))

    values = data.model_dump()
    values["category_id"] = str(data.category_id)
    values["discount_id"] = str(data.discount_id) if data.discount_id else None
    if save_record(db, Product, id or None, values, "Produk"):
        flash(request, "Produk berhasil diperbarui" if id else "Produk berhasil ditambahkan", "success")
    else:
        flash(request, "Gagal menyimpan produk")
    return RedirectResponse("/dashboard/products", status_code=302)

@app.post("/dashboard/products/delete")
def delete_product(request: Request, id: str = Form(...), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "products")
    if r: return r
    if delete_record(db, Product, id, "Produk"):
        flash(request, "Produk berhasil dihapus", "success")
    else:
        flash(request, "Gagal menghapus produk")
    return RedirectResponse("/dashboard/products", status_code=302)

# -------- CATEGORIES ----------
@app.get("/dashboard/categories", response_class=HTMLResponse)
def categories_page(request: Request, edit: str = None, db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "categories")
    if r: return r
    draft = db.query(Category).filter(Category.id == edit).first() if edit else None
    return render(request, "categories.html", principal, draft=draft, errors={}, **loaders.load_categories_page(db))

@app.post("/dashboard/categories/save")
def save_category(request: Request, id: str = Form(""), name: str = Form(""), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "categories")
    if r: return r
    try:
        data = CategoryIn(name=name)
    except ValidationError as e:
        return render(request, "categories.html", principal, status_code=400, draft={"id": id, "name": name},
                      errors=field_errors(e, "category"), **loaders.load_categories_page(db))

    if save_record(db, Category, id or None, data.model_dump(), "Kategori"):
        flash(request, "Kategori berhasil diperbarui" if id else "Kategori berhasil ditambahkan", "success")
    else:
        flash(request, "Gagal menyimpan kategori")
    return RedirectResponse("/dashboard/categories", status_code=302)

@app.post("/dashboard/categories/delete")
def delete_category(request: Request, id: str = Form(...), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "categories")
    if r: return r
    if delete_record(db, Category, id, "Kategori"):
        flash(request, "Kategori berhasil dihapus", "success")
    else:
        flash(request, "Gagal menghapus kategori")
    return RedirectResponse("/dashboard/categories", status_code=302)

# -------- DISCOUNTS ----------
@app.get("/dashboard/discounts", response_class=HTMLResponse)
def discounts_page(request: Request, edit: str = None, db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "discounts")
    if r: return r
    draft = db.query(Discount).filter(Discount.id == edit).first() if edit else None
    return render(request, "discounts.html", principal, draft=draft, errors={}, **loaders.load_discounts_page(db))

@app.post("/dashboard/discounts/save")
def save_discount(
    request: Request,
    id: str = Form(""),
    name: str = Form(""),
    type: str = Form(""),
    value: str = Form(""),
    is_active: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    principal, r = auth.require_capability(request, db, "discounts")
    if r: return r
    form = dict(name=name, type=type, value=value, is_active=checked(is_active))
    try:
        data = DiscountIn(**form)
    except ValidationError as e:
        return render(request, "discounts.html", principal, status_code=400, draft=dict(form, id=id),
                      errors=field_errors(e, "discount"), **loaders.load_discounts_page(db))

    if save_record(db, Discount, id or None, data.model_dump(), "Diskon"):
        flash(request, "Diskon berhasil diperbarui" if id else "Diskon berhasil ditambahkan", "success")
    else:
        flash(request, "Gagal menyimpan diskon")
    return RedirectResponse("/dashboard/discounts", status_code=302)

@app.post("/dashboard/discounts/delete")
def delete_discount(request: Request, id: str = Form(...), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "discounts")
    if r: return r
    if delete_record(db, Discount, id, "Diskon"):
        flash(request, "Diskon berhasil dihapus", "success")
    else:
        flash(request, "Gagal menghapus diskon")
    return RedirectResponse("/dashboard/discounts", status_code=302)

# -------- USERS ----------
@app.get("/dashboard/users", response_class=HTMLResponse)
def users_page(request: Request, edit: str = None, db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "users")
    if r: return r
    draft = db.query(User).filter(User.id == edit).first() if edit else None
    return render(request, "users.html", principal, draft=draft, errors={}, **loaders.load_users_page(db))

@app.post("/dashboard/users/save")
def save_user(
    request: Request,
    id: str = Form(""),
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    role: str = Form("kasir"),
    is_active: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    principal, r = auth.require_capability(request, db, "users")
    if r: return r
    form = dict(name=name, role=role, is_active=checked(is_active))
    try:
        if id:
            data = UserUpdateIn(**form)
        else:
            data = UserCreateIn(email=email, password=password, **form)
    except ValidationError as e:
        draft = dict(form, id=id, email=email)
        return render(request, "users.html", principal, status_code=400, draft=draft,
                      errors=field_errors(e, "user"), **loaders.load_users_page(db))

    if id:
        ok = save_record(db, User, id, data.model_dump(), "User")
        flash(request, "User berhasil diupdate" if ok else "Gagal menyimpan user", "success" if ok else "error")
        return RedirectResponse("/dashboard/users", status_code=302)

    try:
        identity = auth.create_identity(db, data.email, data.password)
        db.add(User(id=identity.id, name=data.name, role=data.role, is_active=data.is_active))
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Gagal membuat user {data.email}: {e}")
        flash(request, "Email sudah terdaftar")
        return RedirectResponse("/dashboard/users", status_code=302)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Gagal membuat user {data.email}: {e}")
        flash(request, "Gagal menyimpan user")
        return RedirectResponse("/dashboard/users", status_code=302)
    logger.info(f"User {identity.id} ({data.role}) ditambahkan")
    flash(request, "User berhasil ditambahkan", "success")
    return RedirectResponse("/dashboard/users", status_code=302)

@app.post("/dashboard/users/delete")
def delete_user(request: Request, id: str = Form(...), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "users")
    if r: return r
    if not delete_record(db, User, id, "User"):
        flash(request, "Gagal menghapus user")
        return RedirectResponse("/dashboard/users", status_code=302)

    # Identitas login dihapus best-effort; profil sudah terhapus
    try:
        if not auth.delete_identity(db, id):
            logger.warning(f"Identitas login {id} tidak ditemukan")
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Tidak bisa menghapus identitas login {id}: {e}")
    flash(request, "User berhasil dihapus", "success")
    return RedirectResponse("/dashboard/users", status_code=302)

# -------- TRANSACTIONS ----------
@app.get("/dashboard/transactions", response_class=HTMLResponse)
def transactions_page(request: Request, date: str = None, detail: str = None, db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "transactions")
    if r: return r
    selected = loaders.load_transaction(db, detail) if detail else None
    return render(request, "transactions.html", principal, selected=selected, **loaders.load_transactions_page(db, date))

@app.get("/dashboard/transactions/{trx_id}/receipt", response_class=HTMLResponse)
def receipt_page(request: Request, trx_id: str, db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "transactions")
    if r: return r
    trx = loaders.load_transaction(db, trx_id)
    if not trx:
        return RedirectResponse("/dashboard/transactions", status_code=302)
    return render(request, "receipt.html", principal, trx=trx)

# -------- CHECKOUT ----------
CHECKOUT_URL = "/dashboard/transactions/create"

@app.get(CHECKOUT_URL, response_class=HTMLResponse)
def checkout_page(request: Request, q: str = Query(""), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "checkout")
    if r: return r
    return render(request, "checkout.html", principal, cart=get_cart(db, principal), **loaders.load_checkout_page(db, q))

@app.post(CHECKOUT_URL + "/add")
def cart_add(request: Request, product_id: str = Form(...), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "checkout")
    if r: return r
    product = (
        db.query(Product)
        .options(joinedload(Product.discount))
        .filter(Product.id == product_id, Product.is_active == True)  # noqa: E712
        .first()
    )
    if not product:
        flash(request, "Produk tidak ditemukan")
        return RedirectResponse(CHECKOUT_URL, status_code=302)
    cart = get_cart(db, principal)
    try:
        cart.add(product)
    except StockInsufficient:
        flash(request, "Stok tidak mencukupi")
        return RedirectResponse(CHECKOUT_URL, status_code=302)
    save_cart(db, principal, cart)
    flash(request, f"{product.name} ditambahkan ke keranjang", "success")
    return RedirectResponse(CHECKOUT_URL, status_code=302)

@app.post(CHECKOUT_URL + "/quantity")
def cart_quantity(request: Request, product_id: str = Form(...), delta: str = Form(""), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "checkout")
    if r: return r
    step = parse_delta(delta)
    if step is None:
        flash(request, "Jumlah tidak valid")
        return RedirectResponse(CHECKOUT_URL, status_code=302)
    cart = get_cart(db, principal)
    try:
        cart.adjust(product_id, step)
    except StockInsufficient:
        flash(request, "Stok tidak mencukupi")
        return RedirectResponse(CHECKOUT_URL, status_code=302)
    save_cart(db, principal, cart)
    return RedirectResponse(CHECKOUT_URL, status_code=302)

@app.post(CHECKOUT_URL + "/remove")
def cart_remove(request: Request, product_id: str = Form(...), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "checkout")
    if r: return r
    cart = get_cart(db, principal)
    cart.remove(product_id)
    save_cart(db, principal, cart)
    return RedirectResponse(CHECKOUT_URL, status_code=302)

@app.post(CHECKOUT_URL + "/payment")
def cart_payment(request: Request, payment: str = Form("0"), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "checkout")
    if r: return r
    amount = parse_amount(payment)
    if amount is None:
        flash(request, "Jumlah bayar tidak valid")
        return RedirectResponse(CHECKOUT_URL, status_code=302)
    cart = get_cart(db, principal)
    cart.payment = amount
    save_cart(db, principal, cart)
    return RedirectResponse(CHECKOUT_URL, status_code=302)

@app.post(CHECKOUT_URL + "/clear")
def cart_clear(request: Request, db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "checkout")
    if r: return r
    cart = get_cart(db, principal)
    cart.clear()
    save_cart(db, principal, cart)
    return RedirectResponse(CHECKOUT_URL, status_code=302)

@app.post(CHECKOUT_URL + "/checkout")
def cart_checkout(request: Request, payment: Optional[str] = Form(None), db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "checkout")
    if r: return r
    cart = get_cart(db, principal)
    if payment is not None:
        amount = parse_amount(payment)
        if amount is None:
            flash(request, "Jumlah bayar tidak valid")
            return RedirectResponse(CHECKOUT_URL, status_code=302)
        cart.payment = amount
        save_cart(db, principal, cart)
    try:
        trx = checkout.commit(db, cart, principal.user_id, strategy=config.CHECKOUT_STRATEGY)
    except checkout.CheckoutError as e:
        flash(request, e.message)
        return RedirectResponse(CHECKOUT_URL, status_code=302)
    cart.clear()
    save_cart(db, principal, cart)
    flash(request, "Transaksi berhasil!", "success")
    return RedirectResponse(f"/dashboard/transactions/{trx.id}/receipt", status_code=302)

# -------- REPORTS ----------
@app.get("/dashboard/reports", response_class=HTMLResponse)
def reports_page(request: Request, db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "reports")
    if r: return r
    return render(request, "reports.html", principal, report=reports.build_report(db))

@app.get("/dashboard/reports/export")
def export_report(request: Request, db: Session = Depends(get_db)):
    principal, r = auth.require_capability(request, db, "reports")
    if r: return r
    report = reports.build_report(db)
    content = reports.export_report_xlsx(report)
    file_name = f"laporan-penjualan-{report['period_start']}.xlsx"
    return StreamingResponse(io.BytesIO(content), media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", headers={
        "Content-Disposition": f"attachment; filename={file_name}"
    })
