"""
Penyimpanan transaksi dari keranjang kasir.

Dua strategi tersedia (lihat CHECKOUT_STRATEGY di config):

- ``snapshot``: tiga penulisan terpisah (header transaksi, item, stok)
  masing-masing di-commit sendiri. Stok ditulis ulang dari stok yang
  tercatat saat produk masuk keranjang (stok_snapshot - qty). Jika langkah
  ke-2 atau ke-3 gagal, langkah sebelumnya tetap tersimpan.
- ``atomic``: semua penulisan dalam satu transaksi database, stok dikurangi
  dengan UPDATE bersyarat (stock >= qty), total dihitung ulang di server,
  dan checkout_key keranjang dipakai sebagai idempotency key.
"""
import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cart import Cart
from models import Product, Transaction, TransactionItem

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    message = "Gagal membuat transaksi"

    def __init__(self, message: Optional[str] = None):
        if message:
            self.message = message
        super().__init__(self.message)


class EmptyCart(CheckoutError):
    message = "Keranjang masih kosong"


class PaymentInsufficient(CheckoutError):
    message = "Pembayaran kurang"


class StockConflict(CheckoutError):
    def __init__(self, product_name: str):
        self.product_name = product_name
        super().__init__(f"Stok {product_name} tidak mencukupi")


class CheckoutFailed(CheckoutError):
    pass


def validate(cart: Cart):
    if cart.is_empty:
        raise EmptyCart()
    if cart.payment < cart.total:
        raise PaymentInsufficient()


def commit(db: Session, cart: Cart, user_id: str, strategy: str = "atomic") -> Transaction:
    validate(cart)
    if strategy == "snapshot":
        return _commit_snapshot(db, cart, user_id)
    return _commit_atomic(db, cart, user_id)


def _commit_snapshot(db: Session, cart: Cart, user_id: str) -> Transaction:
    step = "transaction"
    try:
        trx = Transaction(
            user_id=user_id,
            total_price=cart.total,
            payment=cart.payment,
            change_amount=cart.change_amount,
        )
        db.add(trx)
        db.commit()
        db.refresh(trx)
        logger.info(f"Checkout {trx.id}: header tersimpan (total {cart.total})")

        step = "items"
        for line in cart.lines:
            db.add(TransactionItem(
                transaction_id=trx.id,
                product_id=line.product_id,
                quantity=line.quantity,
                price=line.unit_price,
                subtotal=line.subtotal,
            ))
        db.commit()
        logger.info(f"Checkout {trx.id}: {len(cart.lines)} item tersimpan")

        step = "stock"
        for line in cart.lines:
            db.query(Product).filter(Product.id == line.product_id).update(
                {Product.stock: line.available_stock - line.quantity},
                synchronize_session=False,
            )
            db.commit()
        logger.info(f"Checkout {trx.id}: stok diperbarui")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Checkout gagal pada langkah '{step}': {e}", exc_info=True)
        raise CheckoutFailed() from e

    db.refresh(trx)
    return trx


def _commit_atomic(db: Session, cart: Cart, user_id: str) -> Transaction:
    existing = db.query(Transaction).filter(Transaction.idempotency_key == cart.checkout_key).first()
    if existing:
        logger.info(f"Checkout {existing.id}: key {cart.checkout_key} sudah diproses, tidak ditulis ulang")
        return existing

    lines = []
    for line in cart.lines:
        if line.quantity < 1:
            raise CheckoutError(f"Jumlah {line.product_name} tidak valid")
        lines.append((line, line.quantity * line.unit_price))
    total = sum(subtotal for _, subtotal in lines)
    if cart.payment < total:
        raise PaymentInsufficient()

    try:
        trx = Transaction(
            user_id=user_id,
            total_price=total,
            payment=cart.payment,
            change_amount=cart.payment - total,
            idempotency_key=cart.checkout_key,
        )
        db.add(trx)
        db.flush()

        for line, subtotal in lines:
            result = db.execute(
                update(Product)
                .where(Product.id == line.product_id, Product.stock >= line.quantity)
                .values(stock=Product.stock - line.quantity)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                logger.warning(f"Checkout dibatalkan: stok {line.product_name} tidak cukup untuk {line.quantity}")
                raise StockConflict(line.product_name)
            db.add(TransactionItem(
                transaction_id=trx.id,
                product_id=line.product_id,
                quantity=line.quantity,
                price=line.unit_price,
                subtotal=subtotal,
            ))
        db.commit()
    except IntegrityError as e:
        db.rollback()
        # Request paralel dengan key yang sama sudah lebih dulu commit
        existing = db.query(Transaction).filter(Transaction.idempotency_key == cart.checkout_key).first()
        if existing:
            return existing
        logger.error(f"Checkout gagal: {e}", exc_info=True)
        raise CheckoutFailed() from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Checkout gagal: {e}", exc_info=True)
        raise CheckoutFailed() from e

    db.refresh(trx)
    logger.info(f"Checkout {trx.id}: {len(lines)} item, total {total}")
    return trx
