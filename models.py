import uuid
from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from db import Base

def new_id():
    return str(uuid.uuid4())

class Category(Base):
    __tablename__ = "categories"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    products = relationship("Product", back_populates="category")

class Discount(Base):
    __tablename__ = "discounts"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="percent")  # percent/fixed
    value = Column(Float, nullable=False, default=0)  # persen 1-100 atau nominal rupiah
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class Product(Base):
    __tablename__ = "products"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False, default=0)  # Harga jual sebelum diskon
    stock = Column(Integer, nullable=False, default=0)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    discount_id = Column(String(36), ForeignKey("discounts.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    category = relationship("Category", back_populates="products")
    discount = relationship("Discount")

class AuthIdentity(Base):
    """Kredensial login. Profil aplikasi ada di tabel users dengan id yang sama."""
    __tablename__ = "auth_identities"
    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

class User(Base):
    __tablename__ = "users"
    id = Column(String(36), primary_key=True)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="kasir")  # owner/kasir
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    total_price = Column(Float, nullable=False, default=0)
    payment = Column(Float, nullable=False, default=0)
    change_amount = Column(Float, nullable=False, default=0)
    idempotency_key = Column(String(36), unique=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User")
    items = relationship("TransactionItem", back_populates="trx", order_by="TransactionItem.id")

class TransactionItem(Base):
    __tablename__ = "transaction_items"
    id = Column(Integer, primary_key=True)
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False, default=0)  # Harga satuan setelah diskon
    subtotal = Column(Float, nullable=False, default=0)

    trx = relationship("Transaction", back_populates="items")
    product = relationship("Product")

class CartDraft(Base):
    """Keranjang kasir yang sedang berjalan, satu per user."""
    __tablename__ = "cart_drafts"
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)  # Cart.to_dict()
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
