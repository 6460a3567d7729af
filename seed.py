import logging

from sqlalchemy.orm import Session

import config  # noqa: F401  (setup logging)
from db import engine, Base, SessionLocal
from models import AuthIdentity, Category, Discount, Product, User
from auth import create_identity

logger = logging.getLogger(__name__)

ACCOUNTS = [
    ("owner@frendo.co.id", "owner123", "Owner Toko", "owner"),
    ("kasir@frendo.co.id", "kasir123", "Kasir Satu", "kasir"),
]

def seed():
    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()

    for email, password, name, role in ACCOUNTS:
        if db.query(AuthIdentity).filter(AuthIdentity.email == email).first():
            logger.info(f"{email} sudah ada")
            continue
        identity = create_identity(db, email, password)
        db.add(User(id=identity.id, name=name, role=role, is_active=True))
        db.commit()
        logger.info(f"{role} dibuat: {email} / {password}")

    if not db.query(Category).first():
        minuman = Category(name="Minuman")
        makanan = Category(name="Makanan")
        promo = Discount(name="Promo 10%", type="percent", value=10, is_active=True)
        db.add_all([minuman, makanan, promo])
        db.flush()
        db.add_all([
            Product(name="Kopi Susu", price=18000, stock=50, category_id=minuman.id, discount_id=promo.id),
            Product(name="Teh Manis", price=8000, stock=100, category_id=minuman.id),
            Product(name="Roti Bakar", price=15000, stock=8, category_id=makanan.id),
        ])
        db.commit()
        logger.info("Data contoh dibuat")

    db.close()

if __name__ == "__main__":
    seed()
