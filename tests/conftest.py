import os
import tempfile

import pytest

_tmpdir = tempfile.mkdtemp(prefix="frendo-pos-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["CHECKOUT_STRATEGY"] = "atomic"

from fastapi.testclient import TestClient  # noqa: E402

import app as app_module  # noqa: E402
from auth import create_identity  # noqa: E402
from db import Base, SessionLocal, engine  # noqa: E402
from models import Category, Discount, Product, User  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client():
    with TestClient(app_module.app) as client:
        yield client


def make_user(db, email, password, name, role, is_active=True):
    identity = create_identity(db, email, password)
    user = User(id=identity.id, name=name, role=role, is_active=is_active)
    db.add(user)
    db.commit()
    return user


def login(client, email, password):
    return client.post("/login", data={"email": email, "password": password}, follow_redirects=False)


@pytest.fixture()
def owner(db_session):
    return make_user(db_session, "owner@frendo.co.id", "owner123", "Owner Toko", "owner")


@pytest.fixture()
def kasir(db_session):
    return make_user(db_session, "kasir@frendo.co.id", "kasir123", "Kasir Satu", "kasir")


@pytest.fixture()
def owner_client(owner):
    with TestClient(app_module.app) as client:
        assert login(client, "owner@frendo.co.id", "owner123").status_code == 302
        yield client


@pytest.fixture()
def kasir_client(kasir):
    with TestClient(app_module.app) as client:
        assert login(client, "kasir@frendo.co.id", "kasir123").status_code == 302
        yield client


@pytest.fixture()
def category(db_session):
    c = Category(name="Minuman")
    db_session.add(c)
    db_session.commit()
    return c


def make_product(db, category, name, price, stock, discount=None, is_active=True):
    p = Product(
        name=name,
        price=price,
        stock=stock,
        category_id=category.id,
        discount_id=discount.id if discount else None,
        is_active=is_active,
    )
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


def make_discount(db, name, type, value, is_active=True):
    d = Discount(name=name, type=type, value=value, is_active=is_active)
    db.add(d)
    db.commit()
    return d
