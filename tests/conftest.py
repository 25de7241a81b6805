import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SESSION_HTTPS_ONLY"] = "false"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("RESEND_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

import mailer
from auth import Identity, hash_password
from db import Base, SessionLocal, engine
from main import app
from models import Product, User
from products import seed_products

PASSWORD = "password123"


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def outbox(monkeypatch):
    sent = []
    monkeypatch.setattr(mailer, "send", lambda to, subject, html: sent.append((to, subject, html)))
    return sent


@pytest.fixture
def product_ids(db):
    seed_products(db)
    return [pid for (pid,) in db.query(Product.id).order_by(Product.id)]


def create_user(db, email, name="Tester", password=PASSWORD, handle=None, is_admin=False):
    user = User(
        email=email,
        name=name,
        handle=handle,
        hashed_password=hash_password(password) if password else None,
        is_admin=is_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def as_identity(user):
    return Identity(user_id=user.id, is_admin=user.is_admin, name=user.name, image=user.image)


def login(client, email, password=PASSWORD):
    res = client.post("/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return res


def full_course(product_ids, title="Izakaya Night"):
    roles = ["appetizer", "snack", "main", "main", "dessert"]
    return {
        "title": title,
        "description": "Everything from the konbini, in order.",
        "courseItems": [{"productId": pid, "role": role} for pid, role in zip(product_ids, roles)],
    }
