import os

# tests never talk to a real MongoDB; keep hashing cheap
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENVIRONMENT"] = "development"

from uuid import uuid4

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document, ensure_indexes, get_db
from main import app
from schemas import Product
from sessions import GuestSessions, get_guest_sessions

PRODUCTS = [
    {
        "id": "p-100",
        "title": "Classic Clip-In Set",
        "short_description": "Seven piece clip-in set",
        "categories": ["clip-in", "bestseller"],
        "lengths": [16, 20, 24],
        "price_by_length": {"16": 120.0, "20": 150.5, "24": 180.0},
        "images": "https://cdn.shop.io/p-100.jpg",
    },
    {
        "id": "p-200",
        "title": "Tape-In Wefts",
        "categories": ["tape-in"],
        "lengths": [18],
        "price_by_length": {"18": 95.0},
        "images": "https://cdn.shop.io/p-200.jpg",
    },
    {
        "id": "p-300",
        "title": "Silk Scrunchie",
        "categories": ["accessories", "bestseller"],
    },
]


@pytest.fixture
def db():
    # mongomock clients share storage, a fresh database name isolates each test
    database = mongomock.MongoClient().get_database(f"test_{uuid4().hex}")
    ensure_indexes(database)
    return database


@pytest.fixture
def products(db):
    """Seeded catalog keyed by business id."""
    for raw in PRODUCTS:
        create_document(db, "product", Product(**raw))
    return {p["id"]: p for p in db["product"].find()}


@pytest.fixture
def sessions():
    return GuestSessions()


@pytest.fixture
def client(db, sessions):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_guest_sessions] = lambda: sessions
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def signup(client, email="ada@lovelace.io", password="secret123", full_name="Ada Lovelace", phone=None):
    body = {"fullName": full_name, "email": email, "password": password}
    if phone is not None:
        body["phone"] = phone
    return client.post("/api/auth/signup", json=body)


@pytest.fixture
def signed_in(client):
    res = signup(client)
    assert res.status_code == 201
    return res.json()["user"]
