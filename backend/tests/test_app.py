from pymongo.errors import PyMongoError

import main
from database import get_db
from errors import InternalError


def test_root(client):
    assert client.get("/").json() == {"message": "Storefront API"}


def test_database_status_without_configuration(client):
    body = client.get("/test").json()
    assert body["backend"] == "✅ Running"
    assert body["database_url"] == "❌ Not Set"
    assert body["collections"] == []


def test_body_validation_is_a_400_with_message(client):
    res = client.post("/api/auth/signup", json={"email": "ada@lovelace.io"})
    assert res.status_code == 400
    assert "message" in res.json()


def test_database_failure_is_a_generic_500(client, monkeypatch):
    def boom(db, category=None):
        raise PyMongoError("connection reset by 10.0.0.7")

    monkeypatch.setattr(main, "list_products", boom)
    res = client.get("/api/products")
    assert res.status_code == 500
    assert res.json() == {"message": "Server error"}


def test_missing_database_is_a_generic_500(client):
    def unconfigured():
        raise InternalError("Database not configured")

    main.app.dependency_overrides[get_db] = unconfigured
    res = client.get("/api/products")
    assert res.status_code == 500
    assert res.json() == {"message": "Server error"}


def test_cors_allows_configured_origin_with_credentials(client):
    res = client.options(
        "/api/cart",
        headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "POST"},
    )
    assert res.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert res.headers["access-control-allow-credentials"] == "true"


def test_cors_rejects_unknown_origin(client):
    res = client.options(
        "/api/cart",
        headers={"Origin": "https://evil.example.net", "Access-Control-Request-Method": "POST"},
    )
    assert "access-control-allow-origin" not in res.headers
