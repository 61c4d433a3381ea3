from datetime import datetime, timezone

import pytest
from bson import ObjectId

from errors import NotFoundError, ValidationError
from users import register
from wishlist import add_to_wishlist, list_wishlist, remove_from_wishlist


@pytest.fixture
def user(db):
    return register(db, "Ada Lovelace", "ada@lovelace.io", None, "secret123")


def test_add_is_idempotent(db, products, user):
    pid = str(products["p-100"]["_id"])
    assert add_to_wishlist(db, str(user["_id"]), pid) is True
    assert add_to_wishlist(db, str(user["_id"]), pid) is False
    stored = db["user"].find_one({"_id": user["_id"]})
    assert len(stored["wishlist"]) == 1


def test_add_accepts_catalog_id(db, products, user):
    add_to_wishlist(db, str(user["_id"]), "p-200")
    entries = list_wishlist(db, str(user["_id"]))
    assert entries[0]["product"]["id"] == "p-200"


def test_add_rejects_invalid_id(db, products, user):
    with pytest.raises(ValidationError):
        add_to_wishlist(db, str(user["_id"]), "nope")


def test_list_resolves_display_fields_in_order(db, products, user):
    add_to_wishlist(db, str(user["_id"]), str(products["p-200"]["_id"]))
    add_to_wishlist(db, str(user["_id"]), str(products["p-100"]["_id"]))
    entries = list_wishlist(db, str(user["_id"]))
    assert [e["product"]["title"] for e in entries] == ["Tape-In Wefts", "Classic Clip-In Set"]
    assert set(entries[0]["product"]) == {"_id", "id", "title", "images", "price_by_length"}
    assert entries[0]["addedAt"] is not None


def test_remove_tolerates_stored_representations(db, products, user):
    p1, p2, p3 = (products[k]["_id"] for k in ("p-100", "p-200", "p-300"))
    now = datetime.now(timezone.utc)
    db["user"].update_one(
        {"_id": user["_id"]},
        {
            "$set": {
                "wishlist": [
                    {"product_id": p1, "added_at": now},
                    {"product_id": str(p2), "added_at": now},
                    {"product_id": {"_id": p3, "title": "Silk Scrunchie"}, "added_at": now},
                ]
            }
        },
    )
    uid = str(user["_id"])
    assert len(remove_from_wishlist(db, uid, str(p2))) == 2
    assert len(remove_from_wishlist(db, uid, str(p3))) == 1
    assert remove_from_wishlist(db, uid, str(p1)) == []


def test_remove_missing_entry_is_not_found(db, products, user):
    with pytest.raises(NotFoundError):
        remove_from_wishlist(db, str(user["_id"]), str(products["p-100"]["_id"]))


def test_unknown_user(db, products):
    with pytest.raises(NotFoundError):
        list_wishlist(db, str(ObjectId()))


# HTTP


def test_wishlist_requires_session(client, products):
    assert client.get("/api/wishlist").status_code == 401
    assert client.post("/api/wishlist", json={"productId": "p-100"}).status_code == 401


def test_wishlist_endpoints(client, products, signed_in):
    pid = str(products["p-100"]["_id"])

    res = client.post("/api/wishlist", json={"productId": pid})
    assert res.status_code == 201
    res = client.post("/api/wishlist", json={"productId": pid})
    assert res.status_code == 200
    assert res.json()["message"] == "Already in wishlist"

    items = client.get("/api/wishlist").json()["items"]
    assert [i["product"]["_id"] for i in items] == [pid]

    user = client.get("/api/auth/user").json()["user"]
    assert [w["product"] for w in user["wishlist"]] == [pid]

    res = client.delete(f"/api/wishlist/{pid}")
    assert res.status_code == 200
    assert res.json()["items"] == []
    assert client.delete(f"/api/wishlist/{pid}").status_code == 404


def test_wishlist_add_invalid_product(client, signed_in):
    res = client.post("/api/wishlist", json={"productId": "bogus"})
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid product ID"
