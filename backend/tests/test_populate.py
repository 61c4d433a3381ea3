import json

import pytest
from pydantic import ValidationError

from conftest import PRODUCTS
from populate import load_products, main, populate


def test_populate_replaces_catalog(db):
    db["product"].insert_one({"id": "old", "title": "Old", "slug": "old"})
    count = populate(db, load_products(PRODUCTS))
    assert count == 3
    assert db["product"].find_one({"id": "old"}) is None
    stored = db["product"].find_one({"id": "p-100"})
    assert stored["slug"] == "classic-clip-in-set"
    assert stored["base_price"] == "120.000 - 180.000"
    assert stored["created_at"] is not None


def test_load_products_rejects_bad_rows():
    with pytest.raises(ValidationError):
        load_products([{"title": "No id"}])


def test_main_without_database_fails(tmp_path):
    path = tmp_path / "products.json"
    path.write_text(json.dumps(PRODUCTS))
    assert main([str(path)]) == 1
