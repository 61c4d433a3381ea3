from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo.database import Database

from database import is_object_id, serialize_doc
from errors import NotFoundError

ALL_CATEGORIES = "all"


def list_products(db: Database, category: Optional[str] = None) -> List[dict]:
    query: Dict[str, Any] = {}
    if category and category != ALL_CATEGORIES:
        # matches any element of the categories array
        query["categories"] = category
    return list(db["product"].find(query))


def find_product(db: Database, product_id: Any) -> Optional[dict]:
    """Two-stage lookup: catalog id first, then storage _id.

    The storage stage only runs when the value parses as an ObjectId.
    """
    if product_id is None or product_id == "":
        return None
    product = db["product"].find_one({"id": str(product_id)})
    if product is None and is_object_id(product_id):
        product = db["product"].find_one({"_id": ObjectId(str(product_id))})
    return product


def get_product(db: Database, product_id: Any) -> dict:
    product = find_product(db, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def products_by_ids(db: Database, product_ids: Iterable[Any]) -> List[dict]:
    ids = [str(p) for p in product_ids if p]
    object_ids = [ObjectId(p) for p in ids if is_object_id(p)]
    query = {"$or": [{"_id": {"$in": object_ids}}, {"id": {"$in": ids}}]}
    return list(db["product"].find(query))


def snapshot_price(product: dict) -> float:
    """Price recorded on a cart line: explicit price, else the cheapest length."""
    if product.get("price") is not None:
        return float(product["price"])
    prices = list((product.get("price_by_length") or {}).values())
    return float(min(prices)) if prices else 0.0


def snapshot_image(product: dict) -> str:
    images = product.get("images")
    if isinstance(images, list):
        return images[0] if images else ""
    return images or ""


def serialize_product(product: dict) -> dict:
    return serialize_doc(product, rename_id=False)
