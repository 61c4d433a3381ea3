from datetime import datetime, timezone
from typing import Any, Dict, List

import structlog
from bson import ObjectId
from pymongo.database import Database

from catalog import find_product
from database import is_object_id, ref_key, serialize_doc
from errors import NotFoundError, ValidationError
from schemas import WishlistEntry
from users import get_user_by_id

logger = structlog.get_logger(__name__)

# product fields shown next to a wishlist entry
DISPLAY_FIELDS = {"id": 1, "title": 1, "images": 1, "price_by_length": 1}


def _load_user(db: Database, user_id: str) -> dict:
    user = get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def resolve_entries(db: Database, entries: List[dict]) -> List[Dict[str, Any]]:
    """Attach display fields of each referenced product, keeping wishlist order."""
    ids = [e["product_id"] for e in entries if is_object_id(e.get("product_id"))]
    products = {
        str(p["_id"]): serialize_doc(p, rename_id=False)
        for p in db["product"].find({"_id": {"$in": [ObjectId(str(i)) for i in ids]}}, DISPLAY_FIELDS)
    }
    return [
        {"product": products.get(ref_key(e["product_id"]), ref_key(e["product_id"])), "addedAt": e.get("added_at")}
        for e in entries
    ]


def list_wishlist(db: Database, user_id: str) -> List[Dict[str, Any]]:
    user = _load_user(db, user_id)
    return resolve_entries(db, user.get("wishlist", []))


def add_to_wishlist(db: Database, user_id: str, product_id: Any) -> bool:
    """Returns True when an entry was added, False when it was already there."""
    if not product_id or not is_object_id(product_id):
        # a catalog id is accepted too, stored as the product's _id
        product = find_product(db, product_id)
        if product is None:
            raise ValidationError("Invalid product ID")
        product_id = product["_id"]
    pid = ObjectId(str(product_id))
    user = _load_user(db, user_id)
    entry = WishlistEntry(product_id=pid)
    # the filter makes the push a no-op when the product is already listed
    res = db["user"].update_one(
        {"_id": user["_id"], "wishlist.product_id": {"$ne": pid}},
        {"$push": {"wishlist": entry.model_dump()}},
    )
    added = res.modified_count == 1
    logger.info("wishlist_add", user_id=user_id, product_id=str(pid), added=added)
    return added


def remove_from_wishlist(db: Database, user_id: str, product_id: Any) -> List[Dict[str, Any]]:
    if not product_id:
        raise ValidationError("Invalid product ID")
    user = _load_user(db, user_id)
    wishlist = user.get("wishlist", [])
    key = ref_key(product_id)
    if not is_object_id(product_id):
        product = find_product(db, product_id)
        if product is not None:
            key = str(product["_id"])

    kept = [e for e in wishlist if e and ref_key(e.get("product_id")) != key]
    if len(kept) == len(wishlist):
        raise NotFoundError("Not in wishlist")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"wishlist": kept, "updated_at": datetime.now(timezone.utc)}},
    )
    logger.info("wishlist_remove", user_id=user_id, product_id=key)
    return resolve_entries(db, kept)
