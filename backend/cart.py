"""
Shopping cart storage.

A signed-in user has one persisted cart document ({user_id, items}); a guest
has one in-memory cart tied to the session. Both hold the same line items:

    {product_id, name, price, image, quantity}

name/price/image are copied from the catalog when the line is created and are
not refreshed afterwards. Every mutation is a read-modify-write of the whole
item list; concurrent writers on the same cart are last-write-wins.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog
from bson import ObjectId
from pymongo.database import Database

from catalog import find_product, get_product, snapshot_image, snapshot_price
from config import CART_MAX_QUANTITY, CART_MERGE_POLICY
from database import is_object_id, ref_key
from errors import NotFoundError, ValidationError
from schemas import Cart as CartSchema, CartItem
from sessions import GuestSessions

logger = structlog.get_logger(__name__)

MERGE_OVERWRITE = "overwrite"
MERGE_KEEP = "keep"
MERGE_POLICIES = (MERGE_OVERWRITE, MERGE_KEEP)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def resolve_merge_policy(policy: str) -> str:
    value = (policy or "").strip().lower()
    if value not in MERGE_POLICIES:
        raise ValueError(f"CART_MERGE_POLICY must be one of {MERGE_POLICIES}, got {policy!r}")
    return value


DEFAULT_MERGE_POLICY = resolve_merge_policy(CART_MERGE_POLICY)


def clamp_quantity(qty: int, minimum: int = 0) -> int:
    return max(minimum, min(CART_MAX_QUANTITY, qty))


def coerce_quantity(value: Any, minimum: int) -> int:
    """parseInt-style coercion clamped to CART_MAX_QUANTITY.

    Numbers are truncated, strings use their leading integer ("3abc" is 3,
    "1e20" is 1). Anything unusable falls back to `minimum`.
    """
    if isinstance(value, bool) or value is None:
        return minimum
    if isinstance(value, (int, float)):
        try:
            qty = int(value)
        except (ValueError, OverflowError):
            return minimum
    else:
        match = _LEADING_INT.match(str(value))
        if match is None:
            return minimum
        qty = int(match.group(1))
    return clamp_quantity(qty, minimum)


def find_line(items: List[dict], product_ref: Any) -> Optional[dict]:
    key = ref_key(product_ref)
    return next((it for it in items if ref_key(it["product_id"]) == key), None)


def format_cart_items(items: Iterable[dict]) -> List[Dict[str, Any]]:
    return [
        {
            "id": ref_key(it["product_id"]),
            "title": it.get("name", ""),
            "images": [it["image"]] if it.get("image") else [],
            "price": it.get("price", 0),
            "quantity": it.get("quantity", 1),
        }
        for it in items
    ]


def normalize_incoming(raw_items: Any) -> List[dict]:
    """Turn client-supplied guest items into line items, skipping bad references."""
    if not isinstance(raw_items, list):
        raise ValidationError("Invalid items")
    normalized = []
    for it in raw_items:
        if isinstance(it, dict):
            pid = it.get("productId") or it.get("id")
        else:
            pid, it = it, {}
        if not pid or not is_object_id(pid):
            logger.warning("merge_item_skipped", product_id=str(pid)[:64])
            continue
        images = it.get("images")
        image = it.get("image") or (images[0] if isinstance(images, list) and images else "") or ""
        try:
            price = float(it.get("price") or 0)
        except (TypeError, ValueError):
            price = 0.0
        normalized.append(
            {
                "product_id": ObjectId(str(pid)),
                "name": it.get("name") or it.get("title") or "",
                "price": price,
                "image": image,
                "quantity": coerce_quantity(it.get("quantity"), 1),
            }
        )
    return normalized


def merge_lines(items: List[dict], incoming: List[dict], policy: str = DEFAULT_MERGE_POLICY) -> List[dict]:
    """Fold incoming lines into items: quantities add, snapshots per policy."""
    policy = resolve_merge_policy(policy)
    merged = [dict(it) for it in items]
    for line in incoming:
        existing = find_line(merged, line["product_id"])
        if existing is None:
            merged.append(dict(line))
            continue
        existing["quantity"] = clamp_quantity(int(existing.get("quantity") or 0) + line["quantity"], 1)
        if policy == MERGE_OVERWRITE:
            for field in ("name", "price", "image"):
                if line.get(field):
                    existing[field] = line[field]
    return merged


class CartStore:
    """Cart operations shared by the persisted and guest backends."""

    def __init__(self, db: Database):
        self.db = db

    def load(self) -> List[dict]:
        raise NotImplementedError

    def save(self, items: List[dict]) -> None:
        raise NotImplementedError

    def exists(self) -> bool:
        return True

    def get(self) -> List[dict]:
        return self.load()

    def add(self, product_id: Any, quantity: Any = 1) -> List[dict]:
        if not product_id:
            raise ValidationError("productId required")
        qty = coerce_quantity(quantity, 1)
        product = get_product(self.db, product_id)
        items = self.load()
        existing = find_line(items, product["_id"])
        if existing:
            existing["quantity"] = clamp_quantity(int(existing.get("quantity") or 0) + qty, 1)
        else:
            line = CartItem(
                product_id=product["_id"],
                name=product.get("title", ""),
                price=snapshot_price(product),
                image=snapshot_image(product),
                quantity=qty,
            )
            items.append(line.model_dump())
        self.save(items)
        return items

    def set_quantity(self, item_id: Any, quantity: Any) -> List[dict]:
        """Set a line's quantity; 0 removes it. Unknown lines are a 404 on both backends."""
        if not item_id:
            raise ValidationError("itemId required")
        qty = coerce_quantity(quantity, 0)
        if not self.exists():
            raise NotFoundError("Cart not found")
        items = self.load()
        line = self._find_requested_line(items, item_id)
        if line is None:
            raise NotFoundError("Item not found")
        if qty == 0:
            items = [it for it in items if it is not line]
        else:
            line["quantity"] = qty
        self.save(items)
        return items

    def remove(self, item_id: Any) -> List[dict]:
        items = self.load()
        line = self._find_requested_line(items, item_id)
        if line is None:
            return items
        items = [it for it in items if it is not line]
        self.save(items)
        return items

    def _find_requested_line(self, items: List[dict], item_id: Any) -> Optional[dict]:
        line = find_line(items, item_id)
        if line is None and not is_object_id(item_id):
            # callers may hold the catalog id instead of the storage id
            product = find_product(self.db, item_id)
            if product is not None:
                line = find_line(items, product["_id"])
        return line


class UserCartStore(CartStore):
    def __init__(self, db: Database, user_id: str):
        super().__init__(db)
        self.user_id = ObjectId(str(user_id))

    def _doc(self) -> Optional[dict]:
        return self.db["cart"].find_one({"user_id": self.user_id})

    def exists(self) -> bool:
        return self._doc() is not None

    def load(self) -> List[dict]:
        cart = self._doc()
        return list(cart.get("items", [])) if cart else []

    def save(self, items: List[dict]) -> None:
        cart = CartSchema(user_id=self.user_id, items=items)
        now = datetime.now(timezone.utc)
        self.db["cart"].update_one(
            {"user_id": self.user_id},
            {"$set": {"items": cart.model_dump()["items"], "updated_at": now}, "$setOnInsert": {"created_at": now}},
            upsert=True,
        )

    def reconcile(self, guest_items: List[dict], policy: str = DEFAULT_MERGE_POLICY) -> List[dict]:
        """Merge already-normalized guest lines into this cart with a single write."""
        items = merge_lines(self.load(), guest_items, policy)
        self.save(items)
        logger.info("cart_merged", user_id=str(self.user_id), merged_lines=len(guest_items))
        return items


class GuestCartStore(CartStore):
    def __init__(self, db: Database, sessions: GuestSessions, guest_id: str):
        super().__init__(db)
        self.sessions = sessions
        self.guest_id = guest_id

    def load(self) -> List[dict]:
        return self.sessions.get_cart(self.guest_id)

    def save(self, items: List[dict]) -> None:
        self.sessions.save_cart(self.guest_id, items)

    def take(self) -> List[dict]:
        """Hand over the guest lines and forget them, so they merge only once."""
        items = self.load()
        self.sessions.discard(self.guest_id)
        return items
