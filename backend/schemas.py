"""
Database Schemas

MongoDB collection schemas as Pydantic models.
Model name lowercased is the collection name ("user", "product", "cart").
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from slugify import slugify


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WishlistEntry(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product_id: ObjectId
    added_at: datetime = Field(default_factory=_now)


class User(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    full_name: str = Field(..., min_length=1, max_length=150, description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lowercased")
    phone: Optional[str] = Field(None, description="Unique when present")
    password_hash: str = Field(..., description="BCrypt hashed password")
    is_email_verified: bool = False
    roles: List[str] = Field(default_factory=lambda: ["customer"])
    wishlist: List[WishlistEntry] = Field(default_factory=list)
    password_reset_token: Optional[str] = Field(None, description="SHA-256 of the issued reset token")
    password_reset_expires: Optional[datetime] = None

    @model_validator(mode="after")
    def normalize(self):
        self.full_name = self.full_name.strip()
        self.email = self.email.strip().lower()
        if self.phone is not None:
            self.phone = self.phone.strip() or None
        return self


class Product(BaseModel):
    id: str = Field(..., min_length=1, description="Stable catalog id")
    title: str = Field(..., min_length=1)
    slug: Optional[str] = None
    short_description: Optional[str] = None
    description: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    lengths: List[float] = Field(default_factory=list)
    price_by_length: Dict[str, float] = Field(default_factory=dict)
    base_price: Optional[str] = Field(None, description="'min - max' of price_by_length")
    images: Optional[str] = Field(None, description="Single image URL")

    @model_validator(mode="after")
    def derive_fields(self):
        self.title = self.title.strip()
        if not self.slug:
            self.slug = slugify(self.title)
        else:
            self.slug = self.slug.strip().lower()
        # categories behave as a set; first occurrence wins
        self.categories = list(dict.fromkeys(self.categories))
        if self.price_by_length:
            self.base_price = price_range(self.price_by_length)
        return self


def price_range(price_by_length: Dict[str, float]) -> str:
    prices = list(price_by_length.values())
    return f"{min(prices):.3f} - {max(prices):.3f}"


class CartItem(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product_id: ObjectId
    name: str = ""
    price: float = 0
    image: str = ""
    quantity: int = Field(1, ge=1)


class Cart(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: ObjectId
    items: List[CartItem] = Field(default_factory=list)
