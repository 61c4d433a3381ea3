import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from starlette.middleware.sessions import SessionMiddleware

import database
from cart import CartStore, GuestCartStore, UserCartStore, format_cart_items, normalize_incoming
from catalog import get_product, list_products, products_by_ids, serialize_product
from config import CORS_ORIGINS, FRONTEND_URL, GUEST_SESSION_TTL_MINUTES, IS_PRODUCTION, SESSION_SECRET
from database import ensure_indexes, get_db
from errors import AuthError, NotFoundError, ValidationError, register_error_handlers
from logging_config import configure_logging
from security import TOKEN_COOKIE, clear_token_cookie, create_access_token, decode_token, set_token_cookie
from sessions import GuestSessions, get_guest_sessions, guest_id_for
from users import authenticate, consume_password_reset, get_user_by_id, issue_password_reset, public_user, register
from wishlist import add_to_wishlist, list_wishlist, remove_from_wishlist

configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        # startup fails if the store is unreachable
        database.db.command("ping")
        ensure_indexes(database.db)
        logger.info("database_connected", name=database.db.name)
    else:
        logger.warning("database_not_configured")
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET,
    max_age=GUEST_SESSION_TTL_MINUTES * 60,
    same_site="none" if IS_PRODUCTION else "lax",
    https_only=IS_PRODUCTION,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)


# Identity

def get_optional_user(request: Request) -> Optional[Dict[str, Any]]:
    token = request.cookies.get(TOKEN_COOKIE)
    if not token:
        return None
    try:
        return decode_token(token)
    except AuthError:
        # a stale cookie on a public route just means "guest"
        return None


def get_current_user(request: Request) -> Dict[str, Any]:
    token = request.cookies.get(TOKEN_COOKIE)
    if not token:
        raise AuthError("Not logged in")
    return decode_token(token)


def get_cart_store(
    request: Request,
    db: Database = Depends(get_db),
    sessions: GuestSessions = Depends(get_guest_sessions),
    identity: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> CartStore:
    if identity:
        return UserCartStore(db, identity["id"])
    return GuestCartStore(db, sessions, guest_id_for(request))


def merge_guest_cart(request: Request, db: Database, sessions: GuestSessions, user: dict) -> None:
    guest_id = guest_id_for(request, create=False)
    if not guest_id:
        return
    guest_items = GuestCartStore(db, sessions, guest_id).take()
    if guest_items:
        UserCartStore(db, str(user["_id"])).reconcile(guest_items)


# Request bodies

class SignupInput(BaseModel):
    fullName: str = Field(..., min_length=1, max_length=150)
    email: EmailStr
    phone: Optional[str] = None
    password: str = Field(..., min_length=6)


class LoginInput(BaseModel):
    email: str = ""
    password: str = ""


class ForgotPasswordInput(BaseModel):
    email: str = ""


class ResetPasswordInput(BaseModel):
    password: str = ""


class AddToCartInput(BaseModel):
    productId: Optional[str] = None
    quantity: Any = 1


class UpdateCartInput(BaseModel):
    quantity: Any = None


class MergeCartInput(BaseModel):
    items: Any = None


class ProductSnapshotInput(BaseModel):
    productIds: List[str] = Field(default_factory=list)


class WishlistInput(BaseModel):
    productId: Optional[str] = None


# Routes

@app.get("/")
def read_root():
    return {"message": "Storefront API"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Auth
@app.post("/api/auth/signup", status_code=201)
def signup(
    payload: SignupInput,
    request: Request,
    response: Response,
    db: Database = Depends(get_db),
    sessions: GuestSessions = Depends(get_guest_sessions),
):
    user = register(db, payload.fullName, payload.email, payload.phone, payload.password)
    set_token_cookie(response, create_access_token(user))
    merge_guest_cart(request, db, sessions, user)
    return {"message": "Signup successful", "user": public_user(user)}


@app.post("/api/auth/login")
def login(
    payload: LoginInput,
    request: Request,
    response: Response,
    db: Database = Depends(get_db),
    sessions: GuestSessions = Depends(get_guest_sessions),
):
    if not payload.email or not payload.password:
        raise ValidationError("Email and password required")
    user = authenticate(db, payload.email, payload.password)
    set_token_cookie(response, create_access_token(user))
    merge_guest_cart(request, db, sessions, user)
    return {"message": "Login successful", "user": public_user(user)}


@app.post("/api/auth/logout")
def logout(request: Request, response: Response):
    clear_token_cookie(response)
    request.session.clear()
    return {"success": True, "message": "Logged out successfully"}


@app.api_route("/api/auth/user", methods=["GET", "POST"])
@app.get("/api/auth/getUser")
def get_user(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user = get_user_by_id(db, current_user["id"])
    if not user:
        raise NotFoundError("User not found")
    return {"user": public_user(user, include_wishlist=True)}


RESET_SENT_MESSAGE = "If that account exists, a reset link was sent."


@app.post("/api/auth/forgot-password")
def forgot_password(payload: ForgotPasswordInput, db: Database = Depends(get_db)):
    issued = issue_password_reset(db, payload.email)
    if issued and not IS_PRODUCTION:
        user_id, token = issued
        # stand-in for the reset e-mail
        logger.info("password_reset_link", link=f"{FRONTEND_URL}/reset-password?token={token}&id={user_id}")
    return {"message": RESET_SENT_MESSAGE}


@app.post("/api/auth/reset-password")
def reset_password(
    payload: ResetPasswordInput,
    token: Optional[str] = None,
    user_id: Optional[str] = Query(None, alias="id"),
    db: Database = Depends(get_db),
):
    consume_password_reset(db, user_id, token, payload.password)
    return {"message": "Password reset successful. Please log in."}


# Products
@app.get("/api/products")
def get_products(category: Optional[str] = None, db: Database = Depends(get_db)):
    return {"products": [serialize_product(p) for p in list_products(db, category)]}


@app.get("/api/products/{product_id}")
def get_product_by_id(product_id: str, db: Database = Depends(get_db)):
    return {"product": serialize_product(get_product(db, product_id))}


# Cart
@app.get("/api/cart")
def get_cart(store: CartStore = Depends(get_cart_store)):
    return {"items": format_cart_items(store.get())}


@app.post("/api/cart")
def add_to_cart(payload: AddToCartInput, store: CartStore = Depends(get_cart_store)):
    return {"items": format_cart_items(store.add(payload.productId, payload.quantity))}


@app.post("/api/cart/product-snapshot")
def product_snapshot(
    payload: ProductSnapshotInput,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return {"products": [serialize_product(p) for p in products_by_ids(db, payload.productIds)]}


@app.post("/api/cart/merge")
def merge_cart(payload: MergeCartInput, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    guest_items = normalize_incoming(payload.items if payload.items is not None else [])
    items = UserCartStore(db, current_user["id"]).reconcile(guest_items)
    return {"items": format_cart_items(items)}


@app.put("/api/cart/{item_id}")
def update_cart_item(item_id: str, payload: UpdateCartInput, store: CartStore = Depends(get_cart_store)):
    return {"items": format_cart_items(store.set_quantity(item_id, payload.quantity))}


@app.delete("/api/cart/{item_id}")
def remove_cart_item(item_id: str, store: CartStore = Depends(get_cart_store)):
    return {"items": format_cart_items(store.remove(item_id))}


# Wishlist
@app.get("/api/wishlist")
def get_wishlist(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"success": True, "items": list_wishlist(db, current_user["id"])}


@app.post("/api/wishlist")
def add_wishlist(payload: WishlistInput, response: Response, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    added = add_to_wishlist(db, current_user["id"], payload.productId)
    if not added:
        return {"success": True, "message": "Already in wishlist"}
    response.status_code = 201
    return {"success": True, "message": "Added to wishlist", "items": list_wishlist(db, current_user["id"])}


@app.delete("/api/wishlist/{product_id}")
def remove_wishlist(product_id: str, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    items = remove_from_wishlist(db, current_user["id"], product_id)
    return {"success": True, "message": "Removed from wishlist", "items": items}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
