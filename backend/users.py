from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import structlog
from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import PASSWORD_RESET_MINUTES
from database import create_document, is_object_id, ref_key
from errors import AuthError, ConflictError, ValidationError
from schemas import User as UserSchema
from security import digest_reset_token, dummy_verify_password, hash_password, new_reset_token, verify_password

logger = structlog.get_logger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def public_user(user: Dict[str, Any], include_wishlist: bool = False) -> Dict[str, Any]:
    # whitelist: password and reset fields never leave the server
    out = {
        "id": str(user["_id"]),
        "fullName": user.get("full_name"),
        "email": user.get("email"),
        "phone": user.get("phone"),
        "roles": user.get("roles", []),
    }
    if include_wishlist:
        out["wishlist"] = [
            {"product": ref_key(w.get("product_id")), "addedAt": w.get("added_at")} for w in user.get("wishlist", [])
        ]
    return out


def get_user_by_email(db: Database, email: str) -> Optional[dict]:
    return db["user"].find_one({"email": normalize_email(email)})


def get_user_by_id(db: Database, user_id: str) -> Optional[dict]:
    if not is_object_id(user_id):
        return None
    return db["user"].find_one({"_id": ObjectId(str(user_id))})


def register(db: Database, full_name: str, email: str, phone: Optional[str], password: str) -> dict:
    if get_user_by_email(db, email):
        raise ConflictError("Email already registered")
    user = UserSchema(full_name=full_name, email=normalize_email(email), phone=phone, password_hash=hash_password(password))
    doc = user.model_dump()
    if doc["phone"] is None:
        # sparse unique index only skips missing fields, not nulls
        doc.pop("phone")
    elif db["user"].find_one({"phone": doc["phone"]}):
        raise ConflictError("Phone already registered")
    try:
        user_id = create_document(db, "user", doc)
    except DuplicateKeyError:
        # lost a race with a concurrent signup
        raise ConflictError("Email already registered")
    logger.info("user_registered", user_id=user_id)
    return db["user"].find_one({"_id": ObjectId(user_id)})


def authenticate(db: Database, email: str, password: str) -> dict:
    user = get_user_by_email(db, email)
    if user is None:
        dummy_verify_password()
    # same failure for unknown email and wrong password
    if not user or not verify_password(password, user.get("password_hash", "")):
        logger.info("login_failed")
        raise AuthError("Invalid email or password")
    return user


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    # pymongo hands back naive UTC datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def issue_password_reset(db: Database, email: str) -> Optional[Tuple[str, str]]:
    """Store a fresh reset token digest and return (user_id, raw token).

    Returns None when no such account exists; callers must answer the same way
    in both cases.
    """
    user = get_user_by_email(db, email)
    if not user:
        return None
    token = new_reset_token()
    expires = datetime.now(timezone.utc) + timedelta(minutes=PASSWORD_RESET_MINUTES)
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_reset_token": digest_reset_token(token), "password_reset_expires": expires}},
    )
    logger.info("password_reset_issued", user_id=str(user["_id"]))
    return str(user["_id"]), token


def consume_password_reset(db: Database, user_id: str, token: str, new_password: str) -> None:
    if not user_id or not token or not is_object_id(user_id):
        raise ValidationError("Invalid request")
    if not new_password or len(new_password) < 6:
        raise ValidationError("Password must be at least 6 characters")

    digest = digest_reset_token(token)
    user = db["user"].find_one({"_id": ObjectId(user_id), "password_reset_token": digest})
    now = datetime.now(timezone.utc)
    if not user or _as_utc(user.get("password_reset_expires")) <= now:
        logger.info("password_reset_rejected", user_id=user_id)
        raise ValidationError("Invalid or expired token")

    # conditional on the token still being there: only one reset can win
    res = db["user"].update_one(
        {"_id": user["_id"], "password_reset_token": digest},
        {
            "$set": {"password_hash": hash_password(new_password), "updated_at": now},
            "$unset": {"password_reset_token": "", "password_reset_expires": ""},
        },
    )
    if res.modified_count == 0:
        logger.info("password_reset_rejected", user_id=user_id)
        raise ValidationError("Invalid or expired token")
    logger.info("password_reset_completed", user_id=user_id)
