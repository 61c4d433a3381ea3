import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import Response
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, BCRYPT_ROUNDS, IS_PRODUCTION, SECRET_KEY
from errors import AuthError

logger = structlog.get_logger(__name__)

TOKEN_COOKIE = "token"
COOKIE_MAX_AGE = 60 * 60 * 24 * 7  # 7 days, seconds

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


# Passwords

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # malformed stored hash
        logger.warning("password_hash_unreadable")
        return False


def dummy_verify_password() -> None:
    """Spend one bcrypt verification so unknown accounts fail as slowly as known ones."""
    pwd_context.dummy_verify()


# Reset tokens: the raw value goes to the user, only its digest is stored

def new_reset_token() -> str:
    return secrets.token_hex(32)


def digest_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


# JWT

def create_access_token(user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "id": str(user["_id"]),
        "email": user["email"],
        "fullName": user.get("full_name", ""),
        "exp": expire,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry and return the identity claims.

    Clients always see the same 401; the log records which check failed.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        logger.info("token_rejected", reason="expired")
        raise AuthError("Invalid or expired token")
    except JWTError as e:
        logger.warning("token_rejected", reason="invalid", error=str(e))
        raise AuthError("Invalid or expired token")
    if not payload.get("id"):
        logger.warning("token_rejected", reason="missing_claims")
        raise AuthError("Invalid or expired token")
    return {"id": payload["id"], "email": payload.get("email"), "fullName": payload.get("fullName")}


# Cookie transport

def cookie_options() -> Dict[str, Any]:
    """Shared by set and clear; a clear with different attributes is ignored by browsers.

    No domain attribute, so the cookie stays host-scoped.
    """
    return {
        "httponly": True,
        "secure": IS_PRODUCTION,
        "samesite": "none" if IS_PRODUCTION else "lax",
        "path": "/",
    }


def set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(TOKEN_COOKIE, token, max_age=COOKIE_MAX_AGE, **cookie_options())


def clear_token_cookie(response: Response) -> None:
    response.set_cookie(
        TOKEN_COOKIE,
        "",
        max_age=0,
        expires=datetime(1970, 1, 1, tzinfo=timezone.utc),
        **cookie_options(),
    )
