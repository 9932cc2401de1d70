"""Cookie sessions and password hashing."""
import hashlib
import hmac
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Depends, Request, Response
from pymongo.database import Database

from database import create_document, ensure_object_id, get_db, to_str_id, utcnow
from errors import ForbiddenError, NotAuthenticatedError
from settings import Settings, get_settings

_ITERATIONS = 100_000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), _ITERATIONS).hex()
    return f"{salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    salt, _, digest = password_hash.partition("$")
    if not digest:
        return False
    return hmac.compare_digest(hash_password(password, salt), password_hash)


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    user = to_str_id(user)
    return {"id": user["id"], "name": user.get("name"), "email": user["email"], "role": user.get("role", "customer")}


def start_session(db: Database, response: Response, user_id: str, settings: Settings) -> str:
    token = secrets.token_urlsafe(32)
    ttl = timedelta(days=settings.session_ttl_days)
    create_document(db, "session", {"token": token, "user_id": user_id, "expires_at": utcnow() + ttl})
    response.set_cookie(
        settings.session_cookie,
        token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        max_age=int(ttl.total_seconds()),
    )
    return token


def end_session(db: Database, request: Request, response: Response, settings: Settings) -> None:
    token = request.cookies.get(settings.session_cookie)
    if token:
        db["session"].delete_one({"token": token})
    response.delete_cookie(settings.session_cookie)


def current_user(
    request: Request,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    token = request.cookies.get(settings.session_cookie)
    if not token:
        raise NotAuthenticatedError()

    session = db["session"].find_one({"token": token})
    if not session:
        raise NotAuthenticatedError("Session expired. Please log in again.")
    expires_at = session["expires_at"]
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=utcnow().tzinfo)
    if expires_at < utcnow():
        db["session"].delete_one({"token": token})
        raise NotAuthenticatedError("Session expired. Please log in again.")

    user = db["user"].find_one({"_id": ensure_object_id(session["user_id"])})
    if not user:
        raise NotAuthenticatedError()
    return public_user(user)


def require_admin(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise ForbiddenError()
    return user
