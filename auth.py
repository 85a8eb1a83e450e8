"""
Request gates.

``get_current_user`` authenticates the bearer token and attaches the
account to ``request.state.user``. ``require_roles`` only reads what the
authentication gate attached, so it must be declared after it.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from bson import ObjectId
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from config import Settings
from database import USERS, get_db
from errors import AccountInactive, Forbidden, TokenMissing, Unauthorized
from schemas import Role
from security import TokenKind, TokenService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# never attached to the request
PRIVATE_FIELDS = {"password_hash": 0, "refresh_token": 0}


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def load_account(db: Database, identity: Any) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(identity):
        return None
    return db[USERS].find_one({"_id": ObjectId(identity)}, PRIVATE_FIELDS)


def authenticate(token: Optional[str], tokens: TokenService, db: Database) -> Dict[str, Any]:
    if not token:
        raise TokenMissing()
    claims = tokens.verify(token, TokenKind.ACCESS)
    user = load_account(db, claims.get("sub"))
    if user is None:
        raise Unauthorized("User not found. Token is invalid.")
    if not user.get("is_active", True):
        raise AccountInactive()
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
    db: Database = Depends(get_db),
) -> Dict[str, Any]:
    token = credentials.credentials if credentials else None
    user = authenticate(token, tokens, db)
    request.state.user = user
    return user


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
    db: Database = Depends(get_db),
) -> Optional[Dict[str, Any]]:
    request.state.user = None
    if credentials is None:
        return None
    try:
        user = authenticate(credentials.credentials, tokens, db)
    except Unauthorized as exc:
        logger.debug("Optional auth failed: %s", exc.detail)
        return None
    request.state.user = user
    return user


def role_of(user: Dict[str, Any]) -> Optional[Role]:
    try:
        return Role(user.get("role"))
    except ValueError:
        return None


def authorize(user: Optional[Dict[str, Any]], allowed: Iterable[Role]) -> Dict[str, Any]:
    allowed = tuple(allowed)
    if user is None:
        raise Unauthorized("Access denied. User not authenticated.")
    if role_of(user) not in allowed:
        required = " or ".join(role.value for role in allowed)
        raise Forbidden(f"Access denied. Required role: {required}. Your role: {user.get('role')}")
    return user


def require_roles(*roles: Role):
    """Authorization gate; declare it after ``get_current_user``."""

    def dependency(request: Request) -> Dict[str, Any]:
        return authorize(getattr(request.state, "user", None), roles)

    return dependency


def is_admin(user: Dict[str, Any]) -> bool:
    return role_of(user) is Role.ADMIN


def authorize_owner_or_admin(user: Dict[str, Any], owner_id: Any, action: str) -> None:
    if is_admin(user) or str(user["_id"]) == str(owner_id):
        return
    raise Forbidden(f"Access denied. You can only {action}.")
