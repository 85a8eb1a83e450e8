import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends
from pymongo.database import Database

from auth import get_current_user, get_settings, get_token_service
from config import Settings
from database import USERS, create_document, get_db, update_document, utcnow
from errors import AccountInactive, BadCredentials, BadRequest, Conflict, TokenInvalid, Unauthorized
from schemas import (
    ChangePasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    Role,
    User,
    serialize_user,
)
from security import TokenKind, TokenService, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def resolve_role(requested: Any, settings: Settings, db: Database) -> str:
    """Admin on registration: any time outside production, else only the first one."""
    if requested != Role.ADMIN:
        return Role.USER.value
    if not settings.is_production:
        return Role.ADMIN.value
    if db[USERS].find_one({"role": Role.ADMIN.value}) is None:
        logger.warning("Bootstrapping first admin account through registration")
        return Role.ADMIN.value
    return Role.USER.value


def start_session(db: Database, tokens: TokenService, user: Dict[str, Any], **fields: Any) -> Dict[str, Any]:
    """Issue a token pair and store its refresh token, replacing the old one."""
    pair = tokens.issue_pair(user)
    updated = update_document(db, USERS, user["_id"], {"refresh_token": pair["refresh_token"], **fields})
    return {"user": serialize_user(updated), **pair}


@router.post("/register", status_code=201)
def register(
    payload: RegisterRequest,
    db: Database = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
):
    if db[USERS].find_one({"email": payload.email}):
        raise Conflict("User with this email already exists")
    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password, settings.bcrypt_rounds),
        role=resolve_role(payload.role, settings, db),
        phone=payload.phone,
        address=payload.address,
    )
    user_id = create_document(db, USERS, user)
    logger.info("Registered account %s with role %s", user_id, user.role)
    created = db[USERS].find_one({"_id": ObjectId(user_id)})
    data = start_session(db, tokens, created, last_login=utcnow())
    return {"success": True, "message": "User registered successfully", "data": data}


@router.post("/login")
def login(
    payload: LoginRequest,
    db: Database = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    user = db[USERS].find_one({"email": payload.email})
    if not user:
        logger.info("Login failed: unknown email")
        raise BadCredentials()
    if not user.get("is_active", True):
        raise AccountInactive("Your account has been deactivated. Please contact support.")
    if not verify_password(payload.password, user.get("password_hash", "")):
        logger.info("Login failed: bad password for %s", user["_id"])
        raise BadCredentials()
    data = start_session(db, tokens, user, last_login=utcnow())
    return {"success": True, "message": "Login successful", "data": data}


@router.post("/refresh-token")
def refresh_token(
    payload: Optional[RefreshTokenRequest] = None,
    db: Database = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    token = payload.refresh_token if payload else None
    if not token:
        raise BadRequest("Refresh token is required")
    try:
        claims = tokens.verify(token, TokenKind.REFRESH)
    except Unauthorized:
        raise TokenInvalid("Invalid refresh token")
    sub = claims.get("sub")
    user = db[USERS].find_one({"_id": ObjectId(sub)}) if ObjectId.is_valid(sub) else None
    # only the most recently issued refresh token is honoured
    if not user or user.get("refresh_token") != token:
        raise TokenInvalid("Invalid refresh token")
    if not user.get("is_active", True):
        raise AccountInactive()
    data = start_session(db, tokens, user)
    data.pop("user")
    logger.info("Rotated refresh token for %s", user["_id"])
    return {"success": True, "message": "Token refreshed successfully", "data": data}


@router.post("/logout")
def logout(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    update_document(db, USERS, user["_id"], {"refresh_token": None})
    return {"success": True, "message": "Logout successful"}


@router.get("/profile")
def get_profile(user: dict = Depends(get_current_user)):
    return {"success": True, "data": {"user": serialize_user(user)}}


@router.put("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    stored = db[USERS].find_one({"_id": user["_id"]}, {"password_hash": 1})
    if not stored or not verify_password(payload.current_password, stored.get("password_hash", "")):
        raise BadRequest("Current password is incorrect")
    update_document(db, USERS, user["_id"], {"password_hash": hash_password(payload.new_password, settings.bcrypt_rounds)})
    return {"success": True, "message": "Password changed successfully"}
