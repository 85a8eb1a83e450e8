import logging
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from auth import PRIVATE_FIELDS, authorize_owner_or_admin, get_current_user, is_admin, require_roles
from database import USERS, ensure_object_id, get_db, get_documents, update_document, utcnow
from errors import BadRequest, NotFound
from queries import build_user_filter, paginate, parse_sort, skip_for
from schemas import Role, StatusUpdateRequest, UpdateUserRequest, UserQuery, serialize_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(get_current_user)])

admin_only = [Depends(require_roles(Role.ADMIN))]

RECENT_SIGNUP_WINDOW = timedelta(days=30)


def find_user(db: Database, user_id: str) -> dict:
    user = db[USERS].find_one({"_id": ensure_object_id(user_id)}, PRIVATE_FIELDS)
    if not user:
        raise NotFound("User not found")
    return user


@router.get("", dependencies=admin_only)
def list_users(query: Annotated[UserQuery, Query()], db: Database = Depends(get_db)):
    conditions = build_user_filter(query)
    total = db[USERS].count_documents(conditions)
    users = get_documents(
        db, USERS, conditions,
        sort=parse_sort(query.sort),
        skip=skip_for(query.page, query.limit),
        limit=query.limit,
    )
    return {
        "success": True,
        "data": {
            "users": [serialize_user(u) for u in users],
            "pagination": paginate(query.page, query.limit, total, "total_users"),
        },
    }


@router.get("/stats", dependencies=admin_only)
def user_stats(db: Database = Depends(get_db)):
    users = db[USERS]
    return {
        "success": True,
        "data": {
            "total_users": users.count_documents({}),
            "active_users": users.count_documents({"is_active": True}),
            "inactive_users": users.count_documents({"is_active": False}),
            "admin_count": users.count_documents({"role": Role.ADMIN.value}),
            "user_count": users.count_documents({"role": Role.USER.value}),
            "recent_users": users.count_documents({"created_at": {"$gte": utcnow() - RECENT_SIGNUP_WINDOW}}),
        },
    }


@router.patch("/{user_id}/status", dependencies=admin_only)
def toggle_user_status(
    user_id: str,
    payload: StatusUpdateRequest,
    current: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user = find_user(db, user_id)
    if user["_id"] == current["_id"]:
        raise BadRequest("Admin cannot change their own account status")
    fields = {"is_active": payload.is_active}
    if not payload.is_active:
        fields["refresh_token"] = None
    updated = update_document(db, USERS, user["_id"], fields)
    logger.info("Account %s %s by %s", user_id, "activated" if payload.is_active else "deactivated", current["_id"])
    return {
        "success": True,
        "message": f"User account {'activated' if payload.is_active else 'deactivated'} successfully",
        "data": {
            "user": {
                "id": str(updated["_id"]),
                "name": updated.get("name"),
                "email": updated.get("email"),
                "is_active": updated.get("is_active"),
            }
        },
    }


@router.get("/{user_id}")
def get_user(user_id: str, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user = find_user(db, user_id)
    authorize_owner_or_admin(current, user["_id"], "view your own profile")
    return {"success": True, "data": {"user": serialize_user(user)}}


@router.put("/{user_id}")
def update_user(
    user_id: str,
    payload: UpdateUserRequest,
    current: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user = find_user(db, user_id)
    authorize_owner_or_admin(current, user["_id"], "update your own profile")

    allowed = {"name", "phone", "address", "avatar"}
    if is_admin(current):
        allowed |= {"role", "is_active"}
    fields = payload.model_dump(include=allowed, exclude_unset=True)
    if user["_id"] == current["_id"]:
        if fields.get("is_active") is False:
            raise BadRequest("Admin cannot change their own account status")
        if "role" in fields and fields["role"] != current.get("role"):
            raise BadRequest("Admin cannot change their own role")
    if fields.get("is_active") is False:
        fields["refresh_token"] = None

    if fields:
        user = update_document(db, USERS, user["_id"], fields)
    return {
        "success": True,
        "message": "User profile updated successfully",
        "data": {"user": serialize_user(user)},
    }


@router.delete("/{user_id}")
def delete_user(user_id: str, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user = find_user(db, user_id)
    authorize_owner_or_admin(current, user["_id"], "delete your own account")
    if is_admin(current) and user["_id"] == current["_id"]:
        raise BadRequest("Admin cannot delete their own account")
    update_document(db, USERS, user["_id"], {"is_active": False, "refresh_token": None})
    logger.info("Account %s deactivated by %s", user_id, current["_id"])
    return {"success": True, "message": "User account deactivated successfully"}
