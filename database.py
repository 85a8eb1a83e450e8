"""
Database Helper Functions

MongoDB helpers used by the API handlers. The database handle is created
once from the settings at startup and handed to handlers through
``get_db``; nothing here reads the environment directly.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

from config import Settings
from errors import AppError, BadRequest

logger = logging.getLogger(__name__)

USERS = "user"
PRODUCTS = "product"


def utcnow() -> datetime:
    # BSON dates come back naive UTC; store them the same way
    return datetime.now(timezone.utc).replace(tzinfo=None)


def connect(settings: Settings) -> Optional[Database]:
    if not (settings.database_url and settings.database_name):
        logger.warning("DATABASE_URL / DATABASE_NAME not set; running without a database")
        return None
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db[USERS].create_index("email", unique=True)
    db[USERS].create_index([("created_at", DESCENDING)])
    db[PRODUCTS].create_index("sku", unique=True)
    for field in ("category", "brand", "price", "is_active", "is_featured"):
        db[PRODUCTS].create_index([(field, ASCENDING)])
    db[PRODUCTS].create_index([("created_at", DESCENDING)])


def get_db(request: Request) -> Database:
    db = request.app.state.db
    if db is None:
        raise AppError("Database not available")
    return db


def ensure_object_id(id_str: str) -> ObjectId:
    if not ObjectId.is_valid(id_str):
        raise BadRequest("Invalid ID format")
    return ObjectId(id_str)


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[tuple]] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(db: Database, collection_name: str, doc_id: ObjectId, fields: Dict[str, Any]) -> Optional[dict]:
    """Apply ``$set`` and return the updated document."""
    return db[collection_name].find_one_and_update(
        {"_id": doc_id},
        {"$set": {**fields, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
