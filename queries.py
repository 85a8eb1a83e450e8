"""Filter, sort and pagination builders for the list endpoints."""

import math
import re
from typing import Any, Dict, List, Tuple

from pymongo import ASCENDING, DESCENDING

from schemas import ProductQuery, UserQuery


def parse_sort(sort: str) -> List[Tuple[str, int]]:
    """``-price`` -> ``[("price", DESCENDING)]``. Ties break on _id."""
    if sort.startswith("-"):
        field, direction = sort[1:], DESCENDING
    else:
        field, direction = sort, ASCENDING
    return [(field, direction), ("_id", direction)]


def skip_for(page: int, limit: int) -> int:
    return (page - 1) * limit


def paginate(page: int, limit: int, total: int, total_key: str = "total") -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        total_key: total,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


def contains(text: str) -> Dict[str, Any]:
    """Case-insensitive substring match; user input is never a regex."""
    return {"$regex": re.escape(text), "$options": "i"}


def build_product_filter(query: ProductQuery) -> Dict[str, Any]:
    conditions: Dict[str, Any] = {"is_active": True}
    if query.category:
        conditions["category"] = query.category
    if query.brand:
        conditions["brand"] = contains(query.brand)
    price: Dict[str, float] = {}
    if query.min_price is not None:
        price["$gte"] = query.min_price
    if query.max_price is not None:
        price["$lte"] = query.max_price
    if price:
        conditions["price"] = price
    if query.in_stock:
        conditions["stock"] = {"$gt": 0}
    if query.featured:
        conditions["is_featured"] = True
    if query.search:
        conditions["$or"] = [
            {"name": contains(query.search)},
            {"description": contains(query.search)},
            {"tags": contains(query.search)},
        ]
    return conditions


def build_user_filter(query: UserQuery) -> Dict[str, Any]:
    conditions: Dict[str, Any] = {}
    if query.search:
        conditions["$or"] = [{"name": contains(query.search)}, {"email": contains(query.search)}]
    if query.role:
        conditions["role"] = query.role
    if query.is_active is not None:
        conditions["is_active"] = query.is_active
    return conditions
