import logging
from typing import Annotated, Any, Dict, Iterable, List, Optional

from fastapi import APIRouter, Depends, Query
from pymongo import DESCENDING
from pymongo.database import Database

from auth import get_current_user, get_optional_user, is_admin, require_roles
from database import PRODUCTS, USERS, create_document, ensure_object_id, get_db, get_documents, update_document
from errors import BadRequest, Conflict, NotFound
from queries import build_product_filter, paginate, parse_sort, skip_for
from schemas import (
    LOW_STOCK_THRESHOLD,
    MAX_STOCK,
    CategoryQuery,
    FeaturedQuery,
    Product,
    ProductCreateRequest,
    ProductQuery,
    ProductUpdateRequest,
    Role,
    StatusUpdateRequest,
    StockOperation,
    StockUpdateRequest,
    availability_status,
    serialize_product,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

admin_only = [Depends(get_current_user), Depends(require_roles(Role.ADMIN))]


def apply_stock_operation(current: int, amount: int, operation: str) -> int:
    op = StockOperation(operation)
    if op is StockOperation.SET:
        return amount
    if op is StockOperation.ADD:
        return current + amount
    return max(0, current - amount)


def load_people(db: Database, products: Iterable[dict]) -> Dict[str, dict]:
    """Resolve created_by/updated_by refs to ``{id, name, email}``."""
    ids = {p.get(ref) for p in products for ref in ("created_by", "updated_by")}
    ids.discard(None)
    if not ids:
        return {}
    people = db[USERS].find({"_id": {"$in": list(ids)}}, {"name": 1, "email": 1})
    return {str(u["_id"]): {"id": str(u["_id"]), "name": u.get("name"), "email": u.get("email")} for u in people}


def present(db: Database, products: List[dict]) -> List[dict]:
    people = load_people(db, products)
    return [serialize_product(p, people) for p in products]


def find_product(db: Database, product_id: str, active_only: bool = False) -> dict:
    conditions: Dict[str, Any] = {"_id": ensure_object_id(product_id)}
    if active_only:
        conditions["is_active"] = True
    product = db[PRODUCTS].find_one(conditions)
    if not product:
        raise NotFound("Product not found")
    return product


def sku_taken(db: Database, sku: str, exclude_id: Optional[Any] = None) -> bool:
    conditions: Dict[str, Any] = {"sku": sku}
    if exclude_id is not None:
        conditions["_id"] = {"$ne": exclude_id}
    return db[PRODUCTS].find_one(conditions, {"_id": 1}) is not None


# -----------------------------
# Public
# -----------------------------

@router.get("")
def list_products(query: Annotated[ProductQuery, Query()], db: Database = Depends(get_db)):
    conditions = build_product_filter(query)
    total = db[PRODUCTS].count_documents(conditions)
    products = get_documents(
        db, PRODUCTS, conditions,
        sort=parse_sort(query.sort),
        skip=skip_for(query.page, query.limit),
        limit=query.limit,
    )
    categories = db[PRODUCTS].distinct("category", {"is_active": True})
    brands = db[PRODUCTS].distinct("brand", {"is_active": True})
    return {
        "success": True,
        "data": {
            "products": present(db, products),
            "pagination": paginate(query.page, query.limit, total, "total_products"),
            "filters": {"categories": sorted(categories), "brands": sorted(brands)},
        },
    }


@router.get("/featured")
def featured_products(query: Annotated[FeaturedQuery, Query()], db: Database = Depends(get_db)):
    products = get_documents(
        db, PRODUCTS, {"is_active": True, "is_featured": True},
        sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
        limit=query.limit,
    )
    return {"success": True, "data": {"products": present(db, products)}}


@router.get("/category/{category}")
def products_by_category(category: str, query: Annotated[CategoryQuery, Query()], db: Database = Depends(get_db)):
    conditions = {"is_active": True, "category": category.lower()}
    total = db[PRODUCTS].count_documents(conditions)
    products = get_documents(
        db, PRODUCTS, conditions,
        sort=parse_sort(query.sort),
        skip=skip_for(query.page, query.limit),
        limit=query.limit,
    )
    if not products:
        raise NotFound(f"No products found in category: {category}")
    return {
        "success": True,
        "data": {
            "products": present(db, products),
            "pagination": paginate(query.page, query.limit, total, "total_products"),
            "category": category.lower(),
        },
    }


@router.get("/admin/stats", dependencies=admin_only)
def product_stats(db: Database = Depends(get_db)):
    products = db[PRODUCTS]
    overview = next(iter(products.aggregate([
        {"$group": {
            "_id": None,
            "total_products": {"$sum": 1},
            "total_stock": {"$sum": "$stock"},
            "average_price": {"$avg": "$price"},
            "max_price": {"$max": "$price"},
            "min_price": {"$min": "$price"},
        }},
    ])), {})
    active = products.count_documents({"is_active": True})
    low_stock = products.count_documents({"is_active": True, "stock": {"$lte": LOW_STOCK_THRESHOLD, "$gt": 0}})
    out_of_stock = products.count_documents({"is_active": True, "stock": 0})
    categories = list(products.aggregate([
        {"$match": {"is_active": True}},
        {"$group": {"_id": "$category", "count": {"$sum": 1}, "total_stock": {"$sum": "$stock"}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]))
    return {
        "success": True,
        "data": {
            "overview": {
                "total_products": overview.get("total_products", 0),
                "active_products": active,
                "inactive_products": products.count_documents({"is_active": False}),
                "featured_products": products.count_documents({"is_featured": True}),
                "total_stock": overview.get("total_stock", 0),
                "average_price": overview.get("average_price") or 0,
                "max_price": overview.get("max_price") or 0,
                "min_price": overview.get("min_price") or 0,
            },
            "inventory": {
                "low_stock_products": low_stock,
                "out_of_stock_products": out_of_stock,
                "in_stock_products": active - low_stock - out_of_stock,
            },
            "categories": [
                {"category": c["_id"], "count": c["count"], "total_stock": c["total_stock"]} for c in categories
            ],
        },
    }


@router.get("/{product_id}")
def get_product(product_id: str, user: Optional[dict] = Depends(get_optional_user), db: Database = Depends(get_db)):
    # admins can look at deactivated products too
    product = find_product(db, product_id, active_only=not (user and is_admin(user)))
    return {"success": True, "data": {"product": present(db, [product])[0]}}


# -----------------------------
# Admin
# -----------------------------

@router.post("", status_code=201, dependencies=admin_only)
def create_product(payload: ProductCreateRequest, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if sku_taken(db, payload.sku):
        raise Conflict("Product with this SKU already exists")
    document = Product(**payload.model_dump()).model_dump()
    document["created_by"] = user["_id"]
    product_id = create_document(db, PRODUCTS, document)
    logger.info("Product %s (%s) created by %s", product_id, payload.sku, user["_id"])
    product = find_product(db, product_id)
    return {"success": True, "message": "Product created successfully", "data": {"product": present(db, [product])[0]}}


@router.put("/{product_id}", dependencies=admin_only)
def update_product(
    product_id: str,
    payload: ProductUpdateRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    product = find_product(db, product_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("sku") and changes["sku"] != product.get("sku") and sku_taken(db, changes["sku"], product["_id"]):
        raise Conflict("Product with this SKU already exists")
    # the merged document has to satisfy the same rules as a new one
    merged = Product.model_validate({**product, **changes}).model_dump()
    fields = {k: v for k, v in merged.items() if k in changes or k == "images"}
    fields["updated_by"] = user["_id"]
    updated = update_document(db, PRODUCTS, product["_id"], fields)
    return {"success": True, "message": "Product updated successfully", "data": {"product": present(db, [updated])[0]}}


@router.delete("/{product_id}", dependencies=admin_only)
def delete_product(product_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    product = find_product(db, product_id)
    update_document(db, PRODUCTS, product["_id"], {"is_active": False, "updated_by": user["_id"]})
    logger.info("Product %s deactivated by %s", product_id, user["_id"])
    return {"success": True, "message": "Product deleted successfully"}


@router.patch("/{product_id}/status", dependencies=admin_only)
def toggle_product_status(
    product_id: str,
    payload: StatusUpdateRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    product = find_product(db, product_id)
    updated = update_document(db, PRODUCTS, product["_id"], {"is_active": payload.is_active, "updated_by": user["_id"]})
    return {
        "success": True,
        "message": f"Product {'activated' if payload.is_active else 'deactivated'} successfully",
        "data": {
            "product": {
                "id": str(updated["_id"]),
                "name": updated.get("name"),
                "sku": updated.get("sku"),
                "is_active": updated.get("is_active"),
            }
        },
    }


@router.patch("/{product_id}/stock", dependencies=admin_only)
def update_stock(
    product_id: str,
    payload: StockUpdateRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    product = find_product(db, product_id)
    new_stock = apply_stock_operation(product.get("stock", 0), payload.stock, payload.operation)
    if new_stock > MAX_STOCK:
        raise BadRequest(f"Stock cannot exceed {MAX_STOCK}")
    updated = update_document(db, PRODUCTS, product["_id"], {"stock": new_stock, "updated_by": user["_id"]})
    return {
        "success": True,
        "message": "Product stock updated successfully",
        "data": {
            "product": {
                "id": str(updated["_id"]),
                "name": updated.get("name"),
                "sku": updated.get("sku"),
                "stock": updated.get("stock"),
                "availability_status": availability_status(updated.get("stock", 0)),
            }
        },
    }
