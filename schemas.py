"""
Database Schemas

Each document model maps to a MongoDB collection (lowercased class name):
- User -> "user"
- Product -> "product"

The request models further down validate and normalize incoming payloads
before any handler sees them.
"""

import math
import re
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"
PASSWORD_MIN_LENGTH = 6
# bcrypt ignores anything past 72 bytes
PASSWORD_MAX_LENGTH = 72
LOW_STOCK_THRESHOLD = 5
MAX_STOCK = 1_000_000_000


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Category(str, Enum):
    ELECTRONICS = "electronics"
    CLOTHING = "clothing"
    BOOKS = "books"
    HOME = "home"
    SPORTS = "sports"
    BEAUTY = "beauty"
    TOYS = "toys"
    AUTOMOTIVE = "automotive"
    HEALTH = "health"
    FOOD = "food"
    OTHER = "other"


class StockOperation(str, Enum):
    SET = "set"
    ADD = "add"
    SUBTRACT = "subtract"


class Schema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, use_enum_values=True)


def lowercase(v: str) -> str:
    return v.lower()


def uppercase(v: str) -> str:
    return v.upper()


def clean_tags(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return v
    return [t.strip().lower() for t in v if t and t.strip()]


def check_password_strength(value: str) -> str:
    if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
        raise ValueError("Password must contain at least one uppercase letter, one lowercase letter, and one number")
    return value


# -----------------------------
# Users
# -----------------------------

class Address(Schema):
    street: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=50)
    state: Optional[str] = Field(None, max_length=50)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=50)


class User(Schema):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., min_length=2, max_length=50, description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lowercase")
    password_hash: str = Field(..., description="bcrypt hash of the password")
    role: Role = Field(Role.USER.value, description="user role: admin | user")
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[Address] = None
    avatar: Optional[str] = None
    is_active: bool = True
    last_login: Optional[Any] = None
    refresh_token: Optional[str] = Field(None, description="Current refresh token; one per account")

    lowercase_email = field_validator("email")(lowercase)


class RegisterRequest(Schema):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[Address] = None
    role: Optional[Role] = None

    lowercase_email = field_validator("email")(lowercase)

    @field_validator("password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_password_strength(v)


class LoginRequest(Schema):
    email: EmailStr
    password: str = Field(..., min_length=1)

    lowercase_email = field_validator("email")(lowercase)


class RefreshTokenRequest(Schema):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(Schema):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_password_strength(v)


class UpdateUserRequest(Schema):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    # an empty string clears the phone number
    phone: Optional[str] = Field(None, pattern=r"^(\+?[1-9]\d{1,14})?$")
    address: Optional[Address] = None
    avatar: Optional[str] = None
    # honoured for admins only
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class StatusUpdateRequest(Schema):
    is_active: bool

    @field_validator("is_active", mode="before")
    @classmethod
    def strict_bool(cls, v: Any) -> bool:
        if not isinstance(v, bool):
            raise ValueError("is_active field must be a boolean value")
        return v


class UserQuery(Schema):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sort: Literal[
        "created_at", "-created_at", "name", "-name", "email", "-email", "last_login", "-last_login"
    ] = "-created_at"
    search: Optional[str] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None


def serialize_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Client view of an account. The hash and refresh token never leave."""
    address = doc.get("address") or None
    full_address = None
    if address:
        parts = [address.get(k) for k in ("street", "city", "state", "zip_code", "country")]
        full_address = ", ".join(p for p in parts if p) or None
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "role": doc.get("role", Role.USER.value),
        "phone": doc.get("phone"),
        "address": address,
        "full_address": full_address,
        "avatar": doc.get("avatar"),
        "is_active": doc.get("is_active", True),
        "last_login": doc.get("last_login"),
        "created_at": doc.get("created_at"),
        "updated_at": doc.get("updated_at"),
    }


# -----------------------------
# Products
# -----------------------------

class ProductImage(Schema):
    url: str = Field(..., pattern=r"^https?://\S+$")
    alt: str = Field("", max_length=100)
    is_primary: bool = False


class Dimensions(Schema):
    length: Optional[float] = Field(None, ge=0)
    width: Optional[float] = Field(None, ge=0)
    height: Optional[float] = Field(None, ge=0)


class Rating(Schema):
    average: float = Field(0, ge=0, le=5)
    count: int = Field(0, ge=0)


def normalize_images(images: Optional[List[ProductImage]]) -> Optional[List[ProductImage]]:
    """Leave exactly one primary image: the first one marked, else the first."""
    if not images:
        return images
    primary = next((i for i, img in enumerate(images) if img.is_primary), 0)
    return [img.model_copy(update={"is_primary": i == primary}) for i, img in enumerate(images)]


class ProductFields(Schema):
    """Field rules shared by the product document and its create payload."""
    name: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=10, max_length=2000)
    price: float = Field(..., ge=0)
    compare_price: Optional[float] = Field(None, ge=0)
    category: Category
    brand: str = Field(..., min_length=1, max_length=50)
    sku: str = Field(..., min_length=3, max_length=50)
    stock: int = Field(0, ge=0, le=MAX_STOCK)
    images: List[ProductImage] = Field(default_factory=list)
    specifications: Dict[str, str] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    weight: Optional[float] = Field(None, ge=0)
    dimensions: Optional[Dimensions] = None
    is_featured: bool = False
    seo_title: Optional[str] = Field(None, max_length=60)
    seo_description: Optional[str] = Field(None, max_length=160)

    uppercase_sku = field_validator("sku")(uppercase)
    lowercase_tags = field_validator("tags")(clean_tags)
    single_primary_image = field_validator("images")(normalize_images)

    @model_validator(mode="after")
    def compare_price_not_below_price(self):
        if self.compare_price is not None and self.compare_price < self.price:
            raise ValueError("Compare price should be greater than or equal to the selling price")
        return self


class Product(ProductFields):
    """
    Products collection schema
    Collection name: "product"
    created_by / updated_by are stored as ObjectIds by the handlers.
    """
    is_active: bool = True
    rating: Rating = Field(default_factory=Rating)


class ProductCreateRequest(ProductFields):
    stock: int = Field(..., ge=0, le=MAX_STOCK)
    images: List[ProductImage] = Field(..., min_length=1)


class ProductUpdateRequest(Schema):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=2000)
    price: Optional[float] = Field(None, ge=0)
    compare_price: Optional[float] = Field(None, ge=0)
    category: Optional[Category] = None
    brand: Optional[str] = Field(None, min_length=1, max_length=50)
    sku: Optional[str] = Field(None, min_length=3, max_length=50)
    stock: Optional[int] = Field(None, ge=0, le=MAX_STOCK)
    images: Optional[List[ProductImage]] = Field(None, min_length=1)
    specifications: Optional[Dict[str, str]] = None
    tags: Optional[List[str]] = None
    weight: Optional[float] = Field(None, ge=0)
    dimensions: Optional[Dimensions] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    seo_title: Optional[str] = Field(None, max_length=60)
    seo_description: Optional[str] = Field(None, max_length=160)

    uppercase_sku = field_validator("sku")(uppercase)
    lowercase_tags = field_validator("tags")(clean_tags)
    single_primary_image = field_validator("images")(normalize_images)

    @model_validator(mode="after")
    def compare_price_not_below_price(self):
        if self.compare_price is not None and self.price is not None and self.compare_price < self.price:
            raise ValueError("Compare price should be greater than or equal to the selling price")
        return self


class StockUpdateRequest(Schema):
    stock: int
    operation: StockOperation = StockOperation.SET

    @field_validator("stock", mode="before")
    @classmethod
    def non_negative_number(cls, v: Any) -> int:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or v < 0:
            raise ValueError("Stock must be a positive number")
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("Stock must be a positive number")
        if v > MAX_STOCK:
            raise ValueError(f"Stock cannot exceed {MAX_STOCK}")
        if v != int(v):
            raise ValueError("Stock must be a whole number")
        return int(v)

    @field_validator("operation", mode="before")
    @classmethod
    def known_operation(cls, v: Any) -> Any:
        if v not in [op.value for op in StockOperation]:
            raise ValueError("Operation must be one of: set, add, subtract")
        return v


ProductSort = Literal[
    "created_at", "-created_at", "name", "-name", "price", "-price",
    "rating.average", "-rating.average", "stock", "-stock",
]


class ProductQuery(Schema):
    page: int = Field(1, ge=1)
    limit: int = Field(12, ge=1, le=100)
    sort: ProductSort = "-created_at"
    category: Optional[Category] = None
    brand: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    in_stock: Optional[bool] = None
    featured: Optional[bool] = None
    search: Optional[str] = None


class CategoryQuery(Schema):
    page: int = Field(1, ge=1)
    limit: int = Field(12, ge=1, le=100)
    sort: ProductSort = "-created_at"


class FeaturedQuery(Schema):
    limit: int = Field(8, ge=1, le=100)


def availability_status(stock: int) -> str:
    if stock <= 0:
        return "out-of-stock"
    if stock <= LOW_STOCK_THRESHOLD:
        return "low-stock"
    return "in-stock"


def discount_percentage(price: float, compare_price: Optional[float]) -> int:
    if not compare_price or compare_price <= price:
        return 0
    return round((compare_price - price) / compare_price * 100)


def serialize_product(doc: Dict[str, Any], people: Optional[Dict[str, dict]] = None) -> Dict[str, Any]:
    """Client view of a product, with derived fields and populated creator refs."""
    people = people or {}
    data = {k: v for k, v in doc.items() if k not in ("_id", "created_by", "updated_by")}
    data["id"] = str(doc["_id"])
    for ref in ("created_by", "updated_by"):
        ref_id = doc.get(ref)
        data[ref] = people.get(str(ref_id), {"id": str(ref_id)}) if ref_id else None
    images = doc.get("images") or []
    primary = next((img for img in images if img.get("is_primary")), images[0] if images else None)
    data["primary_image"] = primary["url"] if primary else None
    data["discount_percentage"] = discount_percentage(doc.get("price", 0), doc.get("compare_price"))
    data["availability_status"] = availability_status(doc.get("stock", 0))
    return data
