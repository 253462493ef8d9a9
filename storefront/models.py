# storefront/models.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

# largest values the integer and bigint columns hold
MAX_INT = 2**31 - 1
MAX_BIGINT = 2**63 - 1


def check_text(value: Optional[str]) -> Optional[str]:
    """Reject text no column can store: NUL characters and lone surrogates."""
    if value is None:
        return value
    if "\x00" in value:
        raise ValueError("text must not contain NUL characters")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("text must be valid unicode") from None
    return value


class Product(BaseModel):
    id: Optional[int] = Field(None, gt=0)
    name: str
    description: str
    category_id: int
    price: int = Field(..., ge=0, le=MAX_INT)
    quantity: int = Field(..., ge=0, le=MAX_INT)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: Optional[int] = None


class Category(BaseModel):
    id: Optional[int] = Field(None, gt=0)
    name: str
    description: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: Optional[int] = None


class Cart(BaseModel):
    id: Optional[int] = Field(None, gt=0)
    product_id: int
    quantity: int = Field(..., gt=0, le=MAX_INT)
    user_id: int


class User(BaseModel):
    id: Optional[int] = Field(None, gt=0)
    email: str
    password_hash: bytes = Field(b"", exclude=True, repr=False)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Token(BaseModel):
    """A bearer token. Only ``hashed`` is ever persisted."""

    plain: Optional[str] = Field(None, serialization_alias="plain_token")
    hashed: bytes = Field(b"", exclude=True, repr=False)
    user_id: int
    expiry: datetime


# ---------------------------
# Filters
# ---------------------------
# Zero values mean "no constraint"; sort keys are resolved against the
# per-resource whitelist by the store.
class Filter(BaseModel):
    sort: Optional[str] = None
    limit: Optional[int] = Field(None, ge=0, le=MAX_BIGINT)
    offset: Optional[int] = Field(None, ge=0, le=MAX_BIGINT)


class ProductFilter(Filter):
    id: Optional[int] = None
    name: Optional[str] = None
    category_id: Optional[int] = None


class CategoryFilter(Filter):
    id: Optional[int] = None
    name: Optional[str] = None


class CartFilter(Filter):
    id: Optional[int] = None
    user_id: Optional[int] = None
    product_id: Optional[int] = None


class UserFilter(Filter):
    id: Optional[int] = None
    email: Optional[str] = None


# ---------------------------
# Partial updates
# ---------------------------
# None leaves the stored value untouched.
class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[int] = None
    price: Optional[int] = None
    quantity: Optional[int] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class CartUpdate(BaseModel):
    product_id: Optional[int] = None
    quantity: Optional[int] = None
    user_id: Optional[int] = None


class UserUpdate(BaseModel):
    email: Optional[str] = None
    password_hash: Optional[bytes] = Field(None, repr=False)


class SearchHit(BaseModel):
    """Exactly one of ``category`` or ``product`` is set."""

    category: Optional[Category] = None
    product: Optional[Product] = None

    @model_validator(mode="after")
    def _one_kind(self):
        if (self.category is None) == (self.product is None):
            raise ValueError("a search hit holds exactly one of category or product")
        return self

    @property
    def kind(self) -> str:
        return "category" if self.category is not None else "product"
