# storefront/core.py
# Request payloads accepted by the HTTP layer.
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .models import (
    MAX_BIGINT,
    MAX_INT,
    Cart,
    CartUpdate,
    Category,
    CategoryUpdate,
    Product,
    ProductUpdate,
    UserUpdate,
    check_text,
)

MAX_EMAIL_BYTES = 500
MIN_PASSWORD_BYTES = 9
# bcrypt ignores everything past 72 bytes
MAX_PASSWORD_BYTES = 71


def _check_email(value):
    if value is not None and len(value.encode("utf-8")) > MAX_EMAIL_BYTES:
        raise ValueError(f"email must not be more than {MAX_EMAIL_BYTES} bytes long")
    return value


def _check_password(value):
    if value is None:
        return value
    check_text(value)
    size = len(value.encode("utf-8"))
    if size < MIN_PASSWORD_BYTES:
        raise ValueError(f"password must be at least {MIN_PASSWORD_BYTES} bytes long")
    if size > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must not be more than {MAX_PASSWORD_BYTES} bytes long")
    return value


class ProductIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    category_id: int = Field(..., gt=0, le=MAX_BIGINT)
    price: int = Field(..., ge=0, le=MAX_INT)
    quantity: int = Field(..., ge=0, le=MAX_INT)

    @field_validator("name", "description")
    @classmethod
    def plain_text(cls, value):
        return check_text(value)

    def to_model(self) -> Product:
        return Product(**self.model_dump())


class ProductPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category_id: Optional[int] = Field(None, gt=0, le=MAX_BIGINT)
    price: Optional[int] = Field(None, ge=0, le=MAX_INT)
    quantity: Optional[int] = Field(None, ge=0, le=MAX_INT)
    version: int = Field(..., gt=0, le=MAX_INT)

    @field_validator("name", "description")
    @classmethod
    def plain_text(cls, value):
        return check_text(value)

    def changes(self) -> ProductUpdate:
        return ProductUpdate(**self.model_dump(exclude={"version"}))


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""

    @field_validator("name", "description")
    @classmethod
    def plain_text(cls, value):
        return check_text(value)

    def to_model(self) -> Category:
        return Category(**self.model_dump())


class CategoryPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    version: int = Field(..., gt=0, le=MAX_INT)

    @field_validator("name", "description")
    @classmethod
    def plain_text(cls, value):
        return check_text(value)

    def changes(self) -> CategoryUpdate:
        return CategoryUpdate(**self.model_dump(exclude={"version"}))


class CartIn(BaseModel):
    product_id: int = Field(..., gt=0, le=MAX_BIGINT)
    quantity: int = Field(..., gt=0, le=MAX_INT)
    # defaults to the authenticated user
    user_id: Optional[int] = Field(None, gt=0, le=MAX_BIGINT)

    def to_model(self, user_id: int) -> Cart:
        return Cart(product_id=self.product_id, quantity=self.quantity, user_id=self.user_id or user_id)


class CartPatch(BaseModel):
    product_id: Optional[int] = Field(None, gt=0, le=MAX_BIGINT)
    quantity: Optional[int] = Field(None, gt=0, le=MAX_INT)

    def changes(self) -> CartUpdate:
        return CartUpdate(**self.model_dump())


class UserIn(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def email_size(cls, value):
        return _check_email(value)

    @field_validator("password")
    @classmethod
    def password_size(cls, value):
        return _check_password(value)


class UserPatch(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = None

    @field_validator("email")
    @classmethod
    def email_size(cls, value):
        return _check_email(value)

    @field_validator("password")
    @classmethod
    def password_size(cls, value):
        return _check_password(value)

    def changes(self, password_hash: Optional[bytes] = None) -> UserUpdate:
        return UserUpdate(email=self.email, password_hash=password_hash)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
