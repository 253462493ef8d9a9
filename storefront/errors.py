# storefront/errors.py
"""Domain errors raised by the stores, and the translator that produces
them from storage-engine failures.

Callers never see raw backend errors: a store wraps every ``DBAPIError``
with ``raise translate(exc) from exc``. Known constraint violations become
the matching domain kind; anything else becomes ``InternalError`` whose
``detail`` is only ever logged.
"""

import logging
import re
from functools import partial
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class StoreError(Exception):
    status_code = 500
    code = "store_error"
    default_message = "store error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------
# Not found
# ---------------------------
class NotFoundError(StoreError):
    status_code = 404
    code = "not_found"
    default_message = "not found"


class ProductNotFound(NotFoundError):
    code = "product_not_found"
    default_message = "products not found"


class CategoryNotFound(NotFoundError):
    code = "category_not_found"
    default_message = "no categories found"


class CartNotFound(NotFoundError):
    code = "cart_not_found"
    default_message = "no carts found"


class UserNotFound(NotFoundError):
    code = "user_not_found"
    default_message = "no users found"


class NoSearchResult(NotFoundError):
    code = "no_search_result"
    default_message = "no search result"


# ---------------------------
# Constraint kinds
# ---------------------------
class DuplicateError(StoreError):
    status_code = 409
    code = "duplicate"
    default_message = "duplicated entry"
    resource = ""
    field = ""

    def __init__(self, message=None, resource=None, field=None):
        super().__init__(message)
        if resource is not None:
            self.resource = resource
        if field is not None:
            self.field = field


class DuplicatedProduct(DuplicateError):
    code = "duplicated_product"
    default_message = "duplicated product"
    resource = "product"
    field = "name"


class DuplicatedCategory(DuplicateError):
    code = "duplicated_category"
    default_message = "duplicated category"
    resource = "category"
    field = "name"


class DuplicatedUserEmail(DuplicateError):
    code = "duplicated_email"
    default_message = "duplicated email"
    resource = "user"
    field = "email"


class ReferenceViolationError(StoreError):
    status_code = 400
    code = "reference_violation"
    default_message = "invalid reference"
    resource = ""
    field = ""

    def __init__(self, message=None, resource=None, field=None):
        super().__init__(message)
        if resource is not None:
            self.resource = resource
        if field is not None:
            self.field = field


class InvalidProductCategory(ReferenceViolationError):
    code = "invalid_category"
    default_message = "invalid category"
    resource = "product"
    field = "category_id"


class CartInvalidUserID(ReferenceViolationError):
    code = "invalid_cart_user"
    default_message = "invalid user id cart"
    resource = "cart"
    field = "user_id"


class CartInvalidProductID(ReferenceViolationError):
    code = "invalid_cart_product"
    default_message = "invalid product id cart"
    resource = "cart"
    field = "product_id"


class ConflictError(StoreError):
    """The row changed (or vanished) since the caller last read it."""

    status_code = 409
    code = "conflict"
    default_message = "update conflict error"
    resource = ""


class ProductConflict(ConflictError):
    code = "product_conflict"
    resource = "product"


class CategoryConflict(ConflictError):
    code = "category_conflict"
    resource = "category"


class InvalidInputError(StoreError):
    status_code = 400
    code = "invalid_input"
    default_message = "invalid input"


class InvalidToken(StoreError):
    status_code = 401
    code = "invalid_token"
    default_message = "invalid user token"


class InvalidCredentials(StoreError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "invalid authentication credentials"


class Forbidden(StoreError):
    status_code = 403
    code = "forbidden"
    default_message = "you do not have permission to access this resource"


class InternalError(StoreError):
    code = "internal"
    default_message = "internal server error"

    def __init__(self, message=None, detail=""):
        super().__init__(message)
        self.detail = detail


# ---------------------------
# Translator
# ---------------------------
CONSTRAINT_ERRORS: Dict[str, Callable[[], StoreError]] = {
    "products_name_key": DuplicatedProduct,
    "products_category_id_fkey": InvalidProductCategory,
    "categories_name_key": DuplicatedCategory,
    "users_email_key": DuplicatedUserEmail,
    "carts_user_id_fkey": CartInvalidUserID,
    "carts_product_id_fkey": CartInvalidProductID,
    "tokens_user_id_fkey": InvalidToken,
    "products_price_check": partial(InvalidInputError, "price must not be negative"),
    "products_quantity_check": partial(InvalidInputError, "quantity must not be negative"),
    "carts_quantity_check": partial(InvalidInputError, "quantity must be positive"),
}

_PG_CONSTRAINT = re.compile(r'constraint "(\w+)"')
_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: (\w+)\.(\w+)$")
_SQLITE_CHECK = re.compile(r"CHECK constraint failed: (\w+)")
# asyncpg rejects some arguments before they reach the server
_BAD_ARGUMENT = re.compile(r"invalid input for query argument|out of (?:int\d+ )?range")


def constraint_name(exc: BaseException) -> Optional[str]:
    """Best-effort constraint name carried by a storage-engine error.

    Accepts either a SQLAlchemy ``DBAPIError`` or a bare driver exception.
    psycopg exposes ``diag.constraint_name``, asyncpg ``constraint_name``
    (on the adapted error's ``__cause__`` under SQLAlchemy); SQLite only
    has the message text.
    """
    orig = getattr(exc, "orig", None) or exc
    for candidate in (orig, orig.__cause__):
        if candidate is None:
            continue
        diag = getattr(candidate, "diag", None)
        name = getattr(diag, "constraint_name", None) or getattr(candidate, "constraint_name", None)
        if name:
            return name

    message = str(orig).strip()
    match = _PG_CONSTRAINT.search(message)
    if match:
        return match.group(1)
    match = _SQLITE_UNIQUE.search(message)
    if match:
        return f"{match.group(1)}_{match.group(2)}_key"
    match = _SQLITE_CHECK.search(message)
    if match:
        return match.group(1)
    # trigger aborts carry the bare constraint name
    if message in CONSTRAINT_ERRORS:
        return message
    return None


def sqlstate(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", None) or exc
    for candidate in (orig, orig.__cause__):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return code
    return None


def is_bad_value(exc: BaseException) -> bool:
    """True when the engine refused a bound value rather than a row.

    SQLSTATE class 22 (data exception) covers numbers outside the column
    range and text the database encoding cannot hold.
    """
    code = sqlstate(exc)
    if code:
        return code.startswith("22")
    orig = getattr(exc, "orig", None) or exc
    return bool(_BAD_ARGUMENT.search(str(orig)))


def translate(exc: BaseException) -> StoreError:
    name = constraint_name(exc)
    factory = CONSTRAINT_ERRORS.get(name) if name else None
    if factory is None and is_bad_value(exc):
        logger.debug("value rejected by the engine: %s", exc)
        return InvalidInputError("value not accepted by its column")
    if factory is None:
        logger.error("unrecognised storage error: %s", exc)
        return InternalError(detail=str(exc))
    logger.debug("constraint %s violated", name)
    return factory()
