# tests/test_errors.py
import sqlite3

from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, OperationalError

from storefront.errors import (
    CartInvalidProductID,
    CartInvalidUserID,
    DuplicatedCategory,
    DuplicatedProduct,
    DuplicatedUserEmail,
    InternalError,
    InvalidInputError,
    InvalidProductCategory,
    InvalidToken,
    constraint_name,
    translate,
)


def sqlite_error(message):
    return IntegrityError("INSERT ...", {}, sqlite3.IntegrityError(message))


class Diag:
    constraint_name = "products_category_id_fkey"


class PsycopgError(Exception):
    diag = Diag()


class AsyncpgError(Exception):
    constraint_name = "users_email_key"


def test_sqlite_unique_maps_to_key_name():
    exc = sqlite_error("UNIQUE constraint failed: products.name")
    assert constraint_name(exc) == "products_name_key"
    assert isinstance(translate(exc), DuplicatedProduct)
    assert isinstance(translate(sqlite_error("UNIQUE constraint failed: categories.name")), DuplicatedCategory)


def test_sqlite_trigger_abort_carries_constraint_name():
    assert isinstance(translate(sqlite_error("carts_user_id_fkey")), CartInvalidUserID)
    assert isinstance(translate(sqlite_error("carts_product_id_fkey")), CartInvalidProductID)
    assert isinstance(translate(sqlite_error("tokens_user_id_fkey")), InvalidToken)


def test_check_constraint_is_invalid_input():
    err = translate(sqlite_error("CHECK constraint failed: products_price_check"))
    assert isinstance(err, InvalidInputError)
    assert err.status_code == 400
    assert "price" in err.message


def test_psycopg_diag():
    exc = IntegrityError("INSERT ...", {}, PsycopgError("insert or update violates foreign key"))
    err = translate(exc)
    assert isinstance(err, InvalidProductCategory)
    assert (err.resource, err.field) == ("product", "category_id")


def test_asyncpg_cause_under_adapted_error():
    adapted = Exception("<class 'asyncpg.exceptions.UniqueViolationError'>")
    adapted.__cause__ = AsyncpgError()
    err = translate(IntegrityError("INSERT ...", {}, adapted))
    assert isinstance(err, DuplicatedUserEmail)
    assert err.code == "duplicated_email"


def test_postgres_message_fallback():
    orig = Exception('duplicate key value violates unique constraint "categories_name_key"')
    assert constraint_name(IntegrityError("INSERT ...", {}, orig)) == "categories_name_key"


def test_unknown_error_is_internal_with_detail():
    exc = OperationalError("SELECT 1", {}, sqlite3.OperationalError("database is locked"))
    err = translate(exc)
    assert isinstance(err, InternalError)
    assert err.status_code == 500
    assert err.message == "internal server error"
    assert "database is locked" in err.detail


def test_unrelated_constraint_is_internal():
    err = translate(sqlite_error("NOT NULL constraint failed: products.name"))
    assert isinstance(err, InternalError)


class NumericRangeError(Exception):
    sqlstate = "22003"


def test_data_exception_is_invalid_input():
    adapted = Exception("<class 'asyncpg.exceptions.NumericValueOutOfRangeError'>: integer out of range")
    adapted.__cause__ = NumericRangeError()
    err = translate(DataError("UPDATE ...", {}, adapted))
    assert isinstance(err, InvalidInputError)
    assert err.status_code == 400


def test_rejected_query_argument_is_invalid_input():
    orig = Exception("invalid input for query argument $1: 4294967296 (value out of int32 range)")
    assert isinstance(translate(DBAPIError("INSERT ...", {}, orig)), InvalidInputError)


def test_unique_violation_state_is_not_a_data_exception():
    class UniqueViolation(Exception):
        sqlstate = "23505"
        constraint_name = "products_name_key"

    assert isinstance(translate(IntegrityError("INSERT ...", {}, UniqueViolation())), DuplicatedProduct)
