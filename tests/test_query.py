# tests/test_query.py
import pytest

from storefront.errors import InvalidInputError
from storefront.query import (
    PRODUCT_SORT_COLUMNS,
    compose,
    equality_fragment,
    match_expression,
    pagination_fragment,
    sort_column,
    sort_fragment,
)

BASE = "SELECT id FROM products WHERE 1=1"


def test_zero_values_build_empty_fragments():
    assert sort_fragment("").empty
    assert equality_fragment("name", "").empty
    assert equality_fragment("category_id", 0).empty
    assert equality_fragment("category_id", None).empty
    assert pagination_fragment(0, 0).empty
    assert pagination_fragment(None, None).empty


def test_equality_fragment_binds_value():
    frag = equality_fragment("name", "Robert'); DROP TABLE products;--")
    assert frag.sql == "AND name = :eq_name"
    assert frag.params == {"eq_name": "Robert'); DROP TABLE products;--"}


def test_pagination_variants():
    assert pagination_fragment(10, 0).sql == "LIMIT :limit"
    assert pagination_fragment(0, 5).sql == "OFFSET :offset"
    both = pagination_fragment(10, 5)
    assert both.sql == "LIMIT :limit OFFSET :offset"
    assert both.params == {"limit": 10, "offset": 5}


def test_sort_fragment_rejects_non_identifiers():
    assert sort_fragment("price").sql == "ORDER BY price ASC"
    with pytest.raises(ValueError):
        sort_fragment("price; DROP TABLE products")


def test_sort_column_uses_whitelist():
    assert sort_column("price", PRODUCT_SORT_COLUMNS) == "price"
    assert sort_column(None, PRODUCT_SORT_COLUMNS) == ""
    with pytest.raises(InvalidInputError):
        sort_column("password_hash", PRODUCT_SORT_COLUMNS)


def test_compose_orders_clauses_regardless_of_input_order():
    sql, params = compose(
        BASE,
        [
            pagination_fragment(2, 1),
            sort_fragment("name"),
            equality_fragment("category_id", 3),
            equality_fragment("name", ""),
        ],
    )
    assert sql == BASE + " AND category_id = :eq_category_id ORDER BY name ASC LIMIT :limit OFFSET :offset"
    assert params == {"eq_category_id": 3, "limit": 2, "offset": 1}


def test_compose_with_only_empty_fragments_is_base():
    sql, params = compose(BASE, [sort_fragment(""), pagination_fragment(0, 0), equality_fragment("id", 0)])
    assert sql == BASE
    assert params == {}


def test_compose_offset_only_on_sqlite():
    sql, _ = compose(BASE, [pagination_fragment(0, 4)], dialect="sqlite")
    assert sql.endswith("LIMIT -1 OFFSET :offset")
    sql, _ = compose(BASE, [pagination_fragment(0, 4)], dialect="postgresql")
    assert sql.endswith(" OFFSET :offset")
    assert "LIMIT" not in sql


def test_compose_rejects_two_sort_fragments():
    with pytest.raises(ValueError):
        compose(BASE, [sort_fragment("name"), sort_fragment("price")])


def test_match_expression_quotes_every_term():
    assert match_expression("running  shoes") == '"running" "shoes"'
    assert match_expression('say "hi"') == '"say" """hi"""'
    assert match_expression("   ") == ""
