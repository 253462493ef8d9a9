# tests/test_products.py
import pytest

from storefront.errors import (
    DuplicatedProduct,
    InvalidInputError,
    InvalidProductCategory,
    ProductConflict,
    ProductNotFound,
)
from storefront.models import Category, Product, ProductFilter, ProductUpdate

pytestmark = pytest.mark.anyio


def laptop(category_id, name="Laptop", price=99900, quantity=5):
    return Product(name=name, description="portable", category_id=category_id, price=price, quantity=quantity)


async def test_create_fills_generated_fields(products, product):
    assert product.id > 0
    assert product.version == 1
    assert product.created_at is not None
    assert product.updated_at == product.created_at
    assert await products.get_by_id(product.id) == product


async def test_list_empty_table_is_not_found(products):
    with pytest.raises(ProductNotFound):
        await products.list()


async def test_empty_filter_returns_every_row(products, category):
    for name in ("a", "b", "c"):
        await products.create(laptop(category.id, name=name))
    everything = await products.list()
    assert await products.list(ProductFilter(name="", category_id=0, limit=0, offset=0)) == everything
    assert sorted(p.name for p in everything) == ["a", "b", "c"]


async def test_filter_sort_and_paginate(products, categories, category):
    other = await categories.create(Category(name="Books", description=""))
    for name, price in (("delta", 4), ("alpha", 1), ("charlie", 3), ("bravo", 2)):
        await products.create(laptop(category.id, name=name, price=price))
    await products.create(laptop(other.id, name="novel"))

    by_name = await products.list(ProductFilter(category_id=category.id, sort="name"))
    assert [p.name for p in by_name] == ["alpha", "bravo", "charlie", "delta"]

    page = await products.list(ProductFilter(category_id=category.id, sort="price", limit=2, offset=1))
    assert [p.price for p in page] == [2, 3]

    tail = await products.list(ProductFilter(category_id=category.id, sort="name", offset=3))
    assert [p.name for p in tail] == ["delta"]

    assert [p.name for p in await products.list(ProductFilter(name="novel"))] == ["novel"]


async def test_unknown_sort_key_is_invalid_input(products, product):
    with pytest.raises(InvalidInputError):
        await products.list(ProductFilter(sort="description; DROP TABLE products"))


async def test_get_by_id_rejects_non_positive_and_missing(products, product):
    with pytest.raises(ProductNotFound):
        await products.get_by_id(0)
    with pytest.raises(ProductNotFound):
        await products.get_by_id(product.id + 100)


async def test_duplicate_name_leaves_table_unchanged(products, product, category):
    with pytest.raises(DuplicatedProduct):
        await products.create(laptop(category.id, name=product.name))
    assert len(await products.list()) == 1


async def test_unknown_category_is_reference_violation(products):
    with pytest.raises(InvalidProductCategory):
        await products.create(laptop(424242))


async def test_update_bumps_version_and_keeps_absent_fields(products, product):
    updated = await products.update(product.id, ProductUpdate(quantity=1), product.version)
    assert updated.version == product.version + 1
    assert updated.quantity == 1
    assert updated.name == product.name
    assert updated.price == product.price
    assert updated.updated_at >= product.updated_at


async def test_update_stale_version_is_conflict(products, product):
    await products.update(product.id, ProductUpdate(price=1), product.version)
    with pytest.raises(ProductConflict):
        await products.update(product.id, ProductUpdate(price=2), product.version)
    assert (await products.get_by_id(product.id)).price == 1


async def test_update_unknown_id_is_conflict(products, product):
    with pytest.raises(ProductConflict):
        await products.update(product.id + 100, ProductUpdate(price=2), 1)


async def test_update_constraint_errors_win_over_conflict(products, product, category):
    other = await products.create(laptop(category.id, name="Desktop"))
    with pytest.raises(DuplicatedProduct):
        await products.update(other.id, ProductUpdate(name=product.name), other.version)
    with pytest.raises(InvalidProductCategory):
        await products.update(other.id, ProductUpdate(category_id=424242), other.version)
    with pytest.raises(InvalidInputError):
        await products.update(other.id, ProductUpdate(quantity=-1), other.version)
    assert (await products.get_by_id(other.id)).version == 1


async def test_numbers_beyond_integer_columns_are_invalid_input(products, product):
    with pytest.raises(InvalidInputError):
        await products.update(product.id, ProductUpdate(price=2**63), product.version)
    with pytest.raises(InvalidInputError):
        await products.list(ProductFilter(category_id=2**64))
    assert await products.get_by_id(product.id) == product


async def test_delete_twice_is_not_found(products, product):
    await products.delete(product.id)
    with pytest.raises(ProductNotFound):
        await products.delete(product.id)
    with pytest.raises(ProductNotFound):
        await products.delete(999999)
