# tests/test_carts.py
import pytest

from storefront.errors import CartInvalidProductID, CartInvalidUserID, CartNotFound, InvalidInputError
from storefront.models import Cart, CartFilter, CartUpdate, User

pytestmark = pytest.mark.anyio


async def test_create_and_get_by_user(carts, product, user):
    line = await carts.create(Cart(product_id=product.id, quantity=2, user_id=user.id))
    assert line.id > 0
    assert await carts.get_by_id(line.id) == line
    assert await carts.get_by_user(user.id) == [line]
    assert await carts.list(CartFilter(product_id=product.id)) == [line]


async def test_unknown_user_is_reference_violation(carts, product):
    with pytest.raises(CartInvalidUserID):
        await carts.create(Cart(product_id=product.id, quantity=1, user_id=99999))


async def test_unknown_product_is_reference_violation(carts, user):
    with pytest.raises(CartInvalidProductID):
        await carts.create(Cart(product_id=99999, quantity=1, user_id=user.id))


async def test_user_without_carts(carts, user):
    with pytest.raises(CartNotFound):
        await carts.get_by_user(user.id)
    with pytest.raises(CartNotFound):
        await carts.get_by_user(0)


async def test_update_is_last_write_wins(carts, product, user):
    line = await carts.create(Cart(product_id=product.id, quantity=1, user_id=user.id))
    first = await carts.update(line.id, CartUpdate(quantity=3))
    second = await carts.update(line.id, CartUpdate(quantity=7))
    assert (first.quantity, second.quantity) == (3, 7)
    assert second.product_id == product.id
    assert (await carts.get_by_id(line.id)).quantity == 7


async def test_update_checks_references_and_quantity(carts, product, user):
    line = await carts.create(Cart(product_id=product.id, quantity=1, user_id=user.id))
    with pytest.raises(CartInvalidProductID):
        await carts.update(line.id, CartUpdate(product_id=99999))
    with pytest.raises(InvalidInputError):
        await carts.update(line.id, CartUpdate(quantity=0))


async def test_update_missing_line_is_not_found(carts):
    with pytest.raises(CartNotFound):
        await carts.update(12345, CartUpdate(quantity=2))


async def test_deleting_user_removes_their_carts(carts, users, product, user):
    other = await users.create(User(email="bob@example.com", password_hash=b"x"))
    await carts.create(Cart(product_id=product.id, quantity=1, user_id=user.id))
    kept = await carts.create(Cart(product_id=product.id, quantity=1, user_id=other.id))
    await users.delete(user.id)
    assert await carts.list() == [kept]


async def test_delete(carts, product, user):
    line = await carts.create(Cart(product_id=product.id, quantity=1, user_id=user.id))
    await carts.delete(line.id)
    with pytest.raises(CartNotFound):
        await carts.delete(line.id)
