# storefront/carts.py
from typing import List

from .errors import CartNotFound
from .models import Cart, CartFilter, CartUpdate
from .query import CART_SORT_COLUMNS
from .store import ResourceStore, UnversionedUpdate


class CartStore(UnversionedUpdate, ResourceStore):
    """Cart lines. No version column: concurrent updates are last-write-wins.

    Both references are checked by the schema on every write, so an unknown
    user or product surfaces as CartInvalidUserID / CartInvalidProductID.
    """

    table = "carts"
    columns = ("id", "product_id", "quantity", "user_id")
    model = Cart
    filter_model = CartFilter
    predicates = ("id", "user_id", "product_id")
    sort_columns = CART_SORT_COLUMNS
    not_found = CartNotFound
    timestamped = False

    async def create(self, cart: Cart) -> Cart:
        return await self._insert(cart, ("product_id", "quantity", "user_id"))

    async def get_by_user(self, user_id: int) -> List[Cart]:
        if user_id is None or user_id <= 0:
            raise self.not_found()
        return await self.list(CartFilter(user_id=user_id))

    async def update(self, id: int, changes: CartUpdate) -> Cart:
        return await super().update(id, changes)
