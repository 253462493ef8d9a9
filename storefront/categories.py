# storefront/categories.py
from .errors import CategoryConflict, CategoryNotFound
from .models import Category, CategoryFilter, CategoryUpdate
from .query import CATEGORY_SORT_COLUMNS
from .store import FullTextSearch, ResourceStore, VersionedUpdate


class CategoryStore(VersionedUpdate, FullTextSearch, ResourceStore):
    """Categories. Deleting one cascades to its products (and their carts)."""

    table = "categories"
    columns = ("id", "name", "description", "created_at", "updated_at", "version")
    model = Category
    filter_model = CategoryFilter
    predicates = ("id", "name")
    sort_columns = CATEGORY_SORT_COLUMNS
    not_found = CategoryNotFound
    conflict = CategoryConflict

    async def create(self, category: Category) -> Category:
        return await self._insert(category, ("name", "description"))

    async def update(self, id: int, changes: CategoryUpdate, version: int) -> Category:
        return await super().update(id, changes, version)
