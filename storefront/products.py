# storefront/products.py
from .errors import ProductConflict, ProductNotFound
from .models import Product, ProductFilter, ProductUpdate
from .query import PRODUCT_SORT_COLUMNS
from .store import FullTextSearch, ResourceStore, VersionedUpdate


class ProductStore(VersionedUpdate, FullTextSearch, ResourceStore):
    """Products. Updates are version-checked; deleting the owning category
    removes the product through the schema cascade."""

    table = "products"
    columns = (
        "id", "name", "description", "category_id", "price", "quantity",
        "created_at", "updated_at", "version",
    )
    model = Product
    filter_model = ProductFilter
    predicates = ("id", "name", "category_id")
    sort_columns = PRODUCT_SORT_COLUMNS
    not_found = ProductNotFound
    conflict = ProductConflict

    async def create(self, product: Product) -> Product:
        return await self._insert(product, ("name", "description", "category_id", "price", "quantity"))

    async def update(self, id: int, changes: ProductUpdate, version: int) -> Product:
        return await super().update(id, changes, version)
