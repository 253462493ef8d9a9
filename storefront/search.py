# storefront/search.py
import asyncio
import logging
from typing import List

from .categories import CategoryStore
from .database import Database
from .errors import InvalidInputError, NoSearchResult
from .models import SearchHit, check_text
from .products import ProductStore

logger = logging.getLogger(__name__)


class SearchStore:
    """Full-text search over category and product names.

    Both tables are queried concurrently; category hits come first, then
    product hits, each in the engine's own match order.
    """

    def __init__(self, db: Database):
        self.categories = CategoryStore(db)
        self.products = ProductStore(db)

    async def search(self, query: str) -> List[SearchHit]:
        query = (query or "").strip()
        if not query:
            raise InvalidInputError("search query must not be empty")
        try:
            check_text(query)
        except ValueError as exc:
            raise InvalidInputError(f"search query: {exc}") from None

        categories, products = await asyncio.gather(
            self.categories.search(query),
            self.products.search(query),
        )
        hits = [SearchHit(category=category) for category in categories]
        hits.extend(SearchHit(product=product) for product in products)
        if not hits:
            raise NoSearchResult()
        logger.debug("search %r matched %d rows", query, len(hits))
        return hits
