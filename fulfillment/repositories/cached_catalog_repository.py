import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlmodel import Session

from fulfillment.repositories.catalog_repository import CatalogQuery, CatalogRepository
from fulfillment.utils.cache import TTLCache

logger = logging.getLogger(__name__)

GET = "get"
BOOKS = "books"
LIST = "list"
COUNT = "count"


@dataclass(frozen=True)
class CacheTTLs:
    item: float = 300      # singletons live longest
    list: float = 60
    count: float = 120


class CachedCatalogRepository(CatalogRepository):
    """
    Read-through cache in front of the catalog.

    Keys are ``(kind, operation, params)`` tuples. Searches and price-range
    listings are never cached. Any write drops the touched item's entries and
    every list/count entry.
    """

    def __init__(self, session_factory: Callable[[], Session], cache: Optional[TTLCache] = None,
                 ttls: CacheTTLs = CacheTTLs()):
        super().__init__(session_factory)
        # an empty TTLCache is falsy, so test for None explicitly
        self.cache = cache if cache is not None else TTLCache(default_ttl=ttls.item)
        self.ttls = ttls

    def _read_through(self, key: tuple, ttl: float, load):
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        result = load()
        if result.success:
            self.cache.set(key, result, ttl)
        return result

    # -------------------------
    # READS
    # -------------------------

    def get_book(self, book_id: int):
        return self._read_through(
            ("book", GET, book_id), self.ttls.item, lambda: super(CachedCatalogRepository, self).get_book(book_id)
        )

    def get_bundle(self, bundle_id: int):
        return self._read_through(
            ("bundle", GET, bundle_id), self.ttls.item,
            lambda: super(CachedCatalogRepository, self).get_bundle(bundle_id),
        )

    def get_bundle_books(self, bundle_id: int):
        return self._read_through(
            ("bundle", BOOKS, bundle_id), self.ttls.item,
            lambda: super(CachedCatalogRepository, self).get_bundle_books(bundle_id),
        )

    def list_books(self, query: CatalogQuery = CatalogQuery()):
        load = lambda: super(CachedCatalogRepository, self).list_books(query)  # noqa: E731
        if query.has_search or query.has_price_range:
            return load()
        return self._read_through(("book", LIST, query.as_key()), self.ttls.list, load)

    def list_bundles(self, query: CatalogQuery = CatalogQuery()):
        load = lambda: super(CachedCatalogRepository, self).list_bundles(query)  # noqa: E731
        if query.has_search or query.has_price_range:
            return load()
        return self._read_through(("bundle", LIST, query.as_key()), self.ttls.list, load)

    def count_books(self, query: CatalogQuery = CatalogQuery()):
        return self._read_through(
            ("book", COUNT, query.as_key()), self.ttls.count,
            lambda: super(CachedCatalogRepository, self).count_books(query),
        )

    def count_bundles(self, query: CatalogQuery = CatalogQuery()):
        return self._read_through(
            ("bundle", COUNT, query.as_key()), self.ttls.count,
            lambda: super(CachedCatalogRepository, self).count_bundles(query),
        )

    # -------------------------
    # WRITES
    # -------------------------

    def create_book(self, data: dict):
        result = super().create_book(data)
        if result.success:
            self.invalidate_lists()
        return result

    def update_book(self, book_id: int, updates: dict):
        result = super().update_book(book_id, updates)
        if result.success:
            self.invalidate_item("book", book_id)
            self.invalidate_bundle_books()
            self.invalidate_lists()
        return result

    def delete_book(self, book_id: int):
        result = super().delete_book(book_id)
        if result.success:
            self.invalidate_item("book", book_id)
            self.invalidate_bundle_books()
            self.invalidate_lists()
        return result

    def create_bundle(self, data: dict, book_ids=()):
        result = super().create_bundle(data, book_ids)
        if result.success:
            self.invalidate_lists()
        return result

    def update_bundle(self, bundle_id: int, updates: dict):
        result = super().update_bundle(bundle_id, updates)
        if result.success:
            self.invalidate_item("bundle", bundle_id)
            self.invalidate_lists()
        return result

    def set_bundle_books(self, bundle_id: int, book_ids):
        result = super().set_bundle_books(bundle_id, book_ids)
        if result.success:
            self.invalidate_item("bundle", bundle_id)
            self.invalidate_lists()
        return result

    def delete_bundle(self, bundle_id: int):
        result = super().delete_bundle(bundle_id)
        if result.success:
            self.invalidate_item("bundle", bundle_id)
            self.invalidate_lists()
        return result

    # -------------------------
    # INVALIDATION
    # -------------------------

    def invalidate_item(self, kind: str, item_id: int) -> int:
        removed = self.cache.invalidate(
            lambda key: key[0] == kind and key[1] in (GET, BOOKS) and key[2] == item_id
        )
        logger.debug(f"Invalidated {removed} cache entries for {kind} {item_id}")
        return removed

    def invalidate_lists(self) -> int:
        return self.cache.invalidate(lambda key: key[1] in (LIST, COUNT))

    def invalidate_bundle_books(self) -> int:
        """Bundle book lists embed book rows, so any book write drops all of them."""
        return self.cache.invalidate(lambda key: key[0] == "bundle" and key[1] == BOOKS)

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> dict:
        return self.cache.stats()
