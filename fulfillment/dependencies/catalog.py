from functools import lru_cache

from fulfillment.config import settings
from fulfillment.database import session_factory
from fulfillment.repositories.cached_catalog_repository import CacheTTLs, CachedCatalogRepository
from fulfillment.utils.cache import TTLCache


@lru_cache(maxsize=1)
def get_catalog_repository() -> CachedCatalogRepository:
    """The process-wide cached catalog; every request shares its cache."""
    ttls = CacheTTLs(
        item=settings.cache_ttl_item_seconds,
        list=settings.cache_ttl_list_seconds,
        count=settings.cache_ttl_count_seconds,
    )
    return CachedCatalogRepository(
        session_factory,
        cache=TTLCache(default_ttl=ttls.item),
        ttls=ttls,
    )
