import logging

from fastapi import APIRouter

from tracker.cache.layer import NAMESPACES
from tracker.core.exceptions import ResourceNotFoundError
from tracker.deps import CacheDep, CurrentUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cache", tags=["cache"])


@router.get("/stats")
async def get_cache_stats(cache: CacheDep, user_email: CurrentUser):
    return cache.get_stats()


@router.delete("/clear")
async def clear_all_caches(cache: CacheDep, user_email: CurrentUser):
    logger.info("Clearing all caches (requested by %s)", user_email)
    await cache.clear_all()
    return {"message": "All caches cleared successfully"}


@router.delete("/clear/{namespace}")
async def clear_cache(namespace: str, cache: CacheDep, user_email: CurrentUser):
    if namespace not in NAMESPACES:
        raise ResourceNotFoundError("Cache", "name", namespace)
    logger.info("Clearing cache: %s (requested by %s)", namespace, user_email)
    await cache.evict_all(namespace)
    return {"message": f"Cache '{namespace}' cleared successfully"}
