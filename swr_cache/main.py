"""
SWR Cache - diagnostics service
Exposes health, version and cache inspection endpoints for a running process
"""
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Query

from swr_cache.cache import CacheManager, get_cache_manager
from config.settings import settings

logging.basicConfig(level=settings.log_level.upper())

# Version tracking
APP_VERSION = "v0.1.0"
APP_NAME = "SWR Cache"

app = FastAPI(
    title=APP_NAME,
    description="Stale-while-revalidate cache diagnostics",
    version=APP_VERSION,
)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "full": f"{APP_NAME} {APP_VERSION}",
    }


@app.get("/cache/stats")
def cache_stats(manager: CacheManager = Depends(get_cache_manager)):
    """Get cache contents and hit statistics."""
    return {
        **manager.inspect().to_dict(),
        "stats": manager.get_stats(),
    }


@app.delete("/cache")
def clear_cache(
    prefix: Optional[str] = Query(default=None, description="Only evict keys starting with this prefix"),
    manager: CacheManager = Depends(get_cache_manager),
):
    """Evict cache entries, all of them if no prefix is given."""
    return {"invalidated": manager.invalidate_by_prefix(prefix)}
