from fastapi import APIRouter, Depends

from account_proxy.cache import CacheManager
from account_proxy.config import Settings
from account_proxy.dependencies import get_cache_manager, get_settings
from account_proxy.schemas import MetricsResponse

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])


@router.get("", response_model=MetricsResponse)
async def get_metrics(
    config: Settings = Depends(get_settings),
    cache: CacheManager | None = Depends(get_cache_manager),
):
    return MetricsResponse(
        cache_enabled=config.USE_CACHE,
        cache_info=cache.stats if cache is not None else {},
    )
