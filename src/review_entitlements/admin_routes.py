"""
Admin routes for feature cache inspection and invalidation
Protected by the X-Admin-Token header
"""
from fastapi import APIRouter, Depends, Header, HTTPException, status
from typing import Dict, Any, Optional
import hmac
import logging

from .config import config
from .services.cache_invalidation import get_cache_invalidation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["Admin"])


# ============================================================================
# Admin Guard Dependency
# ============================================================================

async def require_admin_token(x_admin_token: Optional[str] = Header(None)) -> str:
    """
    Require a valid X-Admin-Token header

    Raises:
        HTTPException: 503 if no admin token is configured, 403 if the token is wrong
    """
    if not config.ADMIN_API_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "Admin API is not configured", "code": "SERVICE_UNAVAILABLE"}
        )

    if not x_admin_token or not hmac.compare_digest(x_admin_token, config.ADMIN_API_TOKEN):
        logger.warning("Rejected admin request with missing or invalid X-Admin-Token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Admin access required", "code": "FORBIDDEN"}
        )
    return x_admin_token


# ============================================================================
# Feature Cache Endpoints
# ============================================================================

@router.get("/feature-cache")
async def get_feature_cache_stats(_: str = Depends(require_admin_token)) -> Dict[str, Any]:
    """
    Feature cache statistics for every registered checker

    **Admin Access Required**
    """
    return get_cache_invalidation_service().get_invalidation_stats()


@router.delete("/feature-cache")
async def clear_feature_cache(_: str = Depends(require_admin_token)) -> Dict[str, Any]:
    """
    Clear every cached team entitlement

    **Admin Access Required**
    """
    cleared = get_cache_invalidation_service().clear_all_caches(reason="manual")
    logger.info(f"Admin cleared all feature caches: {cleared}")
    return {"status": "success", "cleared": cleared}
