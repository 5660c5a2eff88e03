"""
Middleware for feature-based access control

Decorators for FastAPI handlers. The team is taken from the handler's `team_id`
argument, or from the X-Team-ID header when the handler accepts `request`.
A `db` argument, when present, is reused for the access lookup.
"""
import inspect
import logging
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Dict, List, Optional

from fastapi import HTTPException, status

from ..feature_keys import FeatureKey, PLATFORM_FEATURES, platform_for_name
from ..logging_config import bind_team_id
from ..services.feature_access import FeatureAccessService

logger = logging.getLogger(__name__)

TEAM_ID_HEADER = "x-team-id"


def resolve_team_id(kwargs: Dict) -> Optional[str]:
    """Team ID from handler kwargs or the X-Team-ID request header"""
    team_id = kwargs.get("team_id")
    if not team_id and kwargs.get("request") is not None:
        team_id = kwargs["request"].headers.get(TEAM_ID_HEADER)
    if not team_id:
        return None
    bind_team_id(str(team_id))
    return str(team_id)


def missing_team_error(status_code: int = status.HTTP_401_UNAUTHORIZED) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": "Team ID required", "code": "MISSING_TEAM_ID"},
    )


@contextmanager
def access_service(kwargs: Dict):
    """FeatureAccessService on the handler's session, or a short-lived one"""
    db = kwargs.get("db")
    if db is not None:
        yield FeatureAccessService(db)
        return

    from ..db.engine import SessionLocal

    db = SessionLocal()
    try:
        yield FeatureAccessService(db)
    finally:
        db.close()


async def call_handler(func: Callable, *args, **kwargs):
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def _check_features(kwargs: Dict, features: List[str], require_all: bool) -> None:
    team_id = resolve_team_id(kwargs)
    if not team_id:
        raise missing_team_error()

    try:
        with access_service(kwargs) as access:
            missing = access.missing_features(team_id, features)
    except Exception as e:
        logger.error(f"Feature check failed for team {team_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to check feature access", "code": "FEATURE_CHECK_ERROR"},
        )

    # With require_all=False a single granted feature is enough
    denied = bool(missing) if require_all else len(missing) == len(features)
    if denied:
        logger.info(f"Team {team_id} denied: missing features {missing}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "Feature not available",
                "code": "FEATURE_NOT_AVAILABLE",
                "missingFeatures": missing,
                "upgradeRequired": True,
            },
        )


def require_features(*features: str, require_all: bool = True):
    """
    Decorator to require feature entitlements

    Usage:
        @router.get("/teams/{team_id}/analytics")
        @require_features('google.analytics', 'analytics.advanced')
        async def analytics(team_id: str, db: Session = Depends(get_db)):
            ...
    """
    feature_keys = [f.value if isinstance(f, FeatureKey) else f for f in features]

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            _check_features(kwargs, feature_keys, require_all)
            return await call_handler(func, *args, **kwargs)
        return wrapper
    return decorator


def require_platform(platform: Optional[str] = None):
    """
    Decorator to require access to a review platform

    With no argument the platform is read from the handler's `platform` argument.

    Usage:
        @require_platform('tripadvisor')
        async def tripadvisor_reviews(team_id: str, ...):
            ...
    """
    fixed_feature = PLATFORM_FEATURES[platform_for_name(platform)].value if platform else None

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            feature = fixed_feature
            if feature is None:
                try:
                    feature = PLATFORM_FEATURES[platform_for_name(kwargs.get("platform", ""))].value
                except ValueError:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail={"error": f"Unknown platform: {kwargs.get('platform')}", "code": "INVALID_PLATFORM"},
                    )
            _check_features(kwargs, [feature], require_all=True)
            return await call_handler(func, *args, **kwargs)
        return wrapper
    return decorator


def require_multi_location():
    """Decorator to require the multiple-locations entitlement"""
    return require_features(FeatureKey.LOCATIONS_MULTIPLE.value)


def require_api_access():
    """Decorator to require the API access entitlement"""
    return require_features(FeatureKey.API_ACCESS.value)
