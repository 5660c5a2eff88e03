"""
Middleware for quota enforcement on FastAPI handlers
"""
import logging
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Dict

from fastapi import HTTPException, status
from starlette.responses import Response

from ..config import config
from ..services.quota_service import QuotaService, QuotaType, QuotaCheckResult
from .feature_gate import resolve_team_id, missing_team_error, call_handler

logger = logging.getLogger(__name__)


@contextmanager
def quota_service(kwargs: Dict):
    """QuotaService on the handler's session, or a short-lived one"""
    db = kwargs.get("db")
    if db is not None:
        yield QuotaService(db)
        return

    from ..db.engine import SessionLocal

    db = SessionLocal()
    try:
        yield QuotaService(db)
    finally:
        db.close()


def _require_team(kwargs: Dict) -> str:
    team_id = resolve_team_id(kwargs)
    if not team_id:
        raise missing_team_error(status.HTTP_400_BAD_REQUEST)
    return team_id


def _quota_exceeded(quota_type: QuotaType, result: QuotaCheckResult) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={
            "success": False,
            "error": f"Quota exceeded: {result.reason}",
            "code": "QUOTA_EXCEEDED",
            "quotaType": quota_type.value,
            "remaining": result.remaining,
            "limit": result.limit,
            "upgradeRequired": True,
        },
    )


def _check_quota(kwargs: Dict, team_id: str, quota_type: QuotaType, amount: int) -> None:
    try:
        with quota_service(kwargs) as quotas:
            result = quotas.check_quota(team_id, quota_type, amount)
    except Exception as e:
        logger.error(f"Quota check for {quota_type.value} failed for team {team_id}: {e}", exc_info=True)
        if config.QUOTA_FAIL_OPEN:
            return
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "Quota check unavailable", "code": "QUOTA_CHECK_ERROR"},
        )

    if not result.allowed:
        raise _quota_exceeded(quota_type, result)


def _record_usage(kwargs: Dict, team_id: str, quota_type: QuotaType, amount: int, result) -> None:
    # Only successful responses consume quota
    if isinstance(result, Response) and not 200 <= result.status_code < 300:
        return
    try:
        with quota_service(kwargs) as quotas:
            quotas.record_usage(team_id, quota_type, amount)
    except Exception as e:
        logger.error(f"Failed to record {quota_type.value} usage for team {team_id}: {e}", exc_info=True)


def with_quota_check(quota_type: QuotaType, amount: int = 1):
    """
    Decorator to reject requests that would exceed a quota

    Usage:
        @with_quota_check(QuotaType.LOCATIONS)
        async def add_location(team_id: str, db: Session = Depends(get_db)):
            ...
    """
    quota_type = QuotaType(quota_type)

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            team_id = _require_team(kwargs)
            _check_quota(kwargs, team_id, quota_type, amount)
            return await call_handler(func, *args, **kwargs)
        return wrapper
    return decorator


def with_quota_recording(quota_type: QuotaType, amount: int = 1):
    """Decorator to record quota usage after the handler succeeds"""
    quota_type = QuotaType(quota_type)

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            team_id = _require_team(kwargs)
            result = await call_handler(func, *args, **kwargs)
            _record_usage(kwargs, team_id, quota_type, amount, result)
            return result
        return wrapper
    return decorator


def with_quota_enforcement(quota_type: QuotaType, amount: int = 1):
    """Decorator combining the quota check and usage recording"""
    quota_type = QuotaType(quota_type)

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            team_id = _require_team(kwargs)
            _check_quota(kwargs, team_id, quota_type, amount)
            result = await call_handler(func, *args, **kwargs)
            _record_usage(kwargs, team_id, quota_type, amount, result)
            return result
        return wrapper
    return decorator


def with_multi_quota_check(quotas: Dict[QuotaType, int]):
    """
    Decorator to check several quotas at once

    Usage:
        @with_multi_quota_check({QuotaType.API_CALLS: 1, QuotaType.EXPORT_LIMIT: 1})
        async def export_via_api(team_id: str, ...):
            ...
    """
    required = {QuotaType(quota_type): amount for quota_type, amount in quotas.items()}

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            team_id = _require_team(kwargs)
            exceeded = []
            try:
                with quota_service(kwargs) as service:
                    for quota_type, amount in required.items():
                        result = service.check_quota(team_id, quota_type, amount)
                        if not result.allowed:
                            exceeded.append({
                                "quotaType": quota_type.value,
                                "reason": result.reason,
                                "remaining": result.remaining,
                                "limit": result.limit,
                            })
            except Exception as e:
                logger.error(f"Multi-quota check failed for team {team_id}: {e}", exc_info=True)
                if not config.QUOTA_FAIL_OPEN:
                    raise HTTPException(
                        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                        detail={"error": "Quota check unavailable", "code": "QUOTA_CHECK_ERROR"},
                    )
                exceeded = []

            if exceeded:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail={
                        "success": False,
                        "error": "Quota exceeded: " + ", ".join(item["reason"] for item in exceeded),
                        "code": "QUOTA_EXCEEDED",
                        "exceeded": exceeded,
                        "upgradeRequired": True,
                    },
                )
            return await call_handler(func, *args, **kwargs)
        return wrapper
    return decorator
