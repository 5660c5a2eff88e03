"""
Tenant feature routes
Read-only views of a team's Stripe entitlements, plus manual cache invalidation
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging

from .db.engine import get_db
from .schemas import (
    FeatureCheckRequest,
    FeatureCheckResponse,
    FeatureAccessResponse,
    SingleFeatureResponse,
    TenantFeaturesResponse,
    LimitsResponse,
    CacheInvalidationResponse,
)
from .services.feature_access import FeatureAccessService
from .services.tier_limits import FeatureExtractor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/teams", tags=["Features"])


def get_feature_access_service(db: Session = Depends(get_db)) -> FeatureAccessService:
    return FeatureAccessService(db)


@router.get("/{team_id}/features", response_model=TenantFeaturesResponse)
async def get_tenant_features(
    team_id: str,
    access: FeatureAccessService = Depends(get_feature_access_service)
):
    """
    Get every known feature for a team (by id or slug)
    """
    return access.get_tenant_features(team_id)


@router.post("/{team_id}/features/check", response_model=FeatureCheckResponse)
async def check_tenant_features(
    team_id: str,
    request: FeatureCheckRequest,
    access: FeatureAccessService = Depends(get_feature_access_service)
):
    """
    Check a list of features for a team
    """
    try:
        results = access.check_tenant_features(team_id, request.features)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": str(e), "code": "VALIDATION_ERROR"}
        )
    return {"team_id": access.resolve_team(team_id).id, "features": results}


# Registered before /{feature_key} so "access" is not treated as a key
@router.get("/{team_id}/features/access", response_model=FeatureAccessResponse)
async def get_feature_access(
    team_id: str,
    access: FeatureAccessService = Depends(get_feature_access_service)
):
    """
    Summary of a team's access: enabled features, tier and subscription
    """
    team = access.resolve_team(team_id)
    return access.get_feature_access(team.id)


@router.get("/{team_id}/features/{feature_key}", response_model=SingleFeatureResponse)
async def check_single_feature(
    team_id: str,
    feature_key: str,
    access: FeatureAccessService = Depends(get_feature_access_service)
):
    team = access.resolve_team(team_id)
    return {
        "team_id": team.id,
        "feature": feature_key,
        "has_access": access.has_feature(team.id, feature_key),
    }


@router.post("/{team_id}/features/cache/invalidate", response_model=CacheInvalidationResponse)
async def invalidate_feature_cache(
    team_id: str,
    access: FeatureAccessService = Depends(get_feature_access_service)
):
    """
    Drop a team's cached entitlements so the next check goes to Stripe
    """
    team = access.resolve_team(team_id)
    invalidated = access.invalidate_tenant_feature_cache(team.id)
    logger.info(f"Manual feature cache invalidation for team {team.id}: {invalidated}")
    return {"team_id": team.id, "invalidated": invalidated}


@router.get("/{team_id}/limits", response_model=LimitsResponse)
async def get_team_limits(
    team_id: str,
    db: Session = Depends(get_db),
    access: FeatureAccessService = Depends(get_feature_access_service)
):
    """
    Tier, platform access and scraping limits derived from the team's plan
    """
    team = access.resolve_team(team_id)
    extracted = FeatureExtractor(db, feature_checker=access.feature_checker).extract_team_features(team.id)
    return {"team_id": team.id, **extracted.to_dict()}
