"""
Quota routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from .db.engine import get_db
from .schemas import QuotaStatusResponse
from .services.feature_access import FeatureAccessService
from .services.quota_service import QuotaService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/teams", tags=["Quotas"])


@router.get("/{team_id}/quotas", response_model=QuotaStatusResponse)
async def get_quota_status(team_id: str, db: Session = Depends(get_db)):
    """
    Usage and limits for every quota type of a team
    """
    team = FeatureAccessService(db).resolve_team(team_id)
    return {"team_id": team.id, "quotas": QuotaService(db).get_quota_status(team.id)}
