"""
Pydantic schemas for the entitlement API
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict
from datetime import datetime


class FeatureCheckRequest(BaseModel):
    """Features to check for a tenant"""
    features: List[str] = Field(..., description="Feature lookup keys", min_length=1)

    @field_validator('features')
    @classmethod
    def strip_blank_keys(cls, v):
        """Drop blank keys; at least one must remain"""
        keys = [key.strip() for key in v if key and key.strip()]
        if not keys:
            raise ValueError("At least one feature key is required")
        return keys


class FeatureMetadata(BaseModel):
    has_active_subscription: bool
    subscription_status: Optional[str] = None
    source: str
    feature_count: int


class TenantFeaturesResponse(BaseModel):
    """Every known feature key mapped to whether the tenant has it"""
    team_id: str
    features: Dict[str, bool]
    metadata: FeatureMetadata
    resolved_at: datetime


class FeatureCheckResponse(BaseModel):
    team_id: str
    features: Dict[str, bool]


class SingleFeatureResponse(BaseModel):
    team_id: str
    feature: str
    has_access: bool


class FeatureAccessResponse(BaseModel):
    has_access: bool
    features: List[str]
    tier: Optional[str] = None
    subscription_id: Optional[str] = None
    error: Optional[str] = None


class LimitsResponse(BaseModel):
    team_id: str
    tier: str
    platforms: Dict[str, bool]
    limits: Dict[str, int]


class CacheInvalidationResponse(BaseModel):
    team_id: str
    invalidated: bool


class QuotaStatus(BaseModel):
    """Usage of one quota; limit/remaining of -1 mean unlimited"""
    quota_type: str
    label: str
    used: int
    limit: int
    remaining: int
    unlimited: bool
    reset_period: Optional[str] = None
    reset_at: Optional[datetime] = None


class QuotaStatusResponse(BaseModel):
    team_id: str
    quotas: List[QuotaStatus]


class WebhookResponse(BaseModel):
    status: str = "ok"
    event_type: str
    handled: bool
    cache_cleared: bool
    duplicate: bool = False
