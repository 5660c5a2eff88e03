"""
Tenant quota usage model
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from ..base import Base


class TenantQuotaUsage(Base):
    """Usage counter per team and quota type"""
    __tablename__ = "tenant_quota_usage"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(String(64), ForeignKey("teams.id"), nullable=False, index=True)
    quota_type = Column(String(32), nullable=False)
    used = Column(Integer, nullable=False, default=0)
    period_start = Column(DateTime, default=datetime.utcnow, nullable=False)
    reset_at = Column(DateTime, nullable=True, index=True)  # None for non-resetting quotas
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    team = relationship("Team", back_populates="quota_usage")

    __table_args__ = (
        UniqueConstraint("team_id", "quota_type", name="uq_tenant_quota_usage_team_quota"),
    )
