"""
Billing event model
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from datetime import datetime

from ..base import Base


class BillingEvent(Base):
    """Processed webhook event, kept for replay protection and audit"""
    __tablename__ = "billing_events"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(String(64), ForeignKey("teams.id"), nullable=True, index=True)
    provider = Column(String(32), nullable=False, default="stripe")
    event_type = Column(String(128), nullable=False, index=True)
    provider_event_id = Column(String(255), nullable=False, unique=True, index=True)
    payload_json = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
