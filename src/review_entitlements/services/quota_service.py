"""
Quota Service - per-tenant usage limits by subscription tier
"""
from sqlalchemy import case, update
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timedelta
from dataclasses import dataclass, asdict
from typing import Optional, Dict, List
import enum
import logging

from ..db.models import TenantQuotaUsage, SubscriptionTier
from .metrics import increment_counter, QUOTA_EXCEEDED
from .subscription_sync import SubscriptionSyncService
from .tier_config import get_quota_limits

logger = logging.getLogger(__name__)

UNLIMITED = -1


class QuotaType(str, enum.Enum):
    """Quota type enum"""
    SEATS = "seats"
    LOCATIONS = "locations"
    REVIEW_RATE_LIMIT = "reviewRateLimit"
    API_CALLS = "apiCalls"
    DATA_RETENTION = "dataRetention"
    EXPORT_LIMIT = "exportLimit"


class ResetPeriod(str, enum.Enum):
    DAILY = "daily"
    MONTHLY = "monthly"


QUOTA_RESET_PERIODS: Dict[QuotaType, Optional[ResetPeriod]] = {
    QuotaType.SEATS: None,
    QuotaType.LOCATIONS: None,
    QuotaType.REVIEW_RATE_LIMIT: ResetPeriod.DAILY,
    QuotaType.API_CALLS: ResetPeriod.DAILY,
    QuotaType.DATA_RETENTION: None,
    QuotaType.EXPORT_LIMIT: ResetPeriod.MONTHLY,
}

QUOTA_LABELS: Dict[QuotaType, str] = {
    QuotaType.SEATS: "Team Members",
    QuotaType.LOCATIONS: "Business Locations",
    QuotaType.REVIEW_RATE_LIMIT: "Review Scraping",
    QuotaType.API_CALLS: "API Calls",
    QuotaType.DATA_RETENTION: "Data Retention",
    QuotaType.EXPORT_LIMIT: "Data Exports",
}


@dataclass
class QuotaCheckResult:
    """Outcome of a quota check; limit/remaining of -1 mean unlimited"""
    allowed: bool
    current: int
    limit: int
    remaining: int
    overage: int = 0
    reason: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


def next_reset_at(period: Optional[ResetPeriod], now: datetime) -> Optional[datetime]:
    """Start of the next quota window (UTC midnight / first of next month)"""
    if period is None:
        return None
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == ResetPeriod.DAILY:
        return midnight + timedelta(days=1)
    first_of_month = midnight.replace(day=1)
    if first_of_month.month == 12:
        return first_of_month.replace(year=first_of_month.year + 1, month=1)
    return first_of_month.replace(month=first_of_month.month + 1)


class QuotaService:
    """Service for checking and recording tenant quota usage"""

    def __init__(self, db: Session):
        self.db = db

    # ========================================================================
    # Limits
    # ========================================================================

    def get_tier(self, team_id: str) -> str:
        subscription = SubscriptionSyncService(self.db).get_team_subscription(team_id)
        return subscription.tier if subscription else SubscriptionTier.FREE.value

    def get_limit(self, team_id: str, quota_type: QuotaType, tier: Optional[str] = None) -> int:
        """Quota limit for the team's tier (-1 = unlimited, 0 = not allowed)"""
        quota_type = QuotaType(quota_type)
        limits = get_quota_limits(tier or self.get_tier(team_id))
        return int(limits.get(quota_type.value, 0))

    # ========================================================================
    # Usage
    # ========================================================================
    #
    # Counters are only changed with single UPDATE statements evaluated by the
    # database, never by writing back a value read earlier in the session.

    def _usage_row(self, team_id: str, quota_type: QuotaType) -> Optional[TenantQuotaUsage]:
        return self.db.query(TenantQuotaUsage).filter(*self._row_filter(team_id, quota_type)).first()

    @staticmethod
    def _row_filter(team_id: str, quota_type: QuotaType) -> tuple:
        return (
            TenantQuotaUsage.team_id == team_id,
            TenantQuotaUsage.quota_type == quota_type.value,
        )

    @staticmethod
    def _is_expired(row: TenantQuotaUsage, now: datetime) -> bool:
        return row.reset_at is not None and row.reset_at <= now

    def _stored_usage(self, team_id: str, quota_type: QuotaType) -> int:
        used = self.db.query(TenantQuotaUsage.used).filter(*self._row_filter(team_id, quota_type)).scalar()
        return used or 0

    def _ensure_row(self, team_id: str, quota_type: QuotaType, now: datetime) -> None:
        exists = self.db.query(TenantQuotaUsage.id).filter(*self._row_filter(team_id, quota_type)).first()
        if exists is not None:
            return
        self.db.add(TenantQuotaUsage(
            team_id=team_id,
            quota_type=quota_type.value,
            used=0,
            period_start=now,
            reset_at=next_reset_at(QUOTA_RESET_PERIODS[quota_type], now),
        ))
        try:
            self.db.flush()
        except IntegrityError:
            # Another request created the row first
            self.db.rollback()

    def _reset_window(self, team_id: str, quota_type: QuotaType, now: datetime) -> int:
        """Start a new window if the current one has passed; only one concurrent caller matches"""
        statement = (
            update(TenantQuotaUsage)
            .where(
                *self._row_filter(team_id, quota_type),
                TenantQuotaUsage.reset_at.isnot(None),
                TenantQuotaUsage.reset_at <= now,
            )
            .values(
                used=0,
                period_start=now,
                reset_at=next_reset_at(QUOTA_RESET_PERIODS[quota_type], now),
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(statement).rowcount

    def get_usage(self, team_id: str, quota_type: QuotaType) -> int:
        """Usage in the current window (0 once the window has passed, before the reset is written)"""
        row = self._usage_row(team_id, QuotaType(quota_type))
        if row is None or self._is_expired(row, datetime.utcnow()):
            return 0
        return row.used

    def check_quota(self, team_id: str, quota_type: QuotaType, amount: int = 1) -> QuotaCheckResult:
        """
        Check whether the team can use `amount` more of a quota

        Returns:
            QuotaCheckResult (allowed, current, limit, remaining, overage, reason)
        """
        quota_type = QuotaType(quota_type)
        limit = self.get_limit(team_id, quota_type)
        current = self.get_usage(team_id, quota_type)

        if limit == UNLIMITED:
            return QuotaCheckResult(allowed=True, current=current, limit=UNLIMITED, remaining=UNLIMITED)

        projected = current + amount
        allowed = projected <= limit
        result = QuotaCheckResult(
            allowed=allowed,
            current=current,
            limit=limit,
            remaining=max(limit - current, 0),
            overage=max(projected - limit, 0),
        )
        if not allowed:
            result.reason = QUOTA_LABELS[quota_type]
            increment_counter(QUOTA_EXCEEDED, labels={"quota_type": quota_type.value})
            logger.info(
                f"Quota {quota_type.value} exceeded for team {team_id}: "
                f"current={current}, requested={amount}, limit={limit}"
            )
        return result

    def record_usage(self, team_id: str, quota_type: QuotaType, amount: int = 1) -> int:
        """
        Add usage to a quota

        Returns:
            Usage after recording
        """
        quota_type = QuotaType(quota_type)
        now = datetime.utcnow()
        self._ensure_row(team_id, quota_type, now)
        self._reset_window(team_id, quota_type, now)

        self.db.execute(
            update(TenantQuotaUsage)
            .where(*self._row_filter(team_id, quota_type))
            .values(used=TenantQuotaUsage.used + amount)
            .execution_options(synchronize_session=False)
        )
        used = self._stored_usage(team_id, quota_type)
        self.db.commit()
        logger.debug(f"Recorded {amount} {quota_type.value} for team {team_id} (used={used})")
        return used

    def release_usage(self, team_id: str, quota_type: QuotaType, amount: int = 1) -> int:
        """Give back usage (seat removed, location deleted); never below zero"""
        quota_type = QuotaType(quota_type)
        if self._usage_row(team_id, quota_type) is None:
            return 0

        self._reset_window(team_id, quota_type, datetime.utcnow())
        self.db.execute(
            update(TenantQuotaUsage)
            .where(*self._row_filter(team_id, quota_type))
            .values(used=case(
                (TenantQuotaUsage.used > amount, TenantQuotaUsage.used - amount),
                else_=0,
            ))
            .execution_options(synchronize_session=False)
        )
        used = self._stored_usage(team_id, quota_type)
        self.db.commit()
        return used

    def get_quota_status(self, team_id: str) -> List[Dict]:
        """Usage and limits for every quota type"""
        tier = self.get_tier(team_id)
        now = datetime.utcnow()
        status = []
        for quota_type in QuotaType:
            limit = self.get_limit(team_id, quota_type, tier=tier)
            period = QUOTA_RESET_PERIODS[quota_type]
            row = self._usage_row(team_id, quota_type)
            if row is None:
                used, reset_at = 0, None
            elif self._is_expired(row, now):
                used, reset_at = 0, next_reset_at(period, now)
            else:
                used, reset_at = row.used, row.reset_at
            status.append({
                "quota_type": quota_type.value,
                "label": QUOTA_LABELS[quota_type],
                "used": used,
                "limit": limit,
                "remaining": UNLIMITED if limit == UNLIMITED else max(limit - used, 0),
                "unlimited": limit == UNLIMITED,
                "reset_period": period.value if period else None,
                "reset_at": reset_at,
            })
        return status

    def reset_expired_usage(self) -> int:
        """
        Reset every usage row whose window has passed

        Returns:
            Number of rows reset
        """
        now = datetime.utcnow()
        count = 0
        for quota_type, period in QUOTA_RESET_PERIODS.items():
            if period is None:
                continue
            result = self.db.execute(
                update(TenantQuotaUsage)
                .where(
                    TenantQuotaUsage.quota_type == quota_type.value,
                    TenantQuotaUsage.reset_at.isnot(None),
                    TenantQuotaUsage.reset_at <= now,
                )
                .values(used=0, period_start=now, reset_at=next_reset_at(period, now))
                .execution_options(synchronize_session=False)
            )
            count += result.rowcount
        self.db.commit()

        if count:
            logger.info(f"Reset {count} expired quota usage rows")
        return count
