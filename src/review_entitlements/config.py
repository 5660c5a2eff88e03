"""
Central configuration module for Review Entitlements
Reads and validates environment variables with strict checks for production
"""
import os
import sys
from typing import Optional, List

from dotenv import load_dotenv

# Only load .env in development
if os.getenv("ENV", "dev").lower() == "dev":
    load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Central configuration class with environment variable validation"""

    # Environment
    ENV: str = os.getenv("ENV", "dev").lower()

    # Database - PostgreSQL in staging/prod, SQLite accepted for dev/test
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./review_entitlements.db")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "900"))

    # Optional but recommended (shared feature cache across instances)
    REDIS_URL: Optional[str] = os.getenv("REDIS_URL")
    PORT: int = int(os.getenv("PORT", "8000"))

    # CORS
    CORS_ORIGINS: List[str] = []

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: Optional[str] = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_TEST_SECRET_KEY: Optional[str] = os.getenv("STRIPE_TEST_SECRET_KEY")
    STRIPE_TEST_WEBHOOK_SECRET: Optional[str] = os.getenv("STRIPE_TEST_WEBHOOK_SECRET")

    # Feature cache
    FEATURE_CACHE_TTL_SECONDS: int = int(os.getenv("FEATURE_CACHE_TTL_SECONDS", "300"))

    # Quota enforcement lets requests through when the quota check itself fails
    QUOTA_FAIL_OPEN: bool = _env_flag("QUOTA_FAIL_OPEN", "true")

    # Admin endpoints (cache stats / flush)
    ADMIN_API_TOKEN: Optional[str] = os.getenv("ADMIN_API_TOKEN")

    # Background jobs
    ENABLE_SCHEDULER: bool = _env_flag("ENABLE_SCHEDULER", "false")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def __init__(self):
        """Initialize configuration and validate required variables"""
        self._load_cors_origins()
        self._validate()

    def _load_cors_origins(self):
        """Load CORS origins from environment variable"""
        default_origins = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]

        cors_env = os.getenv("CORS_ORIGINS", "")
        if cors_env:
            env_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
            self.CORS_ORIGINS = default_origins + env_origins
        else:
            self.CORS_ORIGINS = default_origins

    def _validate(self):
        """Validate required configuration based on environment"""
        errors = []

        if self.ENV not in ["dev", "test", "staging", "prod"]:
            errors.append(f"Invalid ENV value: {self.ENV}. Must be 'dev', 'test', 'staging', or 'prod'")

        if not self.DATABASE_URL:
            errors.append("DATABASE_URL is required but not set")
        elif self.ENV in ["staging", "prod"] and not self.DATABASE_URL.startswith("postgresql"):
            errors.append(f"DATABASE_URL must be a PostgreSQL connection string in {self.ENV} (got: {self.DATABASE_URL[:30]}...)")

        if self.FEATURE_CACHE_TTL_SECONDS <= 0:
            errors.append(f"FEATURE_CACHE_TTL_SECONDS must be positive (got: {self.FEATURE_CACHE_TTL_SECONDS})")

        if self.ENV in ["staging", "prod"]:
            stripe_key = self.STRIPE_SECRET_KEY if self.ENV == "prod" else self.STRIPE_TEST_SECRET_KEY
            stripe_webhook = self.STRIPE_WEBHOOK_SECRET if self.ENV == "prod" else self.STRIPE_TEST_WEBHOOK_SECRET
            prefix = "STRIPE_TEST_" if self.ENV == "staging" else "STRIPE_"
            if not stripe_key:
                errors.append(f"{prefix}SECRET_KEY is required in {self.ENV}")
            if not stripe_webhook:
                errors.append(f"{prefix}WEBHOOK_SECRET is required in {self.ENV}")
            if not self.REDIS_URL:
                errors.append(f"REDIS_URL is required in {self.ENV} so the feature cache is shared across instances")
            if not self.ADMIN_API_TOKEN:
                errors.append(f"ADMIN_API_TOKEN is required in {self.ENV}")

        # Fail fast in staging/prod
        if errors and self.ENV in ["staging", "prod"]:
            print("=" * 60, file=sys.stderr)
            print("CONFIGURATION VALIDATION FAILED", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  - {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            sys.exit(1)

        if errors and self.ENV == "dev":
            print("=" * 60, file=sys.stderr)
            print("CONFIGURATION WARNINGS (dev mode - continuing)", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  - {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode"""
        return self.ENV == "dev"

    @property
    def is_prod(self) -> bool:
        """Check if running in production mode"""
        return self.ENV == "prod"

    @property
    def is_staging(self) -> bool:
        """Check if running in staging mode"""
        return self.ENV == "staging"

    def get_stripe_secret_key(self) -> Optional[str]:
        """Stripe API key for the current environment (test keys in staging)"""
        if self.is_staging:
            return self.STRIPE_TEST_SECRET_KEY
        return self.STRIPE_SECRET_KEY or self.STRIPE_TEST_SECRET_KEY

    def get_stripe_webhook_secret(self) -> Optional[str]:
        """Stripe webhook signing secret for the current environment"""
        if self.is_staging:
            return self.STRIPE_TEST_WEBHOOK_SECRET
        return self.STRIPE_WEBHOOK_SECRET or self.STRIPE_TEST_WEBHOOK_SECRET


# Create global config instance
config = Config()
