"""
Pytest configuration and fixtures
"""
import pytest
import os
import sys
from pathlib import Path
from unittest.mock import Mock
from fastapi.testclient import TestClient

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Set test environment variables before importing
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REDIS_URL", None)
os.environ["STRIPE_SECRET_KEY"] = "sk_test_entitlements"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_entitlements"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["QUOTA_FAIL_OPEN"] = "true"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce log noise in tests

# Import after setting env vars
from review_entitlements.db import Base, SessionLocal, engine, get_db  # noqa: E402
from review_entitlements.db.models import Team, TeamSubscription  # noqa: E402
from review_entitlements.app import app  # noqa: E402


@pytest.fixture(autouse=True)
def reset_global_state():
    """Fresh caches, checker registry and metrics for every test"""
    from review_entitlements.services.cache_invalidation import reset_cache_invalidation_service
    from review_entitlements.services.feature_cache import reset_feature_cache
    from review_entitlements.services.feature_checker import reset_global_feature_checker
    from review_entitlements.services.metrics import get_metrics_collector

    def reset():
        reset_global_feature_checker()
        reset_cache_invalidation_service()
        reset_feature_cache()
        get_metrics_collector().reset()

    reset()
    yield
    reset()


@pytest.fixture(scope="function")
def db_session():
    """Database session on a fresh in-memory schema"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create test client sharing the test session"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def team(db_session):
    """Team with a Stripe customer"""
    team = Team(id="team_1", slug="acme", name="Acme Reviews", stripe_customer_id="cus_123")
    db_session.add(team)
    db_session.commit()
    return team


@pytest.fixture
def free_team(db_session):
    """Team that never subscribed"""
    team = Team(id="team_free", slug="free-co", name="Free Co")
    db_session.add(team)
    db_session.commit()
    return team


@pytest.fixture
def add_subscription(db_session):
    """Factory for local subscription rows"""
    def _add(team_id, tier="starter", status="active", subscription_id="sub_123", product_id="prod_123"):
        subscription = TeamSubscription(
            team_id=team_id,
            stripe_subscription_id=subscription_id,
            stripe_customer_id="cus_123",
            stripe_product_id=product_id,
            status=status,
            tier=tier,
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription
    return _add


@pytest.fixture
def mock_checker():
    """FeatureChecker stand-in returning a fixed feature set"""
    from review_entitlements.services.feature_checker import FeatureChecker

    checker = Mock(spec=FeatureChecker)
    checker.instance_id = "mockchk1"
    checker.get_team_features = Mock(return_value=set())
    checker.stripe_service = Mock()
    checker.stripe_service.get_product = Mock(return_value={"metadata": {}})
    checker.get_cache_stats = Mock(return_value={"backend": "memory", "total_entries": 0, "instance_id": "mockchk1"})
    return checker
