"""
Tests for FeatureChecker entitlement resolution
"""
import threading
import time
import pytest
from unittest.mock import Mock

from review_entitlements.services.feature_cache import FeatureCache


@pytest.fixture
def mock_stripe_service():
    service = Mock()
    service.get_current_subscription = Mock(return_value={"id": "sub_123", "status": "active"})
    service.get_product_id = Mock(return_value="prod_pro")
    return service


@pytest.fixture
def mock_product_service(mock_stripe_service):
    service = Mock()
    service.stripe_service = mock_stripe_service
    service.get_product_features = Mock(return_value={"google.reviews", "facebook.reviews"})
    return service


def _session_factory(customer_id="cus_123"):
    """Session stand-in whose Team lookup returns a team with the given customer"""
    team = Mock(stripe_customer_id=customer_id) if customer_id is not None else None
    session = Mock()
    session.query.return_value.filter.return_value.first.return_value = team
    return Mock(return_value=session)


@pytest.fixture
def checker(mock_product_service, mock_stripe_service):
    from review_entitlements.services.feature_checker import FeatureChecker

    return FeatureChecker(
        mock_product_service,
        stripe_service=mock_stripe_service,
        cache=FeatureCache(default_ttl=300),
        session_factory=_session_factory(),
    )


class TestGetTeamFeatures:
    """Test team feature resolution"""

    def test_resolves_from_stripe(self, checker, mock_stripe_service, mock_product_service):
        features = checker.get_team_features("team_1")

        assert features == {"google.reviews", "facebook.reviews"}
        mock_stripe_service.get_current_subscription.assert_called_once_with("cus_123")
        mock_product_service.get_product_features.assert_called_once_with("prod_pro")

    def test_second_call_served_from_cache(self, checker, mock_product_service):
        from review_entitlements.services.metrics import get_metrics_collector, FEATURE_CACHE_HITS, FEATURE_CACHE_MISSES

        checker.get_team_features("team_1")
        checker.get_team_features("team_1")

        assert mock_product_service.get_product_features.call_count == 1
        collector = get_metrics_collector()
        assert collector.get_counter(FEATURE_CACHE_MISSES) == 1.0
        assert collector.get_counter(FEATURE_CACHE_HITS) == 1.0

    def test_no_subscription_cached_as_empty(self, checker, mock_stripe_service, mock_product_service):
        mock_stripe_service.get_current_subscription.return_value = None

        assert checker.get_team_features("team_1") == set()
        assert checker.cache.get("team_1") == set()
        mock_product_service.get_product_features.assert_not_called()

    def test_subscription_without_product(self, checker, mock_stripe_service):
        mock_stripe_service.get_product_id.return_value = None

        assert checker.get_team_features("team_1") == set()

    def test_team_without_customer_not_cached(self, mock_product_service, mock_stripe_service):
        from review_entitlements.services.feature_checker import FeatureChecker

        checker = FeatureChecker(
            mock_product_service,
            stripe_service=mock_stripe_service,
            cache=FeatureCache(),
            session_factory=_session_factory(customer_id=None),
        )

        assert checker.get_team_features("team_unknown") == set()
        assert checker.cache.get("team_unknown") is None
        mock_stripe_service.get_current_subscription.assert_not_called()

    def test_stripe_failure_fails_closed_and_is_not_cached(self, checker, mock_stripe_service):
        from review_entitlements.services.metrics import get_metrics_collector, FEATURE_RESOLUTION_ERRORS

        mock_stripe_service.get_current_subscription.side_effect = Exception("Stripe unavailable")

        assert checker.get_team_features("team_1") == set()
        assert checker.cache.get("team_1") is None
        assert get_metrics_collector().get_counter(FEATURE_RESOLUTION_ERRORS) == 1.0

        # Recovers once Stripe is back
        mock_stripe_service.get_current_subscription.side_effect = None
        assert checker.get_team_features("team_1") == {"google.reviews", "facebook.reviews"}

    def test_session_closed_after_lookup(self, checker):
        checker.get_team_features("team_1")

        session = checker._session_factory.return_value
        session.close.assert_called_once()

    def test_invalidation_during_lookup_not_cached(self, checker, mock_product_service):
        def invalidate_mid_flight(product_id):
            checker.clear_team_cache("team_1")
            return {"google.reviews"}

        mock_product_service.get_product_features.side_effect = invalidate_mid_flight

        assert checker.get_team_features("team_1") == {"google.reviews"}
        assert checker.cache.get("team_1") is None

    def test_concurrent_misses_resolve_once(self, checker, mock_product_service):
        def slow_features(product_id):
            time.sleep(0.05)
            return {"google.reviews"}

        mock_product_service.get_product_features.side_effect = slow_features
        results = []

        threads = [
            threading.Thread(target=lambda: results.append(checker.get_team_features("team_1")))
            for _ in range(5)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == [{"google.reviews"}] * 5
        assert mock_product_service.get_product_features.call_count == 1

    def test_team_lock_released_after_resolution(self, checker, mock_product_service):
        held = []

        def features_while_locked(product_id):
            held.append(set(checker._team_locks))
            return {"google.reviews"}

        mock_product_service.get_product_features.side_effect = features_while_locked

        checker.get_team_features("team_1")
        checker.get_team_features("team_2")

        assert held == [{"team_1"}, {"team_2"}]
        assert checker._team_locks == {}

    def test_team_lock_released_after_failure(self, checker, mock_stripe_service):
        mock_stripe_service.get_current_subscription.side_effect = Exception("Stripe down")

        assert checker.get_team_features("team_1") == set()
        assert checker._team_locks == {}


class TestFeatureChecks:
    """Test feature check helpers"""

    def test_check_features(self, checker):
        result = checker.check_features("team_1", ["google.reviews", "api.access"])

        assert result == {"google.reviews": True, "api.access": False}

    def test_has_feature(self, checker):
        assert checker.has_feature("team_1", "facebook.reviews") is True
        assert checker.has_feature("team_1", "booking.reviews") is False

    def test_check_feature_for_product(self, checker):
        result = checker.check_feature("prod_pro", "google.reviews")

        assert result.has_access is True
        assert result.reason is None

    def test_check_feature_not_in_plan(self, checker):
        from review_entitlements.services.feature_checker import REASON_NOT_IN_PLAN

        result = checker.check_feature("prod_pro", "api.access")

        assert result.has_access is False
        assert result.reason == REASON_NOT_IN_PLAN

    def test_check_feature_error(self, checker, mock_product_service):
        from review_entitlements.services.feature_checker import REASON_CHECK_ERROR

        mock_product_service.get_product_features.side_effect = Exception("boom")

        result = checker.check_feature("prod_pro", "google.reviews")

        assert result.has_access is False
        assert result.reason == REASON_CHECK_ERROR


class TestCacheManagement:
    """Test cache clearing and stats"""

    def test_clear_team_cache(self, checker, mock_product_service):
        checker.get_team_features("team_1")
        checker.clear_team_cache("team_1")
        checker.get_team_features("team_1")

        assert mock_product_service.get_product_features.call_count == 2

    def test_clear_all_cache(self, checker):
        checker.get_team_features("team_1")
        checker.get_team_features("team_2")

        checker.clear_all_cache()

        assert checker.cache.get("team_1") is None
        assert checker.cache.get("team_2") is None

    def test_cache_stats(self, checker):
        checker.get_team_features("team_1")

        stats = checker.get_cache_stats()

        assert stats["total_entries"] == 1
        assert stats["instance_id"] == checker.instance_id


class TestGlobalFeatureChecker:
    """Test global checker lifecycle"""

    def test_global_checker_registered_for_invalidation(self):
        from review_entitlements.services.feature_checker import get_global_feature_checker
        from review_entitlements.services.cache_invalidation import get_cache_invalidation_service

        checker = get_global_feature_checker()

        assert checker is get_global_feature_checker()
        assert get_cache_invalidation_service().get_invalidation_stats()["registered_checkers"] == 1

    def test_set_global_checker_replaces_registration(self, mock_checker):
        from review_entitlements.services.feature_checker import (
            get_global_feature_checker,
            set_global_feature_checker,
        )
        from review_entitlements.services.cache_invalidation import get_cache_invalidation_service

        get_global_feature_checker()
        set_global_feature_checker(mock_checker)

        assert get_global_feature_checker() is mock_checker
        stats = get_cache_invalidation_service().get_invalidation_stats()
        assert stats["registered_checkers"] == 1
        assert stats["caches"][0]["instance_id"] == "mockchk1"
