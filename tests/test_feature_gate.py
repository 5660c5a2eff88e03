"""
Tests for feature gate decorators
"""
import asyncio
import pytest
from unittest.mock import Mock, patch
from fastapi import HTTPException


@pytest.fixture
def mock_access():
    access = Mock()
    access.missing_features = Mock(return_value=[])
    return access


@pytest.fixture
def patched_access(mock_access):
    with patch(
        "review_entitlements.middleware.feature_gate.FeatureAccessService",
        return_value=mock_access,
    ) as access_cls:
        yield access_cls


class TestRequireFeatures:
    """Test require_features"""

    def test_allows_when_nothing_missing(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_features

        @require_features("google.analytics", "analytics.advanced")
        async def handler(team_id: str, db=None):
            return {"ok": True}

        db = Mock()
        result = asyncio.run(handler(team_id="team_1", db=db))

        assert result == {"ok": True}
        patched_access.assert_called_once_with(db)
        mock_access.missing_features.assert_called_once_with("team_1", ["google.analytics", "analytics.advanced"])

    def test_sync_handler(self, patched_access):
        from review_entitlements.middleware.feature_gate import require_features

        @require_features("google.reviews")
        def handler(team_id: str, db=None):
            return "sync"

        assert asyncio.run(handler(team_id="team_1", db=Mock())) == "sync"

    def test_denied(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_features

        mock_access.missing_features.return_value = ["analytics.advanced"]
        handler_called = Mock()

        @require_features("google.analytics", "analytics.advanced")
        async def handler(team_id: str, db=None):
            handler_called()

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(handler(team_id="team_1", db=Mock()))

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == {
            "error": "Feature not available",
            "code": "FEATURE_NOT_AVAILABLE",
            "missingFeatures": ["analytics.advanced"],
            "upgradeRequired": True,
        }
        handler_called.assert_not_called()

    def test_require_any(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_features

        mock_access.missing_features.return_value = ["facebook.reviews"]

        @require_features("google.reviews", "facebook.reviews", require_all=False)
        async def handler(team_id: str, db=None):
            return "ok"

        assert asyncio.run(handler(team_id="team_1", db=Mock())) == "ok"

    def test_require_any_all_missing(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_features

        mock_access.missing_features.return_value = ["google.reviews", "facebook.reviews"]

        @require_features("google.reviews", "facebook.reviews", require_all=False)
        async def handler(team_id: str, db=None):
            return "ok"

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(handler(team_id="team_1", db=Mock()))

        assert exc_info.value.status_code == 403

    def test_missing_team(self, patched_access):
        from review_entitlements.middleware.feature_gate import require_features

        @require_features("google.reviews")
        async def handler(db=None):
            return "ok"

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(handler(db=Mock()))

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["code"] == "MISSING_TEAM_ID"

    def test_team_from_header(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_features

        @require_features("google.reviews")
        async def handler(request=None, db=None):
            return "ok"

        request = Mock()
        request.headers = {"x-team-id": "team_hdr"}

        assert asyncio.run(handler(request=request, db=Mock())) == "ok"
        mock_access.missing_features.assert_called_once_with("team_hdr", ["google.reviews"])

    def test_check_error(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_features

        mock_access.missing_features.side_effect = Exception("db down")

        @require_features("google.reviews")
        async def handler(team_id: str, db=None):
            return "ok"

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(handler(team_id="team_1", db=Mock()))

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail["code"] == "FEATURE_CHECK_ERROR"

    def test_own_session_without_db(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_features

        session = Mock()

        @require_features("google.reviews")
        async def handler(team_id: str):
            return "ok"

        with patch("review_entitlements.db.engine.SessionLocal", return_value=session):
            assert asyncio.run(handler(team_id="team_1")) == "ok"

        patched_access.assert_called_once_with(session)
        session.close.assert_called_once()


class TestPlatformAndShortcuts:
    """Test require_platform, require_multi_location and require_api_access"""

    def test_fixed_platform(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_platform

        @require_platform("tripadvisor")
        async def handler(team_id: str, db=None):
            return "ok"

        asyncio.run(handler(team_id="team_1", db=Mock()))

        mock_access.missing_features.assert_called_once_with("team_1", ["tripadvisor.reviews"])

    def test_unknown_fixed_platform_rejected_at_decoration(self):
        from review_entitlements.middleware.feature_gate import require_platform

        with pytest.raises(ValueError):
            require_platform("myspace")

    def test_platform_from_argument(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_platform

        @require_platform()
        async def handler(team_id: str, platform: str, db=None):
            return platform

        assert asyncio.run(handler(team_id="team_1", platform="booking.com", db=Mock())) == "booking.com"
        mock_access.missing_features.assert_called_once_with("team_1", ["booking.reviews"])

    def test_unknown_platform_argument(self, patched_access):
        from review_entitlements.middleware.feature_gate import require_platform

        @require_platform()
        async def handler(team_id: str, platform: str, db=None):
            return platform

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(handler(team_id="team_1", platform="myspace", db=Mock()))

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["code"] == "INVALID_PLATFORM"

    def test_require_multi_location(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_multi_location

        @require_multi_location()
        async def handler(team_id: str, db=None):
            return "ok"

        asyncio.run(handler(team_id="team_1", db=Mock()))

        mock_access.missing_features.assert_called_once_with("team_1", ["locations.multiple"])

    def test_require_api_access(self, patched_access, mock_access):
        from review_entitlements.middleware.feature_gate import require_api_access

        mock_access.missing_features.return_value = ["api.access"]

        @require_api_access()
        async def handler(team_id: str, db=None):
            return "ok"

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(handler(team_id="team_1", db=Mock()))

        assert exc_info.value.detail["missingFeatures"] == ["api.access"]
