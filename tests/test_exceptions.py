"""
Tests for provider error classification.
"""
from unittest.mock import patch

import pytest

from ragchat.core.config import settings
from ragchat.core.exceptions import (
    ForbiddenError,
    LLMConnectionError,
    NotFoundError,
    ProviderAuthError,
    ProviderRateLimitError,
    UnauthorizedError,
    describe_provider_error,
    is_auth_error,
    is_rate_limit_error,
    to_app_exception,
)
from ragchat.services.gemini_client import ProviderHTTPError

QUOTA_BODY = (
    '429 {"error": {"code": 429, "message": "Quota exceeded. Please retry in 32.401829s.", '
    '"status": "RESOURCE_EXHAUSTED"}}'
)


class TestClassification:
    """Tests for is_rate_limit_error and is_auth_error."""

    def test_rate_limit_by_status(self):
        assert is_rate_limit_error(ProviderHTTPError("Too Many Requests", 429))

    def test_rate_limit_by_message(self):
        assert is_rate_limit_error(RuntimeError("RESOURCE_EXHAUSTED: quota"))

    def test_auth_by_status(self):
        assert is_auth_error(ProviderHTTPError("403 forbidden", 403))

    def test_auth_by_message(self):
        assert is_auth_error(RuntimeError("API key not valid. Please pass a valid API key."))

    def test_plain_error(self):
        err = RuntimeError("connection reset")
        assert not is_rate_limit_error(err)
        assert not is_auth_error(err)

    def test_rate_limit_status_wins_over_auth_markers(self):
        err = ProviderHTTPError(QUOTA_BODY, 429)
        assert is_rate_limit_error(err)
        assert not is_auth_error(err)

    def test_auth_status_wins_over_rate_limit_markers(self):
        err = ProviderHTTPError("401 quota project has no valid credentials", 401)
        assert is_auth_error(err)
        assert not is_rate_limit_error(err)

    def test_bad_key_reported_as_400_is_auth(self):
        err = ProviderHTTPError("400 API key not valid. Please pass a valid API key.", 400)
        assert is_auth_error(err)
        assert not is_rate_limit_error(err)

    @pytest.mark.parametrize("exc", [ForbiddenError(), UnauthorizedError(), NotFoundError()])
    def test_app_status_codes_are_not_upstream_statuses(self, exc):
        assert not is_auth_error(exc)
        assert not is_rate_limit_error(exc)


class TestDescribeProviderError:
    """Tests for user-facing error messages."""

    def test_auth_message(self):
        assert "CLOUD_API_KEY" in describe_provider_error(ProviderAuthError())

    def test_rate_limit_without_local(self):
        with patch.object(settings, "USE_LOCAL_LLM", False):
            message = describe_provider_error(ProviderHTTPError("429", 429))
        assert "USE_LOCAL_LLM" in message

    def test_rate_limit_with_local_enabled(self):
        with patch.object(settings, "USE_LOCAL_LLM", True):
            message = describe_provider_error(ProviderHTTPError("429", 429))
        assert "ollama serve" in message

    def test_long_message_is_truncated(self):
        message = describe_provider_error(RuntimeError("x" * 500))
        assert message == "x" * 300 + "..."


class TestToAppException:
    """Tests for mapping provider failures to HTTP errors."""

    def test_maps_rate_limit(self):
        exc = to_app_exception(ProviderHTTPError("429", 429))
        assert isinstance(exc, ProviderRateLimitError)
        assert exc.status_code == 429

    def test_maps_quota_body_with_401_digits_to_rate_limit(self):
        with patch.object(settings, "USE_LOCAL_LLM", False):
            exc = to_app_exception(ProviderHTTPError(QUOTA_BODY, 429))
        assert isinstance(exc, ProviderRateLimitError)
        assert exc.status_code == 429
        assert "CLOUD_API_KEY" not in exc.message

    def test_maps_auth(self):
        assert isinstance(to_app_exception(ProviderAuthError("CLOUD_API_KEY is not set")), ProviderAuthError)

    def test_maps_other_errors(self):
        exc = to_app_exception(RuntimeError("boom"))
        assert isinstance(exc, LLMConnectionError)
        assert exc.message == "boom"

    def test_keeps_application_errors(self):
        original = NotFoundError("Session not found.")
        assert to_app_exception(original) is original
