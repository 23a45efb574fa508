"""Tests for error classification and retry advice."""

import pytest

from keyrouter.retry import (
    RetryErrorClass,
    RetryStrategy,
    classify_error,
    format_recommendation,
    next_candidate,
    retry_recommendation,
)
from keyrouter.routing import RouteCandidate


class TestClassifyError:

    @pytest.mark.parametrize("message,expected", [
        ("You exceeded your current quota", RetryErrorClass.QUOTA_EXHAUSTED),
        ("insufficient_quota", RetryErrorClass.QUOTA_EXHAUSTED),
        ("Billing hard limit reached", RetryErrorClass.QUOTA_EXHAUSTED),
        ("HTTP 429", RetryErrorClass.RATE_LIMITED),
        ("Rate limit reached for requests", RetryErrorClass.RATE_LIMITED),
        ("Too Many Requests", RetryErrorClass.RATE_LIMITED),
        ("401 Unauthorized", RetryErrorClass.AUTH_INVALID),
        ("Invalid API key provided", RetryErrorClass.AUTH_INVALID),
        ("socket hang up: ECONNRESET", RetryErrorClass.TRANSIENT_NETWORK),
        ("Service temporarily unavailable", RetryErrorClass.TRANSIENT_NETWORK),
        ("502 Bad Gateway", RetryErrorClass.SERVER_ERROR),
        ("Internal error", RetryErrorClass.SERVER_ERROR),
        ("something odd happened", RetryErrorClass.UNKNOWN),
        ("", RetryErrorClass.UNKNOWN),
    ])
    def test_buckets(self, message, expected):
        assert classify_error(message) == expected

    def test_priority_order(self):
        """The earlier bucket wins when several markers match."""
        assert classify_error("429: quota exceeded") == RetryErrorClass.QUOTA_EXHAUSTED
        assert classify_error("401 after 429") == RetryErrorClass.RATE_LIMITED
        assert classify_error("Request timeout after 500ms") == RetryErrorClass.TRANSIENT_NETWORK

    def test_none_is_unknown(self):
        assert classify_error(None) == RetryErrorClass.UNKNOWN


class TestRetryRecommendation:

    def test_quota_during_tooling(self):
        rec = retry_recommendation(RetryErrorClass.QUOTA_EXHAUSTED, attempt=1, has_tooling=True)
        assert rec.should_retry
        assert rec.should_switch_model
        assert rec.strategy == RetryStrategy.IMMEDIATE_FALLBACK

    def test_quota_without_tooling(self):
        rec = retry_recommendation(RetryErrorClass.QUOTA_EXHAUSTED, attempt=3)
        assert not rec.should_retry
        assert rec.should_switch_model
        assert rec.strategy == RetryStrategy.DEFAULT

    def test_auth_never_retries(self):
        rec = retry_recommendation(RetryErrorClass.AUTH_INVALID, attempt=1)
        assert not rec.should_retry
        assert rec.should_switch_model

    def test_transient_keeps_model(self):
        rec = retry_recommendation(RetryErrorClass.TRANSIENT_NETWORK, attempt=1)
        assert rec.should_retry
        assert not rec.should_switch_model

    @pytest.mark.parametrize("error_class", [RetryErrorClass.SERVER_ERROR, RetryErrorClass.UNKNOWN])
    def test_switch_follows_budget(self, error_class):
        first = retry_recommendation(error_class, attempt=1)
        last = retry_recommendation(error_class, attempt=3)
        assert (first.should_retry, first.should_switch_model) == (True, True)
        assert (last.should_retry, last.should_switch_model) == (False, False)

    def test_rate_limit_switches_even_when_exhausted(self):
        rec = retry_recommendation(RetryErrorClass.RATE_LIMITED, attempt=5, max_attempts=2)
        assert not rec.should_retry
        assert rec.should_switch_model

    def test_strategy_only_for_quota(self):
        for error_class in RetryErrorClass:
            rec = retry_recommendation(error_class, attempt=1, has_tooling=True)
            if error_class != RetryErrorClass.QUOTA_EXHAUSTED:
                assert rec.strategy is None
            assert rec.reason

    def test_to_dict(self):
        data = retry_recommendation(RetryErrorClass.RATE_LIMITED, attempt=1).to_dict()
        assert data["error_class"] == "rate_limited"
        assert data["strategy"] is None


class TestFormatting:

    def _candidates(self):
        return [
            RouteCandidate(provider_id="openai", model_id="gpt-4o-mini", score=1.2),
            RouteCandidate(provider_id="anthropic", model_id="claude-3-haiku", score=0.1),
        ]

    def test_next_candidate(self):
        candidates = self._candidates()
        assert next_candidate(candidates, 0).model_key == "anthropic/claude-3-haiku"
        assert next_candidate(candidates, 1) is None
        assert next_candidate([], 0) is None

    def test_report(self):
        rec = retry_recommendation(RetryErrorClass.QUOTA_EXHAUSTED, attempt=1, has_tooling=True)
        text = format_recommendation(rec, self._candidates()[1])
        assert text.splitlines()[0] == "KeyRouter Retry Recommendation"
        assert "- errorClass: quota_exhausted" in text
        assert "- shouldRetry: true" in text
        assert "- strategy: immediate_fallback" in text
        assert "- alternateCandidate: anthropic/claude-3-haiku" in text

    def test_report_without_alternate(self):
        rec = retry_recommendation(RetryErrorClass.AUTH_INVALID, attempt=1)
        text = format_recommendation(rec)
        assert "- shouldRetry: false" in text
        assert "- strategy: default" in text
        assert "- alternateCandidate: (none)" in text
