"""Tests for the shared command layer."""

from keyrouter.commands import retry_after_error, route_payload, run_quota, run_quota_set, run_usage
from keyrouter.config import PluginConfig
from keyrouter.retry import RetryErrorClass, RetryStrategy
from keyrouter.state import UsageStatus


class TestRoutePayload:

    def test_records_top_pick(self, scenario_config, manager):
        decision = route_payload("quick cheap summary", PluginConfig(), manager)
        assert decision.top.model_key == "openai/gpt-4o-mini"
        assert [e.status for e in manager.load().usage] == [UsageStatus.ROUTED]

    def test_provider_policy_from_settings(self, scenario_config, manager):
        settings = PluginConfig.model_validate({"providers": {"deny": ["openai"]}})
        decision = route_payload("quick cheap summary", settings, manager)
        assert [c.provider_id for c in decision.top_candidates] == ["anthropic"]

    def test_empty_catalog_records_nothing(self, home, manager):
        decision = route_payload("hello", PluginConfig(), manager)
        assert decision.top is None
        assert manager.load().usage == []


class TestRetryAfterError:

    def test_rate_limit_scenario(self, scenario_config, manager, clock):
        outcome = retry_after_error("HTTP 429 Too Many Requests", PluginConfig(), manager)
        rec = outcome.recommendation
        assert rec.error_class == RetryErrorClass.RATE_LIMITED
        assert rec.should_retry and rec.should_switch_model
        assert outcome.alternate.model_key == "anthropic/claude-3-haiku"

        state = manager.load()
        assert state.usage[-1].status == UsageStatus.FAILED
        assert state.usage[-1].error_class == RetryErrorClass.RATE_LIMITED
        assert manager.cooling_down() == {"openai/gpt-4o-mini"}

    def test_quota_uses_immediate_fallback(self, scenario_config, manager):
        outcome = retry_after_error("insufficient_quota", PluginConfig(), manager)
        assert outcome.recommendation.strategy == RetryStrategy.IMMEDIATE_FALLBACK
        assert outcome.to_dict()["failed"] == "openai/gpt-4o-mini"

    def test_respecting_cooldowns_moves_the_blame(self, scenario_config, manager):
        settings = PluginConfig(respect_cooldowns=True)
        retry_after_error("HTTP 429", settings, manager)
        second = retry_after_error("HTTP 429", settings, manager)
        assert second.decision.top.model_key == "anthropic/claude-3-haiku"
        assert second.alternate is None
        assert manager.cooling_down() == {"openai/gpt-4o-mini", "anthropic/claude-3-haiku"}


class TestQuotaCommands:

    def test_set_and_summarize(self, manager):
        run_quota_set("openai/gpt-4o-mini", "5", None, manager)
        assert "openai/gpt-4o-mini: remaining=5" in run_quota(manager)
        assert "No usage yet" in run_usage(manager)
