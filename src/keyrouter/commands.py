"""Command implementations shared by the CLI and the web API.

Each command loads what it needs (host catalog, plugin settings, state),
runs the core, records usage where the command implies it, and returns
structured results. Rendering is left to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Any

from keyrouter.config import (
    PluginConfig,
    format_snapshot,
    ingest_snapshot,
    load_host_catalog,
    load_host_config,
    load_plugin_config,
)
from keyrouter.normalizer import normalize_request, parse_command_input
from keyrouter.retry import (
    RetryRecommendation,
    classify_error,
    format_recommendation,
    next_candidate,
    retry_recommendation,
)
from keyrouter.routing.router import RouteCandidate, RouteDecision, format_decision, route_request
from keyrouter.state import (
    KeyRouterState,
    UsageStateManager,
    UsageStatus,
    get_state_manager,
    parse_quota_args,
    summarize_quota,
    summarize_usage,
)

logger = logging.getLogger(__name__)

# Payload routed when looking for an alternate after a failure
FALLBACK_PROBE = [{"role": "user", "content": "fallback probe"}]


def run_audit() -> str:
    """Report the providers and auth profiles the host exposes."""
    return format_snapshot(ingest_snapshot(load_host_config()))


def _excluded(settings: PluginConfig, manager: UsageStateManager) -> set[str] | None:
    return manager.cooling_down() if settings.respect_cooldowns else None


def route_payload(
    payload: Any,
    settings: PluginConfig | None = None,
    manager: UsageStateManager | None = None,
) -> RouteDecision:
    """Route a payload against the host catalog and record the top pick."""
    settings = settings or load_plugin_config()
    manager = manager or get_state_manager()

    decision = route_request(
        normalize_request(payload),
        load_host_catalog(),
        provider_policy=settings.providers,
        exclude=_excluded(settings, manager),
    )
    top = decision.top
    if top is not None:
        manager.record_usage(top.provider_id, top.model_id, UsageStatus.ROUTED)
    return decision


def run_route(
    raw: str,
    settings: PluginConfig | None = None,
    manager: UsageStateManager | None = None,
) -> str:
    """Route command-line text (a prompt or JSON envelope) and format it."""
    return format_decision(route_payload(parse_command_input(raw), settings, manager))


@dataclass
class RetryOutcome:
    recommendation: RetryRecommendation
    decision: RouteDecision
    alternate: RouteCandidate | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "recommendation": self.recommendation.to_dict(),
            "failed": self.decision.top.model_key if self.decision.top else None,
            "alternate": self.alternate.model_key if self.alternate else None,
        }


def retry_after_error(
    error_text: str,
    settings: PluginConfig | None = None,
    manager: UsageStateManager | None = None,
) -> RetryOutcome:
    """Classify an error against the current top pick and suggest a fallback.

    The failure is attributed to whatever a fresh probe route ranks first:
    that model gets a cooldown and a ``failed`` usage event, and the
    second-ranked candidate is offered as the alternate.
    """
    settings = settings or load_plugin_config()
    manager = manager or get_state_manager()

    error_class = classify_error(error_text)
    # Commands run inside tool workflows, so quota errors fall back immediately
    recommendation = retry_recommendation(error_class, attempt=1, has_tooling=True)

    decision = route_request(
        normalize_request(FALLBACK_PROBE),
        load_host_catalog(),
        provider_policy=settings.providers,
        exclude=_excluded(settings, manager),
    )
    alternate = next_candidate(decision.top_candidates, 0)

    top = decision.top
    if top is not None:
        manager.mark_failure_with_error(top.model_key, error_class)
        manager.record_usage(
            top.provider_id, top.model_id, UsageStatus.FAILED, error_class=error_class)
        logger.info(f"Recorded {error_class.value} failure for {top.model_key}")

    return RetryOutcome(recommendation=recommendation, decision=decision, alternate=alternate)


def run_retry(
    error_text: str,
    settings: PluginConfig | None = None,
    manager: UsageStateManager | None = None,
) -> str:
    outcome = retry_after_error(error_text, settings, manager)
    return format_recommendation(outcome.recommendation, outcome.alternate)


def run_usage(manager: UsageStateManager | None = None) -> str:
    return summarize_usage((manager or get_state_manager()).load())


def run_quota(manager: UsageStateManager | None = None) -> str:
    return summarize_quota((manager or get_state_manager()).load())


def run_quota_set(
    model_key: str,
    remaining: Any,
    reset_at: str | None = None,
    manager: UsageStateManager | None = None,
) -> KeyRouterState:
    """Validate and store a quota entry.

    Raises:
        QuotaValidationError: on a bad key, count or reset time.
    """
    key, entry = parse_quota_args(model_key, remaining, reset_at)
    return (manager or get_state_manager()).set_quota(key, entry)
