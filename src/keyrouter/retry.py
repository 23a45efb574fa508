"""Error classification and retry/fallback advice.

Provider errors arrive as free text (exception messages, HTTP bodies).
They are bucketed into a small taxonomy by substring matching, and each
bucket maps to a fixed recommendation: retry or not, switch model or not.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from keyrouter.routing.router import RouteCandidate


class RetryErrorClass(str, Enum):
    """Error buckets, listed in classification priority order."""
    QUOTA_EXHAUSTED = "quota_exhausted"
    RATE_LIMITED = "rate_limited"
    AUTH_INVALID = "auth_invalid"
    TRANSIENT_NETWORK = "transient_network"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


class RetryStrategy(str, Enum):
    DEFAULT = "default"
    IMMEDIATE_FALLBACK = "immediate_fallback"


# Checked top to bottom; first match wins. A quota message that also
# carries a 429 status is still a quota problem.
ERROR_MARKERS: list[tuple[RetryErrorClass, tuple[str, ...]]] = [
    (RetryErrorClass.QUOTA_EXHAUSTED, ("quota", "insufficient_quota", "billing")),
    (RetryErrorClass.RATE_LIMITED, ("429", "rate limit", "too many requests")),
    (RetryErrorClass.AUTH_INVALID, ("401", "403", "invalid api key", "unauthorized")),
    (RetryErrorClass.TRANSIENT_NETWORK, ("timeout", "econnreset", "network", "temporar")),
    (RetryErrorClass.SERVER_ERROR, ("500", "502", "503", "504", "internal error")),
]

DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class RetryRecommendation:
    """What to do after a failed call."""
    error_class: RetryErrorClass
    should_retry: bool
    should_switch_model: bool
    reason: str
    strategy: RetryStrategy | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_class": self.error_class.value,
            "should_retry": self.should_retry,
            "should_switch_model": self.should_switch_model,
            "strategy": self.strategy.value if self.strategy else None,
            "reason": self.reason,
        }


def classify_error(message: str) -> RetryErrorClass:
    """Bucket a free-text error message."""
    text = (message or "").lower()
    for error_class, markers in ERROR_MARKERS:
        if any(marker in text for marker in markers):
            return error_class
    return RetryErrorClass.UNKNOWN


def retry_recommendation(
    error_class: RetryErrorClass,
    attempt: int,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    has_tooling: bool = False,
) -> RetryRecommendation:
    """Recommend retry/fallback behaviour for a classified error.

    Args:
        error_class: Result of classify_error().
        attempt: Attempts made so far (1-based).
        max_attempts: Attempt budget.
        has_tooling: Whether the failing call was part of a tool workflow.
            Only changes the strategy for quota errors.
    """
    left = attempt < max_attempts

    if error_class == RetryErrorClass.QUOTA_EXHAUSTED:
        return RetryRecommendation(
            error_class=error_class,
            should_retry=left,
            should_switch_model=True,
            strategy=RetryStrategy.IMMEDIATE_FALLBACK if has_tooling else RetryStrategy.DEFAULT,
            reason=(
                "hard quota during tool workflow; fall back quickly to a redundant model"
                if has_tooling
                else "hard quota condition; switch candidate tier or provider"
            ),
        )
    if error_class == RetryErrorClass.RATE_LIMITED:
        return RetryRecommendation(
            error_class=error_class,
            should_retry=left,
            should_switch_model=True,
            reason="rate limit encountered; switch to an adjacent model or provider",
        )
    if error_class == RetryErrorClass.AUTH_INVALID:
        return RetryRecommendation(
            error_class=error_class,
            should_retry=False,
            should_switch_model=True,
            reason="credentials invalid; do not retry the same provider key",
        )
    if error_class == RetryErrorClass.TRANSIENT_NETWORK:
        return RetryRecommendation(
            error_class=error_class,
            should_retry=left,
            should_switch_model=False,
            reason="transient transport issue; retry the same target first",
        )
    if error_class == RetryErrorClass.SERVER_ERROR:
        return RetryRecommendation(
            error_class=error_class,
            should_retry=left,
            should_switch_model=left,
            reason="server instability; retry, then switch on repeated failures",
        )
    return RetryRecommendation(
        error_class=RetryErrorClass.UNKNOWN,
        should_retry=left,
        should_switch_model=left,
        reason="unknown error; bounded retry with fallback",
    )


def next_candidate(
    candidates: list[RouteCandidate],
    current_index: int,
) -> RouteCandidate | None:
    """The candidate ranked just below ``current_index``, if any."""
    nxt = current_index + 1
    if nxt < 0 or nxt >= len(candidates):
        return None
    return candidates[nxt]


def format_recommendation(
    rec: RetryRecommendation,
    alternate: RouteCandidate | None = None,
) -> str:
    """Render a recommendation as a plain-text report."""
    strategy = rec.strategy.value if rec.strategy else RetryStrategy.DEFAULT.value
    lines = [
        "KeyRouter Retry Recommendation",
        f"- errorClass: {rec.error_class.value}",
        f"- shouldRetry: {str(rec.should_retry).lower()}",
        f"- shouldSwitchModel: {str(rec.should_switch_model).lower()}",
        f"- strategy: {strategy}",
        f"- reason: {rec.reason}",
        f"- alternateCandidate: {alternate.model_key if alternate else '(none)'}",
    ]
    return "\n".join(lines)
