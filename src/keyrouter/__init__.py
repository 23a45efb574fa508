"""KeyRouter - BYOK model routing for OpenClaw-style hosts.

Modules:
    - normalizer: Canonical request representation from loose payloads
    - routing: Dimension scoring, policy selection, candidate ranking
    - retry: Error classification and retry/fallback advice
    - state: Usage log and quota/cooldown store
    - config: Host catalog and KeyRouter settings
    - hooks: Host lifecycle hook handlers (auto-route, hard-apply)
    - cli / web: Command-line and HTTP surfaces
"""

__version__ = "0.1.0"

from keyrouter.normalizer import NormalizedRequest, normalize_request
from keyrouter.retry import RetryErrorClass, RetryRecommendation, classify_error, retry_recommendation
from keyrouter.routing import (
    KeyRouter,
    ProviderPolicy,
    RouteDecision,
    RoutePolicy,
    format_decision,
    route_request,
)
from keyrouter.state import UsageStateManager, get_state_manager

__all__ = [
    "__version__",
    "NormalizedRequest",
    "normalize_request",
    "RetryErrorClass",
    "RetryRecommendation",
    "classify_error",
    "retry_recommendation",
    "KeyRouter",
    "ProviderPolicy",
    "RouteDecision",
    "RoutePolicy",
    "format_decision",
    "route_request",
    "UsageStateManager",
    "get_state_manager",
]
