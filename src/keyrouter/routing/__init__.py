"""Smart LLM routing engine.

- Multi-dimension request analysis (complexity, coding, reasoning, etc.)
- Policy selection (cheap / balanced / reasoning)
- Provider allow/prefer/deny policy over a BYOK catalog
- 100% local routing (no external API calls for routing decisions)
"""

from keyrouter.routing.catalog import (
    Catalog,
    CandidateSeed,
    ModelSpec,
    ProviderConfig,
    ProviderPolicy,
    load_catalog,
)
from keyrouter.routing.router import (
    KeyRouter,
    RouteCandidate,
    RouteDecision,
    format_decision,
    route_request,
    select_cheapest,
)
from keyrouter.routing.scorer import (
    DimensionInferencer,
    HeuristicInferencer,
    RouteDimensionScores,
    RoutePolicy,
    infer_dimensions,
    score_candidate,
    select_policy,
)

__all__ = [
    "Catalog",
    "CandidateSeed",
    "ModelSpec",
    "ProviderConfig",
    "ProviderPolicy",
    "load_catalog",
    "KeyRouter",
    "RouteCandidate",
    "RouteDecision",
    "format_decision",
    "route_request",
    "select_cheapest",
    "DimensionInferencer",
    "HeuristicInferencer",
    "RouteDimensionScores",
    "RoutePolicy",
    "infer_dimensions",
    "score_candidate",
    "select_policy",
]
