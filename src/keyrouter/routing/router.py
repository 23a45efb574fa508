"""Smart model router.

Selects the best candidate model for each request based on:
- Request dimensions (from the inferencer)
- Routing policy (cheap/balanced/reasoning, selected from dimensions)
- Provider allow/prefer/deny policy
- Model capabilities (image input)
- Optionally, models currently cooling down after failures

The router never raises on malformed requests; an empty candidate list is
a normal outcome that callers must check for.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Collection

from keyrouter.normalizer import NormalizedRequest, normalize_request
from keyrouter.routing.catalog import (
    Catalog,
    ModelSpec,
    ProviderPolicy,
    apply_provider_policy,
    flatten_candidates,
    matches_multimodal,
)
from keyrouter.routing.scorer import (
    DimensionInferencer,
    HeuristicInferencer,
    RouteDimensionScores,
    RoutePolicy,
    explain,
    score_candidate,
    select_policy,
)

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 8


@dataclass
class RouteCandidate:
    """A scored (provider, model) pair."""
    provider_id: str
    model_id: str
    score: float
    input_cost: float | None = None
    output_cost: float | None = None
    rationale: str = ""

    @property
    def model_key(self) -> str:
        return f"{self.provider_id}/{self.model_id}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "model_id": self.model_id,
            "score": self.score,
            "input_cost": self.input_cost,
            "output_cost": self.output_cost,
            "rationale": self.rationale,
        }


@dataclass
class RouteDecision:
    """The result of a routing decision."""
    policy: RoutePolicy
    dimensions: RouteDimensionScores
    top_candidates: list[RouteCandidate] = field(default_factory=list)

    @property
    def top(self) -> RouteCandidate | None:
        return self.top_candidates[0] if self.top_candidates else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "policy": self.policy.value,
            "dimensions": self.dimensions.to_dict(),
            "top_candidates": [c.to_dict() for c in self.top_candidates],
        }


def route_request(
    request: NormalizedRequest,
    catalog: Catalog,
    provider_policy: ProviderPolicy | None = None,
    inferencer: DimensionInferencer | None = None,
    exclude: Collection[str] | None = None,
) -> RouteDecision:
    """Rank catalog candidates for a normalized request.

    Args:
        request: The normalized request.
        catalog: Provider id -> provider config.
        provider_policy: Optional allow/prefer/deny lists.
        inferencer: Dimension strategy (default: keyword heuristics).
        exclude: Model keys ("provider/model") to leave out, e.g. those
            cooling down. Nothing is excluded by default.

    Returns:
        RouteDecision with at most MAX_CANDIDATES candidates, best first.
    """
    inferencer = inferencer or HeuristicInferencer()
    dimensions = inferencer.infer(request)
    policy = select_policy(dimensions)
    excluded = set(exclude or ())

    seeds = [
        seed for seed in apply_provider_policy(flatten_candidates(catalog), provider_policy)
        if matches_multimodal(seed, request.has_image)
        and seed.model_key not in excluded
    ]

    candidates = [
        RouteCandidate(
            provider_id=seed.provider_id,
            model_id=seed.model.id,
            score=score_candidate(seed, dimensions, policy, provider_policy),
            input_cost=seed.model.input_cost,
            output_cost=seed.model.output_cost,
            rationale=f"policy={policy.value}, apiKey={'yes' if seed.has_api_key else 'no'}",
        )
        for seed in seeds
    ]
    # sorted() is stable, so ties keep catalog order
    candidates = sorted(candidates, key=lambda c: c.score, reverse=True)[:MAX_CANDIDATES]

    logger.debug(
        f"Routed with {inferencer.name}: {explain(dimensions, policy)}, "
        f"{len(candidates)} candidate(s)")

    return RouteDecision(policy=policy, dimensions=dimensions, top_candidates=candidates)


class KeyRouter:
    """Routes raw request payloads against a fixed catalog.

    Usage:
        router = KeyRouter(catalog, ProviderPolicy(prefer=["openai"]))
        decision = router.route("quick cheap summary")
        # decision.policy = RoutePolicy.CHEAP
        # decision.top.model_key = "openai/gpt-4o-mini"
    """

    def __init__(
        self,
        catalog: Catalog,
        provider_policy: ProviderPolicy | None = None,
        inferencer: DimensionInferencer | None = None,
    ):
        self.catalog = catalog
        self.provider_policy = provider_policy
        self.inferencer = inferencer or HeuristicInferencer()

    def route(
        self,
        payload: Any,
        exclude: Collection[str] | None = None,
    ) -> RouteDecision:
        """Normalize a raw payload and rank candidates for it."""
        return self.route_normalized(normalize_request(payload), exclude=exclude)

    def route_normalized(
        self,
        request: NormalizedRequest,
        exclude: Collection[str] | None = None,
    ) -> RouteDecision:
        return route_request(
            request,
            self.catalog,
            provider_policy=self.provider_policy,
            inferencer=self.inferencer,
            exclude=exclude,
        )


def _fmt_cost(value: float | None) -> str:
    return "?" if value is None else f"{value:g}"


def format_decision(decision: RouteDecision) -> str:
    """Render a decision as a plain-text report."""
    dims = ", ".join(f"{k}={v:.4g}" for k, v in decision.dimensions.to_dict().items())
    lines = [
        "KeyRouter Route Decision",
        f"- Policy: {decision.policy.value}",
        f"- Dimensions: {dims}",
        "- Top candidates:",
    ]

    if not decision.top_candidates:
        lines.append("  - (none)")
    for c in decision.top_candidates:
        lines.append(
            f"  - {c.model_key}: score={c.score:.4f}, "
            f"cost={_fmt_cost(c.input_cost)}/{_fmt_cost(c.output_cost)}, {c.rationale}")

    return "\n".join(lines)


def select_cheapest(models: list[ModelSpec]) -> ModelSpec | None:
    """Lowest input+output cost; unknown costs count as infinite."""
    if not models:
        return None

    def total(m: ModelSpec) -> float:
        input_cost = m.input_cost if m.input_cost is not None else float("inf")
        output_cost = m.output_cost if m.output_cost is not None else float("inf")
        return input_cost + output_cost

    # min() keeps the first of equal totals
    return min(models, key=total)
