"""Request scoring for smart routing.

Analyzes a normalized request across a fixed set of dimensions, picks a
routing policy from them, and scores each candidate model under that
policy. This is all done locally with keyword heuristics - no LLM calls
are needed for routing decisions.

Dimensions:
1. complexity - prompt length in words
2. reasoning - proof/analysis markers
3. coding - code and API markers
4. multimodal - image input present
5. tooling - tool calls or results present
6. context_pressure - prompt length against a larger window
7. latency_sensitivity - "quick", "brief", ...
8. cost_sensitivity - "cheap", "budget", ...

Keyword matches are plain case-insensitive substrings, so "reasonable"
counts as a reasoning marker. That approximation is accepted.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from keyrouter.normalizer import NormalizedRequest
from keyrouter.routing.catalog import CandidateSeed, ProviderPolicy


class RoutePolicy(str, Enum):
    """Scoring strategies. One is selected per request."""
    CHEAP = "cheap"
    BALANCED = "balanced"
    REASONING = "reasoning"


@dataclass(frozen=True)
class RouteDimensionScores:
    """Signal vector derived from a request.

    Every field lies in [0, 1]. ``multimodal`` and ``tooling`` only take
    the discrete levels 0, 0.2, 0.9 and 1.
    """
    complexity: float
    reasoning: float
    coding: float
    multimodal: float
    tooling: float
    context_pressure: float
    latency_sensitivity: float
    cost_sensitivity: float

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


class DimensionInferencer(ABC):
    """Strategy that turns a request into a dimension vector.

    The router only depends on this interface, so a model-based or
    statistical classifier can replace the keyword heuristics.
    """

    @abstractmethod
    def infer(self, request: NormalizedRequest) -> RouteDimensionScores:
        ...

    @property
    def name(self) -> str:
        return self.__class__.__name__


class HeuristicInferencer(DimensionInferencer):
    """Keyword and length heuristics over the request's plain text."""

    REASONING_HINTS = ("why", "prove", "reason", "analyze", "tradeoff", "formal")
    CODING_HINTS = ("code", "refactor", "debug", "typescript", "python", "api", "plugin")
    LATENCY_HINTS = ("quick", "fast", "brief", "short")
    COST_HINTS = ("cheap", "low cost", "budget", "save", "free")

    # Word counts at which complexity / context pressure saturate
    COMPLEXITY_WORDS = 240
    CONTEXT_WORDS = 1000

    def infer(self, request: NormalizedRequest) -> RouteDimensionScores:
        text = request.plain_text.lower()
        tokens = len(text.split())

        def has_any(hints: tuple[str, ...]) -> bool:
            return any(hint in text for hint in hints)

        complexity = clamp01(tokens / self.COMPLEXITY_WORDS)

        return RouteDimensionScores(
            complexity=complexity,
            reasoning=0.85 if has_any(self.REASONING_HINTS) else clamp01(complexity * 0.6),
            coding=0.9 if has_any(self.CODING_HINTS) else clamp01(complexity * 0.4),
            multimodal=1.0 if request.has_image else 0.0,
            tooling=0.9 if request.has_tool_call or request.has_tool_result else 0.2,
            context_pressure=clamp01(tokens / self.CONTEXT_WORDS),
            latency_sensitivity=0.85 if has_any(self.LATENCY_HINTS) else 0.35,
            cost_sensitivity=0.9 if has_any(self.COST_HINTS) else 0.4,
        )


_default_inferencer = HeuristicInferencer()


def infer_dimensions(request: NormalizedRequest) -> RouteDimensionScores:
    """Score a request with the default heuristic inferencer."""
    return _default_inferencer.infer(request)


def select_policy(dims: RouteDimensionScores) -> RoutePolicy:
    """Pick a routing policy. Rules are checked in order; first match wins."""
    if dims.reasoning > 0.72 or dims.complexity > 0.82:
        return RoutePolicy.REASONING
    if dims.cost_sensitivity > 0.75 and dims.latency_sensitivity > 0.6:
        return RoutePolicy.CHEAP
    return RoutePolicy.BALANCED


# Stand-in price for a missing input or output cost figure, so uncosted
# models rank last on cost without being filtered out.
MISSING_COST_PENALTY = 999.0


def _total_cost(seed: CandidateSeed) -> float:
    input_cost = seed.model.input_cost
    output_cost = seed.model.output_cost
    return (
        (input_cost if input_cost is not None else MISSING_COST_PENALTY)
        + (output_cost if output_cost is not None else MISSING_COST_PENALTY)
    )


def _contains_any(model_id: str, needles: tuple[str, ...]) -> bool:
    return any(needle in model_id for needle in needles)


def score_candidate(
    seed: CandidateSeed,
    dims: RouteDimensionScores,
    policy: RoutePolicy,
    provider_policy: ProviderPolicy | None = None,
) -> float:
    """Score one candidate under a policy. Higher is better.

    Realistic inputs land roughly in [0, 2]; the value is only meaningful
    relative to other candidates scored for the same request.
    """
    model_id = seed.model_key.lower()
    cost = _total_cost(seed)
    score = 0.0

    if policy == RoutePolicy.CHEAP:
        score += 1 / (1 + cost)
        score += dims.latency_sensitivity * (
            0.5 if _contains_any(model_id, ("flash", "mini")) else 0.1)
    elif policy == RoutePolicy.REASONING:
        score += dims.reasoning * (
            1.2 if _contains_any(model_id, ("reason", "o3", "thinking")) else 0.2)
        score += dims.coding * (
            0.8 if _contains_any(model_id, ("code", "codex")) else 0.1)
    else:
        score += dims.complexity * 0.4
        score += dims.reasoning * (
            0.6 if _contains_any(model_id, ("pro", "sonnet")) else 0.2)
        score += 1 / (1 + cost * 0.6)

    if _contains_any(model_id, ("gemini-3-flash", "gpt-4o-mini")):
        score += dims.latency_sensitivity * 0.2

    if seed.has_api_key:
        score += 0.05

    if provider_policy is not None and seed.provider_id in provider_policy.prefer_set:
        score += 0.15

    return score


def explain(dims: RouteDimensionScores, policy: RoutePolicy) -> dict[str, Any]:
    """Top contributing dimensions, for logs and reports."""
    top = sorted(dims.to_dict().items(), key=lambda x: x[1], reverse=True)[:3]
    return {"policy": policy.value, "factors": {k: round(v, 2) for k, v in top if v > 0}}
