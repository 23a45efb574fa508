"""Tests for dimension inference, policy selection, scoring and ranking."""

import pytest

from keyrouter.normalizer import normalize_request
from keyrouter.routing import (
    CandidateSeed,
    DimensionInferencer,
    HeuristicInferencer,
    KeyRouter,
    ModelSpec,
    ProviderPolicy,
    RouteDimensionScores,
    RoutePolicy,
    format_decision,
    infer_dimensions,
    load_catalog,
    route_request,
    score_candidate,
    select_cheapest,
    select_policy,
)
from keyrouter.routing.catalog import apply_provider_policy, flatten_candidates


def dims(**overrides) -> RouteDimensionScores:
    base = dict(
        complexity=0.0, reasoning=0.0, coding=0.0, multimodal=0.0, tooling=0.2,
        context_pressure=0.0, latency_sensitivity=0.35, cost_sensitivity=0.4,
    )
    base.update(overrides)
    return RouteDimensionScores(**base)


# ═══════════════════════════════════════════════════════════════
# 1. DIMENSIONS & POLICY
# ═══════════════════════════════════════════════════════════════

class TestInferDimensions:

    def test_reasoning_prompt(self):
        d = infer_dimensions(normalize_request("why does this algorithm work, prove correctness"))
        assert d.reasoning == 0.85
        assert select_policy(d) == RoutePolicy.REASONING

    def test_cheap_prompt(self):
        d = infer_dimensions(normalize_request("quick cheap summary"))
        assert d.latency_sensitivity == 0.85
        assert d.cost_sensitivity == 0.9
        assert d.complexity == pytest.approx(3 / 240)
        assert select_policy(d) == RoutePolicy.CHEAP

    def test_coding_keywords(self):
        d = infer_dimensions(normalize_request("Refactor the Python plugin"))
        assert d.coding == 0.9

    def test_defaults_without_keywords(self):
        d = infer_dimensions(normalize_request("hello there"))
        assert d.reasoning == pytest.approx(d.complexity * 0.6)
        assert d.coding == pytest.approx(d.complexity * 0.4)
        assert d.tooling == 0.2
        assert d.multimodal == 0.0
        assert d.latency_sensitivity == 0.35
        assert d.cost_sensitivity == 0.4

    def test_long_prompt_saturates(self):
        d = infer_dimensions(normalize_request("word " * 2000))
        assert d.complexity == 1.0
        assert d.context_pressure == 1.0
        assert select_policy(d) == RoutePolicy.REASONING

    def test_image_and_tools(self):
        req = normalize_request([
            {"role": "user", "content": [{"type": "image", "url": "u"}]},
            {"role": "tool", "content": "done"},
        ])
        d = infer_dimensions(req)
        assert d.multimodal == 1.0
        assert d.tooling == 0.9

    @pytest.mark.parametrize("payload", [
        "", "x", "why " * 500, {"role": "tool"}, [{"type": "image"}], 12,
    ])
    def test_bounds(self, payload):
        d = infer_dimensions(normalize_request(payload))
        for name in ("complexity", "reasoning", "coding", "context_pressure",
                     "latency_sensitivity", "cost_sensitivity"):
            assert 0.0 <= getattr(d, name) <= 1.0
        assert d.multimodal in (0.0, 1.0)
        assert d.tooling in (0.2, 0.9)


class TestSelectPolicy:

    def test_first_match_wins(self):
        """Reasoning beats cheap even when cost signals are high."""
        d = dims(reasoning=0.85, cost_sensitivity=0.9, latency_sensitivity=0.85)
        assert select_policy(d) == RoutePolicy.REASONING

    def test_complexity_triggers_reasoning(self):
        assert select_policy(dims(complexity=0.83)) == RoutePolicy.REASONING

    def test_cheap_needs_both_signals(self):
        assert select_policy(dims(cost_sensitivity=0.9)) == RoutePolicy.BALANCED
        assert select_policy(dims(cost_sensitivity=0.9, latency_sensitivity=0.85)) == RoutePolicy.CHEAP

    def test_thresholds_are_strict(self):
        assert select_policy(dims(reasoning=0.72, complexity=0.82)) == RoutePolicy.BALANCED

    def test_pure(self):
        d = dims(reasoning=0.5, cost_sensitivity=0.8, latency_sensitivity=0.7)
        assert select_policy(d) == select_policy(dims(**d.to_dict()))


# ═══════════════════════════════════════════════════════════════
# 2. SCORING
# ═══════════════════════════════════════════════════════════════

def seed(provider: str, model_id: str, cost=None, has_key=False, inputs=None) -> CandidateSeed:
    spec = {"id": model_id}
    if cost is not None:
        spec["cost"] = {"input": cost[0], "output": cost[1]}
    if inputs is not None:
        spec["input"] = inputs
    return CandidateSeed(provider_id=provider, model=ModelSpec.model_validate(spec), has_api_key=has_key)


class TestScoreCandidate:

    def test_cheap_policy(self):
        d = dims(latency_sensitivity=0.85, cost_sensitivity=0.9)
        score = score_candidate(seed("openai", "gpt-4o-mini", (0.15, 0.6)), d, RoutePolicy.CHEAP)
        expected = 1 / 1.75 + 0.85 * 0.5 + 0.85 * 0.2
        assert score == pytest.approx(expected)

    def test_missing_cost_penalty(self):
        d = dims(latency_sensitivity=0.85)
        score = score_candidate(seed("anthropic", "claude-3-haiku"), d, RoutePolicy.CHEAP)
        assert score == pytest.approx(1 / 1999 + 0.85 * 0.1)

    def test_reasoning_policy(self):
        d = dims(reasoning=0.85, coding=0.9)
        reasoner = score_candidate(seed("openai", "o3"), d, RoutePolicy.REASONING)
        coder = score_candidate(seed("openai", "gpt-5-codex"), d, RoutePolicy.REASONING)
        assert reasoner == pytest.approx(0.85 * 1.2 + 0.9 * 0.1)
        assert coder == pytest.approx(0.85 * 0.2 + 0.9 * 0.8)

    def test_balanced_policy(self):
        d = dims(complexity=0.5, reasoning=0.3)
        score = score_candidate(seed("google", "gemini-pro", (1.0, 2.0)), d, RoutePolicy.BALANCED)
        assert score == pytest.approx(0.5 * 0.4 + 0.3 * 0.6 + 1 / (1 + 3.0 * 0.6))

    def test_provider_id_is_part_of_match(self):
        """Keyword checks run against "provider/model", lower-cased."""
        d = dims(reasoning=0.85)
        s = score_candidate(seed("Reasoner-Labs", "m1"), d, RoutePolicy.REASONING)
        assert s == pytest.approx(0.85 * 1.2)

    def test_key_and_prefer_bonuses(self):
        d = dims()
        base = score_candidate(seed("p", "m", (1, 1)), d, RoutePolicy.BALANCED)
        keyed = score_candidate(seed("p", "m", (1, 1), has_key=True), d, RoutePolicy.BALANCED)
        preferred = score_candidate(
            seed("p", "m", (1, 1)), d, RoutePolicy.BALANCED, ProviderPolicy(prefer=[" p "]))
        assert keyed - base == pytest.approx(0.05)
        assert preferred - base == pytest.approx(0.15)


# ═══════════════════════════════════════════════════════════════
# 3. CATALOG & ROUTER
# ═══════════════════════════════════════════════════════════════

class TestCatalog:

    def test_load_skips_bad_models(self):
        catalog = load_catalog({
            "openai": {"apiKey": "k", "models": [{"id": "a"}, {"name": "no id"}, "junk"]},
            "broken": "not a mapping",
        })
        assert list(catalog) == ["openai"]
        assert [m.id for m in catalog["openai"].models] == ["a"]
        assert catalog["openai"].has_api_key

    def test_malformed_fields_degrade(self):
        catalog = load_catalog({"p": {"models": [
            {"id": "good", "cost": {"input": 1, "output": 1}},
            {"id": "odd-cost", "cost": {"input": "n/a", "output": None}},
            {"id": "odd-input", "input": "image", "name": 5, "cost": "free"},
        ]}})
        decision = route_request(normalize_request("hello"), catalog)
        assert [c.model_id for c in decision.top_candidates] == ["good", "odd-cost", "odd-input"]
        assert decision.top_candidates[1].input_cost is None

        odd_input = catalog["p"].models[2]
        assert odd_input.input == []
        assert odd_input.cost is None
        assert not odd_input.supports_images

    def test_blank_id_is_skipped(self):
        catalog = load_catalog({"p": {"models": [{"id": "  "}, {"id": "m"}]}})
        assert [m.id for m in catalog["p"].models] == ["m"]

    def test_non_string_api_key(self):
        catalog = load_catalog({"p": {"apiKey": 123, "models": [{"id": "m"}]}})
        assert catalog["p"].has_api_key is False

    def test_transport_fields_are_ignored(self):
        catalog = load_catalog({"p": {
            "apiKey": "k", "baseUrl": "https://example.invalid/v1", "api": "openai-completions",
            "models": [{"id": "m"}]}})
        provider = catalog["p"]
        assert set(provider.model_dump()) == {"api_key", "models"}
        assert [m.id for m in provider.models] == ["m"]

    def test_empty_api_key(self):
        catalog = load_catalog({"p": {"apiKey": "", "models": [{"id": "m"}]}})
        assert flatten_candidates(catalog)[0].has_api_key is False

    def test_non_mapping_providers(self):
        assert load_catalog(None) == {}
        assert load_catalog(["openai"]) == {}

    def test_deny_beats_prefer(self, scenario_catalog):
        policy = ProviderPolicy(deny=["anthropic"], prefer=["anthropic"])
        seeds = apply_provider_policy(flatten_candidates(scenario_catalog), policy)
        assert {s.provider_id for s in seeds} == {"openai"}

    def test_allow_narrows(self, scenario_catalog):
        seeds = apply_provider_policy(
            flatten_candidates(scenario_catalog), ProviderPolicy(allow=["openai"]))
        assert [s.model_key for s in seeds] == ["openai/gpt-4o-mini"]

    def test_blank_entries_ignored(self, scenario_catalog):
        seeds = apply_provider_policy(
            flatten_candidates(scenario_catalog), ProviderPolicy(allow=["", "  "]))
        assert len(seeds) == 2


class TestRouter:

    def test_cheap_scenario(self, scenario_catalog):
        decision = route_request(normalize_request("quick cheap summary"), scenario_catalog)
        assert decision.policy == RoutePolicy.CHEAP
        assert [c.model_key for c in decision.top_candidates] == [
            "openai/gpt-4o-mini", "anthropic/claude-3-haiku"]
        assert decision.top.rationale == "policy=cheap, apiKey=yes"
        assert decision.top_candidates[1].input_cost is None

    def test_no_candidates_is_valid(self):
        decision = route_request(normalize_request("hi"), {})
        assert decision.top_candidates == []
        assert decision.top is None
        assert "(none)" in format_decision(decision)

    def test_multimodal_filter(self):
        catalog = load_catalog({"p": {"models": [
            {"id": "text-only", "input": ["text"]},
            {"id": "vision", "input": ["text", "image"]},
        ]}})
        req = normalize_request({"role": "user", "content": [{"type": "image", "url": "u"}]})
        decision = route_request(req, catalog)
        assert [c.model_id for c in decision.top_candidates] == ["vision"]

        text_decision = route_request(normalize_request("plain"), catalog)
        assert len(text_decision.top_candidates) == 2

    def test_truncates_to_eight_and_keeps_order_on_ties(self):
        catalog = load_catalog({"p": {"models": [
            {"id": f"model-{i}", "cost": {"input": 1, "output": 1}} for i in range(10)
        ]}})
        decision = route_request(normalize_request("hello"), catalog)
        assert [c.model_id for c in decision.top_candidates] == [f"model-{i}" for i in range(8)]

    def test_sorted_descending(self, scenario_catalog):
        decision = route_request(normalize_request("explain this"), scenario_catalog)
        scores = [c.score for c in decision.top_candidates]
        assert scores == sorted(scores, reverse=True)

    def test_prefer_breaks_tie(self):
        catalog = load_catalog({
            "a": {"models": [{"id": "m", "cost": {"input": 1, "output": 1}}]},
            "b": {"models": [{"id": "m", "cost": {"input": 1, "output": 1}}]},
        })
        decision = route_request(
            normalize_request("hello"), catalog, provider_policy=ProviderPolicy(prefer=["b"]))
        assert decision.top.provider_id == "b"

    def test_exclude_cooling_models(self, scenario_catalog):
        decision = route_request(
            normalize_request("quick cheap summary"), scenario_catalog,
            exclude={"openai/gpt-4o-mini"})
        assert [c.model_key for c in decision.top_candidates] == ["anthropic/claude-3-haiku"]

    def test_custom_inferencer(self, scenario_catalog):
        class AlwaysReasoning(DimensionInferencer):
            def infer(self, request):
                return dims(reasoning=0.99)

        router = KeyRouter(scenario_catalog, inferencer=AlwaysReasoning())
        assert router.route("quick cheap summary").policy == RoutePolicy.REASONING
        assert router.inferencer.name == "AlwaysReasoning"

    def test_format_is_deterministic(self, scenario_catalog):
        router = KeyRouter(scenario_catalog, ProviderPolicy(prefer=["anthropic"]))
        first = format_decision(router.route("quick cheap summary"))
        second = format_decision(router.route("quick cheap summary"))
        assert first == second
        assert "- Policy: cheap" in first
        assert "openai/gpt-4o-mini: score=" in first
        assert "cost=0.15/0.6" in first
        assert "cost=?/?" in first

    def test_to_dict(self, scenario_catalog):
        data = KeyRouter(scenario_catalog).route("quick cheap summary").to_dict()
        assert data["policy"] == "cheap"
        assert data["dimensions"]["cost_sensitivity"] == 0.9
        assert data["top_candidates"][0]["model_id"] == "gpt-4o-mini"


class TestSelectCheapest:

    def test_cheapest(self):
        models = [
            ModelSpec(id="a", cost={"input": 1, "output": 1}),
            ModelSpec(id="b", cost={"input": 0.1, "output": 0.2}),
            ModelSpec(id="c"),
        ]
        assert select_cheapest(models).id == "b"

    def test_empty_and_all_unknown(self):
        assert select_cheapest([]) is None
        assert select_cheapest([ModelSpec(id="x"), ModelSpec(id="y")]).id == "x"

    def test_heuristic_is_default(self):
        assert isinstance(KeyRouter({}).inferencer, HeuristicInferencer)
