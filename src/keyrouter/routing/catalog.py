"""Provider catalog and candidate building.

The host configuration describes providers as a nested mapping of
provider id -> {apiKey, models[...]}. Routing works on a flat list of
(provider, model) seeds, filtered by the caller's provider policy and by
what the request needs (image input).

Malformed fields degrade (unknown cost, no image support); only a model
without a usable id is skipped, with a warning.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class ModelCost(BaseModel):
    """Per-unit pricing as advertised by the host catalog.

    Anything other than a finite number reads as unknown, which the
    scorer prices with its missing-cost penalty.
    """
    input: float | None = None
    output: float | None = None

    @field_validator("input", "output", mode="before")
    @classmethod
    def _numeric_or_none(cls, value: Any) -> float | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        try:
            value = float(value)
        except OverflowError:
            return None
        return value if math.isfinite(value) else None


class ModelSpec(BaseModel):
    """A model entry inside a provider's catalog."""
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str | None = None
    input: list[str] = Field(default_factory=list)
    cost: ModelCost | None = None

    @field_validator("id")
    @classmethod
    def _usable_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("model id is blank")
        return value

    @field_validator("name", mode="before")
    @classmethod
    def _string_or_none(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("input", mode="before")
    @classmethod
    def _modalities(cls, value: Any) -> list[str]:
        # A malformed modality list means no image support, not a bad model
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, str)]

    @field_validator("cost", mode="before")
    @classmethod
    def _cost_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @property
    def input_cost(self) -> float | None:
        return self.cost.input if self.cost else None

    @property
    def output_cost(self) -> float | None:
        return self.cost.output if self.cost else None

    @property
    def supports_images(self) -> bool:
        return "image" in self.input


class ProviderConfig(BaseModel):
    """One provider block from the host catalog."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    api_key: str | None = Field(default=None, alias="apiKey")
    models: list[ModelSpec] = Field(default_factory=list)

    @field_validator("api_key", mode="before")
    @classmethod
    def _key_string(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)


class ProviderPolicy(BaseModel):
    """Caller-supplied provider allow/prefer/deny lists."""
    allow: list[str] = Field(default_factory=list)
    prefer: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)

    @staticmethod
    def _clean(values: Iterable[str]) -> frozenset[str]:
        return frozenset(v.strip() for v in values if v and v.strip())

    @property
    def allow_set(self) -> frozenset[str]:
        return self._clean(self.allow)

    @property
    def prefer_set(self) -> frozenset[str]:
        return self._clean(self.prefer)

    @property
    def deny_set(self) -> frozenset[str]:
        return self._clean(self.deny)


Catalog = dict[str, ProviderConfig]


@dataclass(frozen=True)
class CandidateSeed:
    """A scoreable (provider, model) pair."""
    provider_id: str
    model: ModelSpec
    has_api_key: bool = False

    @property
    def model_key(self) -> str:
        return f"{self.provider_id}/{self.model.id}"


def load_catalog(providers: Any) -> Catalog:
    """Build a catalog from the raw ``models.providers`` section.

    Only models without a usable id are dropped, and only that model:
    the rest of its provider is kept. Other malformed fields degrade.
    """
    catalog: Catalog = {}
    if not isinstance(providers, dict):
        return catalog

    for provider_id, raw in providers.items():
        if not isinstance(raw, dict):
            logger.warning(f"Skipping provider {provider_id!r}: not a mapping")
            continue

        models: list[ModelSpec] = []
        raw_models = raw.get("models")
        for raw_model in raw_models if isinstance(raw_models, list) else []:
            try:
                models.append(ModelSpec.model_validate(raw_model))
            except ValidationError as e:
                logger.warning(
                    f"Skipping model in provider {provider_id!r}: {e.error_count()} validation error(s)")

        fields = {k: v for k, v in raw.items() if k != "models"}
        provider = ProviderConfig.model_validate(fields)
        provider.models = models
        catalog[str(provider_id)] = provider

    return catalog


def flatten_candidates(catalog: Catalog) -> list[CandidateSeed]:
    """Flatten the catalog into seeds, preserving enumeration order."""
    seeds: list[CandidateSeed] = []
    for provider_id, provider in catalog.items():
        for model in provider.models:
            seeds.append(CandidateSeed(
                provider_id=provider_id,
                model=model,
                has_api_key=provider.has_api_key,
            ))
    return seeds


def apply_provider_policy(
    seeds: list[CandidateSeed],
    policy: ProviderPolicy | None = None,
) -> list[CandidateSeed]:
    """Drop denied providers, then narrow to the allow list if one is set."""
    if policy is None:
        return list(seeds)

    deny = policy.deny_set
    allow = policy.allow_set
    out = [s for s in seeds if s.provider_id not in deny]
    if allow:
        out = [s for s in out if s.provider_id in allow]
    return out


def matches_multimodal(seed: CandidateSeed, requires_image: bool) -> bool:
    if not requires_image:
        return True
    return seed.model.supports_images
