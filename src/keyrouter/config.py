"""Configuration for KeyRouter.

Two files are involved, both under the host's data directory
(``~/.openclaw``):

- ``openclaw.json``: the host's own config. KeyRouter reads the provider
  catalog and auth profiles from it, and in "pin" mode writes the routed
  model back into the agent defaults.
- ``keyrouter/config.yaml``: KeyRouter's settings (provider policy,
  hard-apply mode, cooldown filtering).

Example config.yaml:

    enabled: true
    providers:
      prefer: [openai]
      deny: [legacy]
    hard_apply:
      enabled: true
      mode: pin
      pin_scope: agent
    respect_cooldowns: false
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from keyrouter.errors import HostConfigError, PluginConfigError
from keyrouter.routing.catalog import Catalog, ProviderPolicy, load_catalog

logger = logging.getLogger(__name__)


# ─── Paths ────────────────────────────────────────────────────────

def get_host_dir() -> Path:
    """The host's data directory."""
    return Path.home() / ".openclaw"


def get_host_config_path() -> Path:
    return get_host_dir() / "openclaw.json"


def get_keyrouter_dir() -> Path:
    """KeyRouter's own directory, created on first use."""
    path = get_host_dir() / "keyrouter"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_state_path() -> Path:
    return get_keyrouter_dir() / "state.json"


def get_plugin_config_path() -> Path:
    return get_keyrouter_dir() / "config.yaml"


def get_sessions_path(agent_id: str) -> Path:
    return get_host_dir() / "agents" / agent_id / "sessions" / "sessions.json"


# ─── Host config ──────────────────────────────────────────────────

def _read_json(path: Path) -> dict[str, Any] | None:
    if not path.exists():
        return None
    raw = path.read_text(encoding="utf-8").strip()
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HostConfigError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise HostConfigError(f"{path} must contain a JSON object")
    return data


def _write_json(path: Path, data: dict[str, Any]) -> None:
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def load_host_config(path: Path | None = None) -> dict[str, Any]:
    """Load the host config. Missing or blank files load as ``{}``.

    Raises:
        HostConfigError: if the file exists but is not a JSON object.
    """
    return _read_json(path or get_host_config_path()) or {}


def save_host_config(config: dict[str, Any], path: Path | None = None) -> None:
    _write_json(path or get_host_config_path(), config)


def catalog_from_config(config: dict[str, Any]) -> Catalog:
    """Extract the provider catalog from a host config document."""
    models = config.get("models")
    providers = models.get("providers") if isinstance(models, dict) else None
    return load_catalog(providers)


def load_host_catalog() -> Catalog:
    return catalog_from_config(load_host_config())


# ─── Plugin config ────────────────────────────────────────────────

class HardApplyMode(str, Enum):
    """How a routing decision is pushed back into the host."""
    OFF = "off"
    OVERRIDE = "override"  # Return provider/model overrides from hooks
    PIN = "pin"            # Write the model into host config and sessions


class PinScope(str, Enum):
    AGENT = "agent"
    DEFAULTS = "defaults"


class HardApplyConfig(BaseModel):
    enabled: bool = False
    mode: HardApplyMode = HardApplyMode.OVERRIDE
    pin_scope: PinScope = PinScope.AGENT


class PluginConfig(BaseModel):
    """KeyRouter settings."""
    enabled: bool = True
    providers: ProviderPolicy = Field(default_factory=ProviderPolicy)
    hard_apply: HardApplyConfig = Field(default_factory=HardApplyConfig)
    # Exclude models that are cooling down after a failure
    respect_cooldowns: bool = False

    @property
    def overrides(self) -> bool:
        return self.hard_apply.enabled and self.hard_apply.mode == HardApplyMode.OVERRIDE

    @property
    def pins(self) -> bool:
        return self.hard_apply.enabled and self.hard_apply.mode == HardApplyMode.PIN


def parse_plugin_config(raw: Any) -> PluginConfig:
    """Validate a settings mapping (None means defaults).

    Raises:
        PluginConfigError: on a non-mapping or invalid values.
    """
    if raw is None:
        return PluginConfig()
    if not isinstance(raw, dict):
        raise PluginConfigError("KeyRouter config must be a mapping")
    try:
        return PluginConfig.model_validate(raw)
    except ValidationError as e:
        raise PluginConfigError(f"Invalid KeyRouter config: {e}") from e


def load_plugin_config(path: Path | None = None) -> PluginConfig:
    """Load settings from config.yaml, falling back to defaults."""
    config_path = path or get_plugin_config_path()
    if not config_path.exists():
        return PluginConfig()
    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PluginConfigError(f"{config_path} is not valid YAML: {e}") from e
    return parse_plugin_config(raw)


def save_plugin_config(config: PluginConfig, path: Path | None = None) -> None:
    config_path = path or get_plugin_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.dump(config.model_dump(mode="json"), f, default_flow_style=False)


# ─── Ingest snapshot ──────────────────────────────────────────────

@dataclass
class IngestedProvider:
    id: str
    model_count: int
    has_api_key: bool


@dataclass
class IngestedSnapshot:
    """What KeyRouter can see of the host's auth and model setup."""
    auth_profile_count: int = 0
    providers: list[IngestedProvider] = field(default_factory=list)


def ingest_snapshot(config: dict[str, Any]) -> IngestedSnapshot:
    auth = config.get("auth")
    profiles = auth.get("profiles") if isinstance(auth, dict) else None
    catalog = catalog_from_config(config)

    providers = sorted(
        (
            IngestedProvider(id=pid, model_count=len(p.models), has_api_key=p.has_api_key)
            for pid, p in catalog.items()
        ),
        key=lambda p: p.id,
    )
    return IngestedSnapshot(
        auth_profile_count=len(profiles) if isinstance(profiles, dict) else 0,
        providers=providers,
    )


def format_snapshot(snapshot: IngestedSnapshot) -> str:
    lines = [
        "KeyRouter Ingest Report",
        f"- Auth profiles: {snapshot.auth_profile_count}",
        f"- Providers: {len(snapshot.providers)}",
    ]
    for p in snapshot.providers:
        lines.append(
            f"  - {p.id}: models={p.model_count}, apiKey={'yes' if p.has_api_key else 'no'}")
    return "\n".join(lines)


# ─── Hard-apply pinning ───────────────────────────────────────────

def _model_ref(value: Any) -> str | None:
    """A host model setting is either "provider/model" or {"primary": ...}."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        primary = value.get("primary")
        return primary if isinstance(primary, str) else None
    return None


def set_primary_model_selection(
    model_ref: str,
    scope: PinScope = PinScope.AGENT,
    agent_id: str | None = None,
) -> bool:
    """Write ``model_ref`` as the agent's (or the defaults') primary model.

    Returns:
        True if the host config changed.
    """
    config = load_host_config()
    agents = config.setdefault("agents", {})

    if scope == PinScope.AGENT and agent_id:
        entries = agents.get("list")
        if not isinstance(entries, list):
            entries = agents["list"] = []
        entry = next(
            (e for e in entries if isinstance(e, dict) and e.get("id") == agent_id),
            None,
        )
        if entry is None or _model_ref(entry.get("model")) == model_ref:
            return False
        entry["model"] = model_ref
        save_host_config(config)
        return True

    defaults = agents.get("defaults")
    if not isinstance(defaults, dict):
        defaults = agents["defaults"] = {}
    if _model_ref(defaults.get("model")) == model_ref:
        return False
    defaults["model"] = model_ref
    save_host_config(config)
    return True


def set_session_model_selection(agent_id: str, provider_id: str, model_id: str) -> bool:
    """Point the agent's main session at a provider/model.

    Returns:
        True if the session store changed. Missing stores or sessions
        are left alone.
    """
    path = get_sessions_path(agent_id)
    store = _read_json(path)
    if store is None:
        return False

    entry = store.get(f"agent:{agent_id}:main")
    if not isinstance(entry, dict):
        return False

    wanted = {
        "model": model_id,
        "modelOverride": model_id,
        "modelProvider": provider_id,
        "providerOverride": provider_id,
    }
    if all(entry.get(k) == v for k, v in wanted.items()):
        return False

    entry.update(wanted)
    _write_json(path, store)
    return True
