"""Shared fixtures for KeyRouter tests."""

import json
from pathlib import Path
from datetime import datetime, timedelta, timezone

import pytest


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


SCENARIO_PROVIDERS = {
    "openai": {
        "apiKey": "sk-test",
        "models": [
            {"id": "gpt-4o-mini", "cost": {"input": 0.15, "output": 0.6}},
        ],
    },
    "anthropic": {
        "models": [
            {"id": "claude-3-haiku"},
        ],
    },
}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def home(tmp_path, monkeypatch):
    """Point ~ at a temp dir (avoids touching the real ~/.openclaw)."""
    from keyrouter.state import reset_state_manager

    monkeypatch.setenv("HOME", str(tmp_path))
    reset_state_manager()
    yield tmp_path
    reset_state_manager()


@pytest.fixture
def write_host_config(home):
    """Write ~/.openclaw/openclaw.json and return its path."""
    def _write(config: dict) -> Path:
        path = home / ".openclaw" / "openclaw.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(config))
        return path
    return _write


@pytest.fixture
def scenario_config(write_host_config):
    """Host config with the openai/anthropic scenario catalog."""
    config = {
        "auth": {"profiles": {"openai:default": {"provider": "openai", "mode": "api_key"}}},
        "models": {"providers": SCENARIO_PROVIDERS},
    }
    write_host_config(config)
    return config


@pytest.fixture
def scenario_catalog():
    from keyrouter.routing import load_catalog
    return load_catalog(SCENARIO_PROVIDERS)


@pytest.fixture
def manager(clock):
    """UsageStateManager over an in-memory store with a fixed clock."""
    from keyrouter.state import MemoryStateStore, UsageStateManager
    return UsageStateManager(MemoryStateStore(), clock=clock)
