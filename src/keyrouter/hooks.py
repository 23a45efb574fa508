"""Host lifecycle hook handlers.

The host calls these around each agent turn:

1. ``before_model_resolve`` - route the prompt; in override mode return
   provider/model overrides
2. ``before_agent_start`` - same, for runtimes that only honour overrides
   here; in pin mode also write the model into host config and the agent's
   session, and remember the pick for the session
3. ``agent_end`` - in pin mode, re-apply the remembered session pick
   (the runtime may have rewritten the session store during the turn)

Hooks must never break the host: any error is logged as a warning and the
hook returns None. Context keys are accepted in snake_case or camelCase
(``session_key`` or ``sessionKey``).
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable

from keyrouter.config import (
    PluginConfig,
    load_host_catalog,
    load_plugin_config,
    set_primary_model_selection,
    set_session_model_selection,
)
from keyrouter.normalizer import normalize_request
from keyrouter.routing.catalog import Catalog
from keyrouter.routing.router import RouteDecision, route_request
from keyrouter.state import UsageStateManager, UsageStatus, get_state_manager

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "/keyrouter_"


def _lookup(source: dict, *names: str) -> str | None:
    for name in names:
        value = source.get(name)
        if isinstance(value, str) and value:
            return value
    return None


@dataclass
class PendingPin:
    agent_id: str
    provider_id: str
    model_id: str
    created_at: float = field(default_factory=time.monotonic)

    @property
    def model_ref(self) -> str:
        return f"{self.provider_id}/{self.model_id}"


class PendingPinCache:
    """Session key -> pending pin, bounded in size and age.

    Entries for sessions that never reach ``agent_end`` age out after
    ``ttl_s`` seconds; past ``max_entries`` the oldest is evicted.
    """

    def __init__(
        self,
        max_entries: int = 256,
        ttl_s: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._max_entries = max_entries
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: OrderedDict[str, PendingPin] = OrderedDict()

    def __len__(self) -> int:
        self._prune()
        return len(self._entries)

    def _prune(self) -> None:
        now = self._clock()
        expired = [k for k, p in self._entries.items() if now - p.created_at >= self._ttl_s]
        for key in expired:
            del self._entries[key]

    def put(self, session_key: str, pin: PendingPin) -> None:
        self._prune()
        pin.created_at = self._clock()
        self._entries.pop(session_key, None)
        self._entries[session_key] = pin
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def pop(self, session_key: str) -> PendingPin | None:
        self._prune()
        return self._entries.pop(session_key, None)


@dataclass
class RoutedModel:
    provider_override: str
    model_override: str
    decision: RouteDecision

    @property
    def model_ref(self) -> str:
        return f"{self.provider_override}/{self.model_override}"

    def overrides(self) -> dict[str, str]:
        return {
            "provider_override": self.provider_override,
            "model_override": self.model_override,
        }


class KeyRouterHooks:
    """Hook handlers bound to one plugin configuration.

    Usage:
        hooks = KeyRouterHooks()
        result = hooks.before_model_resolve({"prompt": "fix the bug"})
        # result = {"provider_override": "openai", "model_override": "gpt-4o"}
        # (only when hard_apply is enabled in override mode)
    """

    def __init__(
        self,
        settings: PluginConfig | None = None,
        manager: UsageStateManager | None = None,
        catalog_loader: Callable[[], Catalog] = load_host_catalog,
        pending: PendingPinCache | None = None,
    ):
        self.settings = settings or load_plugin_config()
        self.manager = manager or get_state_manager()
        self.catalog_loader = catalog_loader
        self.pending = pending or PendingPinCache()

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    def auto_route(self, prompt: str, messages: list[Any] | None = None) -> RoutedModel | None:
        """Route a turn and record the top pick.

        Blank prompts and KeyRouter's own slash commands are skipped.
        """
        prompt = str(prompt or "").strip()
        if not prompt or prompt.startswith(COMMAND_PREFIX):
            return None

        payload = messages if isinstance(messages, list) and messages else [
            {"role": "user", "content": prompt}]
        exclude = self.manager.cooling_down() if self.settings.respect_cooldowns else None
        decision = route_request(
            normalize_request(payload),
            self.catalog_loader(),
            provider_policy=self.settings.providers,
            exclude=exclude,
        )
        top = decision.top
        if top is None:
            return None

        self.manager.record_usage(top.provider_id, top.model_id, UsageStatus.ROUTED)
        return RoutedModel(top.provider_id, top.model_id, decision)

    def _route_event(self, event: Any) -> RoutedModel | None:
        payload = event if isinstance(event, dict) else {}
        return self.auto_route(payload.get("prompt") or "", payload.get("messages"))

    def before_model_resolve(self, event: Any) -> dict[str, str] | None:
        if not self.enabled:
            return None
        try:
            routed = self._route_event(event)
        except Exception as e:
            logger.warning(f"KeyRouter auto-route(model_resolve) skipped: {e}")
            return None
        if routed is None:
            return None

        logger.info(f"KeyRouter auto-route(model_resolve) -> {routed.model_ref}")
        return routed.overrides() if self.settings.overrides else None

    def before_agent_start(self, event: Any, ctx: Any = None) -> dict[str, str] | None:
        if not self.enabled:
            return None
        payload = event if isinstance(event, dict) else {}
        context = ctx if isinstance(ctx, dict) else {}
        agent_id = _lookup(context, "agent_id", "agentId") or _lookup(payload, "agent_id", "agentId")
        session_key = _lookup(context, "session_key", "sessionKey")

        try:
            routed = self._route_event(payload)
            if routed is None:
                return None
            logger.info(f"KeyRouter auto-route(agent_start) -> {routed.model_ref}")

            if self.settings.pins:
                self._pin(routed, agent_id, session_key)
                return None
        except Exception as e:
            logger.warning(f"KeyRouter auto-route(agent_start) skipped: {e}")
            return None

        return routed.overrides() if self.settings.overrides else None

    def _pin(self, routed: RoutedModel, agent_id: str | None, session_key: str | None) -> None:
        scope = self.settings.hard_apply.pin_scope
        if set_primary_model_selection(routed.model_ref, scope=scope, agent_id=agent_id):
            suffix = f":{agent_id}" if agent_id else ""
            logger.info(f"KeyRouter hard-apply(pin) -> {routed.model_ref} ({scope.value}{suffix})")

        if agent_id and set_session_model_selection(
            agent_id, routed.provider_override, routed.model_override
        ):
            logger.info(f"KeyRouter hard-apply(session) -> {routed.model_ref} (agent:{agent_id}:main)")

        if agent_id and session_key:
            self.pending.put(session_key, PendingPin(
                agent_id=agent_id,
                provider_id=routed.provider_override,
                model_id=routed.model_override,
            ))

    def agent_end(self, event: Any = None, ctx: Any = None) -> None:
        if not (self.enabled and self.settings.pins):
            return
        context = ctx if isinstance(ctx, dict) else {}
        session_key = _lookup(context, "session_key", "sessionKey")
        if not session_key:
            return

        pending = self.pending.pop(session_key)
        if pending is None:
            return

        try:
            applied = set_session_model_selection(
                pending.agent_id, pending.provider_id, pending.model_id)
        except Exception as e:
            logger.warning(f"KeyRouter hard-apply(agent_end) failed: {e}")
            return
        if applied:
            logger.info(f"KeyRouter hard-apply(agent_end) -> {pending.model_ref} ({session_key})")
