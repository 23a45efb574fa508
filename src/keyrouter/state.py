"""Usage accounting and quota/cooldown state.

State is one small JSON document holding:
- A bounded usage log (newest 1000 events; older ones are dropped)
- A quota table keyed by "provider/model" with remaining counts,
  reset times and cooldown deadlines

Every operation is a full load -> mutate -> save cycle. There is no
locking: two writers racing will lose one update (last writer wins), so a
single writing process is assumed. Locking belongs behind StateStore.

A missing, empty or corrupt state file loads as empty state.
"""

import copy
import json
import logging
import math
import os
import tempfile
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from keyrouter.errors import QuotaValidationError
from keyrouter.retry import RetryErrorClass

logger = logging.getLogger(__name__)

MAX_USAGE_EVENTS = 1000

# Cooldown minutes per error class; anything not listed gets DEFAULT_COOLDOWN_MINUTES
COOLDOWN_MINUTES: dict[RetryErrorClass, float] = {
    RetryErrorClass.QUOTA_EXHAUSTED: 10,
    RetryErrorClass.RATE_LIMITED: 2,
}
DEFAULT_COOLDOWN_MINUTES = 1


class UsageStatus(str, Enum):
    ROUTED = "routed"
    SUCCESS = "success"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Returns None for anything that is not a parseable string.
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _finite_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def _optional_int(value: Any) -> int | None:
    return int(value) if _finite_number(value) else None


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


@dataclass
class UsageEvent:
    """A single routing outcome."""
    at: str
    provider_id: str
    model_id: str
    status: UsageStatus
    tokens_input: int | None = None
    tokens_output: int | None = None
    error_class: RetryErrorClass | None = None

    @property
    def model_key(self) -> str:
        return f"{self.provider_id}/{self.model_id}"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "at": self.at,
            "provider_id": self.provider_id,
            "model_id": self.model_id,
            "status": self.status.value,
        }
        if self.tokens_input is not None:
            d["tokens_input"] = self.tokens_input
        if self.tokens_output is not None:
            d["tokens_output"] = self.tokens_output
        if self.error_class is not None:
            d["error_class"] = self.error_class.value
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "UsageEvent":
        error_class = d.get("error_class")
        return cls(
            at=str(d["at"]),
            provider_id=str(d["provider_id"]),
            model_id=str(d["model_id"]),
            status=UsageStatus(d["status"]),
            tokens_input=_optional_int(d.get("tokens_input")),
            tokens_output=_optional_int(d.get("tokens_output")),
            error_class=RetryErrorClass(error_class) if error_class else None,
        )


@dataclass
class QuotaEntry:
    """Known quota and cooldown for one model key."""
    remaining: float | None = None
    reset_at: str | None = None
    cooldown_until: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.remaining is not None:
            d["remaining"] = self.remaining
        if self.reset_at is not None:
            d["reset_at"] = self.reset_at
        if self.cooldown_until is not None:
            d["cooldown_until"] = self.cooldown_until
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "QuotaEntry":
        remaining = d.get("remaining")
        return cls(
            remaining=remaining if _finite_number(remaining) else None,
            reset_at=_optional_str(d.get("reset_at")),
            cooldown_until=_optional_str(d.get("cooldown_until")),
        )

    def is_cooling_down(self, now: datetime) -> bool:
        until = parse_timestamp(self.cooldown_until)
        return until is not None and until > now


@dataclass
class KeyRouterState:
    usage: list[UsageEvent] = field(default_factory=list)
    quota: dict[str, QuotaEntry] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "usage": [e.to_dict() for e in self.usage],
            "quota": {k: q.to_dict() for k, q in self.quota.items()},
        }

    @classmethod
    def from_dict(cls, d: Any) -> "KeyRouterState":
        """Rebuild state, dropping records that do not parse."""
        if not isinstance(d, dict):
            return cls()

        usage: list[UsageEvent] = []
        raw_usage = d.get("usage")
        for raw in raw_usage if isinstance(raw_usage, list) else []:
            if not isinstance(raw, dict):
                continue
            try:
                usage.append(UsageEvent.from_dict(raw))
            except (KeyError, TypeError, ValueError):
                continue

        quota: dict[str, QuotaEntry] = {}
        raw_quota = d.get("quota")
        if isinstance(raw_quota, dict):
            for key, raw in raw_quota.items():
                if isinstance(raw, dict):
                    quota[str(key)] = QuotaEntry.from_dict(raw)

        return cls(usage=usage, quota=quota)


class StateStore(ABC):
    """Where state lives. Implementations load and save whole documents."""

    @abstractmethod
    def load(self) -> KeyRouterState:
        ...

    @abstractmethod
    def save(self, state: KeyRouterState) -> None:
        ...


class MemoryStateStore(StateStore):
    """In-process store, mainly for tests."""

    def __init__(self, state: KeyRouterState | None = None):
        self._state = copy.deepcopy(state) if state else KeyRouterState()

    def load(self) -> KeyRouterState:
        return copy.deepcopy(self._state)

    def save(self, state: KeyRouterState) -> None:
        self._state = copy.deepcopy(state)


class JsonFileStateStore(StateStore):
    """State persisted as a JSON file.

    The parent directory is created on first use. Writes go to a temp
    file that is then renamed over the target, so readers never see a
    half-written document.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> KeyRouterState:
        if not self.path.exists():
            return KeyRouterState()

        try:
            raw = self.path.read_text(encoding="utf-8").strip()
            if not raw:
                return KeyRouterState()
            return KeyRouterState.from_dict(json.loads(raw))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return KeyRouterState()

    def save(self, state: KeyRouterState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


class UsageStateManager:
    """Usage log and quota table on top of a StateStore.

    Provides:
    - Usage event recording with a bounded log
    - Quota overwrite and cooldown merge
    - Cooldowns keyed to the error class of a failure
    - The set of model keys currently cooling down
    """

    def __init__(
        self,
        store: StateStore,
        clock: Callable[[], datetime] = utcnow,
        max_events: int = MAX_USAGE_EVENTS,
    ):
        self.store = store
        self.clock = clock
        self.max_events = max_events

    def load(self) -> KeyRouterState:
        return self.store.load()

    def record_usage(
        self,
        provider_id: str,
        model_id: str,
        status: UsageStatus,
        tokens_input: int | None = None,
        tokens_output: int | None = None,
        error_class: RetryErrorClass | None = None,
    ) -> KeyRouterState:
        """Append a usage event stamped with the current time."""
        state = self.store.load()
        state.usage.append(UsageEvent(
            at=self.clock().isoformat(),
            provider_id=provider_id,
            model_id=model_id,
            status=UsageStatus(status),
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            error_class=error_class,
        ))
        if len(state.usage) > self.max_events:
            state.usage = state.usage[-self.max_events:]
        self.store.save(state)
        return state

    def set_quota(self, model_key: str, entry: QuotaEntry) -> KeyRouterState:
        """Replace the quota entry for a model key (no merge)."""
        state = self.store.load()
        state.quota[model_key] = entry
        self.store.save(state)
        return state

    def apply_cooldown(self, model_key: str, minutes: float) -> KeyRouterState:
        """Set ``cooldown_until`` to now + minutes, keeping the other fields."""
        state = self.store.load()
        existing = state.quota.get(model_key) or QuotaEntry()
        until = self.clock() + timedelta(minutes=minutes)
        state.quota[model_key] = QuotaEntry(
            remaining=existing.remaining,
            reset_at=existing.reset_at,
            cooldown_until=until.isoformat(),
        )
        self.store.save(state)
        logger.info(f"Cooldown applied to {model_key} for {minutes:g} min")
        return state

    def mark_failure_with_error(
        self,
        model_key: str,
        error_class: RetryErrorClass,
    ) -> KeyRouterState:
        """Cool a model down for a period that depends on why it failed."""
        minutes = COOLDOWN_MINUTES.get(error_class, DEFAULT_COOLDOWN_MINUTES)
        return self.apply_cooldown(model_key, minutes)

    def cooling_down(self, now: datetime | None = None) -> set[str]:
        """Model keys whose cooldown has not yet expired."""
        now = now or self.clock()
        state = self.store.load()
        return {key for key, entry in state.quota.items() if entry.is_cooling_down(now)}


def parse_quota_args(
    model_key: str,
    remaining: Any,
    reset_at: str | None = None,
) -> tuple[str, QuotaEntry]:
    """Validate quota-set arguments from a CLI or API caller.

    Raises:
        QuotaValidationError: naming the offending value.
    """
    key = (model_key or "").strip()
    if not key:
        raise QuotaValidationError("model key", model_key, "expected provider/model")

    if isinstance(remaining, bool):
        raise QuotaValidationError("remaining", remaining)
    try:
        value = float(remaining)
    except (TypeError, ValueError):
        raise QuotaValidationError("remaining", remaining) from None
    if not math.isfinite(value):
        raise QuotaValidationError("remaining", remaining, "must be finite")
    if value.is_integer():
        value = int(value)

    reset = (reset_at or "").strip() or None
    if reset is not None and parse_timestamp(reset) is None:
        raise QuotaValidationError("reset time", reset_at, "expected ISO-8601")

    return key, QuotaEntry(remaining=value, reset_at=reset)


def usage_by_model(state: KeyRouterState) -> dict[str, Counter]:
    """Status counts per model key, in first-seen order."""
    grouped: dict[str, Counter] = {}
    for event in state.usage:
        grouped.setdefault(event.model_key, Counter())[event.status] += 1
    return grouped


def summarize_usage(state: KeyRouterState) -> str:
    """Per-model event counts as a plain-text report."""
    lines = [
        "KeyRouter Usage Summary",
        f"- Events: {len(state.usage)}",
    ]

    grouped = usage_by_model(state)

    if not grouped:
        lines.append("- No usage yet")
        return "\n".join(lines)

    lines.append("- By model:")
    for key, counts in grouped.items():
        lines.append(
            f"  - {key}: total={sum(counts.values())}, "
            f"routed={counts[UsageStatus.ROUTED]}, "
            f"success={counts[UsageStatus.SUCCESS]}, "
            f"failed={counts[UsageStatus.FAILED]}")
    return "\n".join(lines)


def summarize_quota(state: KeyRouterState) -> str:
    """Quota and cooldown table as a plain-text report."""
    lines = [
        "KeyRouter Quota Summary",
        f"- Entries: {len(state.quota)}",
    ]

    if not state.quota:
        lines.append("- No quota records yet")
        return "\n".join(lines)

    for key, q in state.quota.items():
        remaining = "?" if q.remaining is None else f"{q.remaining:g}"
        lines.append(
            f"  - {key}: remaining={remaining}, resetAt={q.reset_at or '?'}, "
            f"cooldownUntil={q.cooldown_until or '-'}")
    return "\n".join(lines)


# ─── Global instance ──────────────────────────────────────────────

_manager: UsageStateManager | None = None


def get_state_manager() -> UsageStateManager:
    """Get the process-wide state manager backed by the host data dir."""
    global _manager
    if _manager is None:
        from keyrouter.config import get_state_path
        _manager = UsageStateManager(JsonFileStateStore(get_state_path()))
    return _manager


def reset_state_manager() -> None:
    """Forget the cached manager (tests, or after HOME changes)."""
    global _manager
    _manager = None
