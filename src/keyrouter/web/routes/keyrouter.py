"""Routing, retry and quota API routes."""

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict

from keyrouter.errors import HostConfigError, PluginConfigError, QuotaValidationError

router = APIRouter()


class RouteRequest(BaseModel):
    """A prompt string, a message, or a list of messages."""
    input: Any


class RetryRequest(BaseModel):
    error: str


class QuotaRequest(BaseModel):
    """Request to set quota for a model key."""
    model_config = ConfigDict(protected_namespaces=())

    model_key: str
    remaining: Any
    reset_at: str | None = None


@router.get("/keyrouter/audit")
async def audit():
    """Providers and auth profiles visible in the host config."""
    from keyrouter.config import ingest_snapshot, load_host_config

    try:
        snapshot = ingest_snapshot(load_host_config())
    except HostConfigError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "auth_profile_count": snapshot.auth_profile_count,
        "providers": [
            {"id": p.id, "model_count": p.model_count, "has_api_key": p.has_api_key}
            for p in snapshot.providers
        ],
    }


@router.post("/keyrouter/route")
async def route(req: RouteRequest):
    """Rank candidate models for a request payload."""
    from keyrouter.commands import route_payload
    from keyrouter.normalizer import parse_command_input

    payload = parse_command_input(req.input) if isinstance(req.input, str) else req.input
    try:
        decision = route_payload(payload)
    except (HostConfigError, PluginConfigError) as e:
        raise HTTPException(status_code=500, detail=str(e))
    return decision.to_dict()


@router.post("/keyrouter/retry")
async def retry(req: RetryRequest):
    """Classify an error and suggest retry/fallback behaviour."""
    from keyrouter.commands import retry_after_error

    if not req.error.strip():
        raise HTTPException(status_code=400, detail="error text is required")
    try:
        outcome = retry_after_error(req.error)
    except (HostConfigError, PluginConfigError) as e:
        raise HTTPException(status_code=500, detail=str(e))
    return outcome.to_dict()


@router.get("/keyrouter/usage")
async def usage():
    """Usage log and per-model status counts."""
    from keyrouter.state import get_state_manager, usage_by_model

    state = get_state_manager().load()
    return {
        "events": len(state.usage),
        "by_model": {
            key: {status.value: count for status, count in counts.items()}
            for key, counts in usage_by_model(state).items()
        },
        "recent": [e.to_dict() for e in state.usage[-20:]],
    }


@router.get("/keyrouter/quota")
async def quota():
    """Quota and cooldown table."""
    from keyrouter.state import get_state_manager

    state = get_state_manager().load()
    return {"quota": {key: q.to_dict() for key, q in state.quota.items()}}


@router.post("/keyrouter/quota")
async def set_quota(req: QuotaRequest):
    """Replace the quota entry for a model key."""
    from keyrouter.commands import run_quota_set

    try:
        state = run_quota_set(req.model_key, req.remaining, req.reset_at)
    except QuotaValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    key = req.model_key.strip()
    return {"status": "ok", "quota": state.quota[key].to_dict()}
