"""Request normalization for routing.

Hosts hand us requests in whatever shape they happen to carry: a bare
prompt string, a single chat message, or a list of messages in OpenAI,
Anthropic or home-grown layouts. Everything is reduced to one closed
representation before scoring:

- Messages carry a known role (or ``unknown``)
- Content is split into tagged parts (text, image, tool call/result, json)
- Anything unrecognised becomes an ``unknown`` part, never an exception

Only the plain text and three boolean flags reach the scorer.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PartType(str, Enum):
    """Kinds of message content the router understands."""
    TEXT = "text"
    IMAGE = "image"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    JSON = "json"
    UNKNOWN = "unknown"


class Role(str, Enum):
    """Chat roles. Anything else maps to UNKNOWN."""
    SYSTEM = "system"
    DEVELOPER = "developer"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class NormalizedMessagePart:
    """One piece of message content.

    Which optional field is populated depends on ``type``:
    text parts carry ``text``, image parts ``image_url``, tool calls
    ``tool_name``/``tool_call_id``, and json/unknown parts ``payload``.
    """
    type: PartType
    text: str | None = None
    image_url: str | None = None
    tool_name: str | None = None
    tool_call_id: str | None = None
    payload: Any = None


@dataclass(frozen=True)
class NormalizedMessage:
    role: Role
    parts: tuple[NormalizedMessagePart, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class NormalizedRequest:
    """Canonical request handed to the dimension inferencer."""
    messages: tuple[NormalizedMessage, ...]
    plain_text: str = ""
    has_image: bool = False
    has_tool_call: bool = False
    has_tool_result: bool = False


_ROLES = {role.value: role for role in Role}

_IMAGE_TYPES = ("image", "image_url")


def _safe_string(value: Any) -> str:
    """Read a value as text; scalars are stringified, everything else is empty."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def _normalize_role(value: Any) -> Role:
    if isinstance(value, str):
        return _ROLES.get(value, Role.UNKNOWN)
    return Role.UNKNOWN


def _nested(record: dict[str, Any], key: str, inner: str) -> Any:
    value = record.get(key)
    if isinstance(value, dict):
        return value.get(inner)
    return None


def _present(value: Any) -> bool:
    """True for any value except None, False, zero and the empty string.

    Empty containers still count as present: a record that carries an
    empty ``tool_calls`` list is still shaped like a tool call.
    """
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)) and value == 0:
        return False
    return True


def _first(*values: Any) -> Any:
    """Return the first truthy value, mirroring ``a or b or c`` over mixed types."""
    for value in values:
        if value:
            return value
    return values[-1] if values else None


def parse_part(part: Any) -> NormalizedMessagePart:
    """Classify a single content element.

    Explicit ``type`` tags win; without one we fall back on structural
    cues (``tool_calls``, non-string ``content``) and finally ``unknown``.
    """
    if isinstance(part, str):
        return NormalizedMessagePart(type=PartType.TEXT, text=part)

    if not isinstance(part, dict):
        return NormalizedMessagePart(type=PartType.UNKNOWN, payload=part)

    kind = _safe_string(part.get("type")).lower()

    if kind == PartType.TEXT.value:
        return NormalizedMessagePart(
            type=PartType.TEXT, text=_safe_string(part.get("text")))

    if kind in _IMAGE_TYPES:
        url = _first(part.get("imageUrl"), part.get("url"),
                     _nested(part, "image_url", "url"))
        return NormalizedMessagePart(
            type=PartType.IMAGE, image_url=_safe_string(url))

    if kind == PartType.TOOL_CALL.value:
        name = _first(part.get("name"), _nested(part, "function", "name"))
        call_id = _first(part.get("id"), part.get("tool_call_id"))
        return NormalizedMessagePart(
            type=PartType.TOOL_CALL,
            tool_name=_safe_string(name),
            tool_call_id=_safe_string(call_id),
            payload=part,
        )

    if kind == PartType.TOOL_RESULT.value:
        call_id = _first(part.get("tool_call_id"), part.get("id"))
        return NormalizedMessagePart(
            type=PartType.TOOL_RESULT,
            tool_call_id=_safe_string(call_id),
            payload=part,
        )

    if kind == PartType.JSON.value:
        return NormalizedMessagePart(type=PartType.JSON, payload=part)

    if _present(part.get("tool_calls")):
        return NormalizedMessagePart(
            type=PartType.TOOL_CALL, tool_name="unknown", payload=part)

    content = part.get("content")
    if _present(content) and not isinstance(content, str):
        return NormalizedMessagePart(type=PartType.JSON, payload=content)

    return NormalizedMessagePart(type=PartType.UNKNOWN, payload=part)


def normalize_message(message: Any) -> NormalizedMessage:
    """Normalize one message record of any shape."""
    if isinstance(message, str):
        return NormalizedMessage(
            role=Role.USER,
            parts=(NormalizedMessagePart(type=PartType.TEXT, text=message),),
        )

    if not isinstance(message, dict):
        return NormalizedMessage(
            role=Role.UNKNOWN,
            parts=(NormalizedMessagePart(type=PartType.UNKNOWN, payload=message),),
        )

    role = _normalize_role(message.get("role"))
    content = message.get("content")
    parts: list[NormalizedMessagePart] = []

    if isinstance(content, str):
        parts.append(NormalizedMessagePart(type=PartType.TEXT, text=content))
    elif isinstance(content, list):
        parts.extend(parse_part(item) for item in content)
    elif isinstance(content, dict):
        parts.append(parse_part(content))

    tool_calls = message.get("tool_calls")
    if isinstance(tool_calls, list) or role == Role.TOOL:
        tool_parts = [parse_part(call) for call in tool_calls] \
            if isinstance(tool_calls, list) else []
        if not tool_parts:
            synthetic = PartType.TOOL_RESULT if role == Role.TOOL else PartType.TOOL_CALL
            tool_parts = [NormalizedMessagePart(type=synthetic, payload=message)]
        parts.extend(tool_parts)

    if not parts:
        parts.append(NormalizedMessagePart(type=PartType.UNKNOWN, payload=message))

    return NormalizedMessage(role=role, parts=tuple(parts))


def collect_plain_text(messages: tuple[NormalizedMessage, ...]) -> str:
    """Join every text part, in order, into the scorer's signal surface."""
    chunks: list[str] = []
    for message in messages:
        for part in message.parts:
            if part.text:
                chunks.append(part.text)
            elif part.type == PartType.TOOL_CALL and part.tool_name:
                chunks.append(f"tool:{part.tool_name}")
    return "\n".join(chunks).strip()


def normalize_request(payload: Any) -> NormalizedRequest:
    """Normalize a raw request payload. Never raises.

    Args:
        payload: A prompt string, a single message mapping, or a list of
            messages in any of the supported shapes.

    Returns:
        NormalizedRequest with at least one message.
    """
    if isinstance(payload, list):
        messages = tuple(normalize_message(item) for item in payload)
        if not messages:
            messages = (normalize_message(None),)
    else:
        messages = (normalize_message(payload),)

    part_types = {part.type for message in messages for part in message.parts}

    return NormalizedRequest(
        messages=messages,
        plain_text=collect_plain_text(messages),
        has_image=PartType.IMAGE in part_types,
        has_tool_call=PartType.TOOL_CALL in part_types,
        has_tool_result=PartType.TOOL_RESULT in part_types,
    )


def parse_command_input(raw: str | None) -> Any:
    """Turn command-line text into a request payload.

    Text that looks like JSON (leading ``{`` or ``[``) is parsed as a
    message envelope; if parsing fails it is treated as a plain prompt.
    """
    text = (raw or "").strip()
    if not text:
        return [{"role": "user", "content": ""}]

    if text.startswith(("{", "[")):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

    return [{"role": "user", "content": text}]
