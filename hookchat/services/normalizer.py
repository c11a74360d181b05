"""Response normalization.

Workflow endpoints answer in whatever shape their last node produced: a bare
string, an object with one of several conventional fields, a list of such
objects, or nothing at all. This module classifies the decoded body into a
small tagged union and renders every variant to one display string.

``normalize`` never raises and never logs.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

NO_CONTENT = "no content received"
NO_DATA = "no data returned"
UNRECOGNIZED = "unrecognized format"
FORMAT_ERROR = "error formatting response"

CANDIDATE_FIELDS = ("output", "response", "content", "text", "message", "result")


@dataclass(frozen=True)
class EmptyPayload:
    """Absent body or JSON null."""


@dataclass(frozen=True)
class TextPayload:
    text: str


@dataclass(frozen=True)
class ListPayload:
    items: List[Any]


@dataclass(frozen=True)
class ObjectPayload:
    fields: Dict[str, Any]


@dataclass(frozen=True)
class ScalarPayload:
    """Numbers, booleans and anything else JSON can decode to."""

    value: Any


Payload = Union[EmptyPayload, TextPayload, ListPayload, ObjectPayload, ScalarPayload]
PAYLOAD_TYPES = (EmptyPayload, TextPayload, ListPayload, ObjectPayload, ScalarPayload)


def classify(value: Any) -> Payload:
    """Wrap a decoded JSON value in its payload variant."""
    if value is None:
        return EmptyPayload()
    if isinstance(value, str):
        return TextPayload(value)
    if isinstance(value, (list, tuple)):
        return ListPayload(list(value))
    if isinstance(value, dict):
        return ObjectPayload(value)
    return ScalarPayload(value)


def decode_body(body: Optional[str]) -> Payload:
    """
    Decode a raw response body.

    JSON bodies are decoded; anything that is not valid JSON is kept as
    plain text. An empty body is treated as absent.
    """
    if body is None or not body.strip():
        return EmptyPayload()
    try:
        return classify(json.loads(body))
    except ValueError:
        return TextPayload(body)


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _render_field(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return _pretty(value)
    return json.dumps(value)


def _find_candidate(fields: Dict[str, Any]) -> Optional[Any]:
    for name in CANDIDATE_FIELDS:
        value = fields.get(name)
        if value is not None and value != "":
            return value
    return None


def _render_list(items: List[Any]) -> str:
    if not items:
        return NO_DATA

    first = items[0]
    if isinstance(first, dict):
        value = _find_candidate(first)
        if value is not None:
            return _render_field(value)

    lines = []
    for item in items:
        if isinstance(item, str):
            lines.append(item)
        elif isinstance(item, (dict, list)):
            lines.append(json.dumps(item, ensure_ascii=False))
        else:
            lines.append(json.dumps(item))
    return "\n".join(lines)


def _render_object(fields: Dict[str, Any]) -> str:
    value = _find_candidate(fields)
    if value is not None:
        return _render_field(value)
    return _pretty(fields)


def render(payload: Payload) -> str:
    """Render a classified payload; exhaustive over the payload variants."""
    if isinstance(payload, EmptyPayload):
        return NO_CONTENT
    if isinstance(payload, TextPayload):
        return payload.text
    if isinstance(payload, ListPayload):
        return _render_list(payload.items)
    if isinstance(payload, ObjectPayload):
        return _render_object(payload.fields)
    if isinstance(payload, ScalarPayload):
        return UNRECOGNIZED
    raise TypeError(f"Unknown payload variant: {type(payload).__name__}")


def normalize(value: Any) -> str:
    """
    Map an arbitrary decoded response to a display string.

    Args:
        value: A decoded JSON value, or an already classified payload

    Returns:
        The text to store as the assistant message
    """
    try:
        payload = value if isinstance(value, PAYLOAD_TYPES) else classify(value)
        return render(payload)
    except Exception:
        return FORMAT_ERROR
