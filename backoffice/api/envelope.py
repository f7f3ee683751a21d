"""Unwrapping of list responses.

The back-office API serializes collections with reference tracking, so a list
can arrive bare (``[...]``), wrapped (``{"$values": [...]}``), or nested in a
paging object (``{"items": {"$values": [...]}, ...}``).
"""

from __future__ import annotations

from typing import Any

from backoffice.core.errors import FetchError

VALUES_KEY = "$values"


class EnvelopeError(ValueError):
    pass


def unwrap_values(data: Any) -> list[Any]:
    """Return the array carried by ``data``.

    Accepts a bare list, ``{"$values": [...]}``, ``{"items": <either>}`` or an
    object holding exactly one array field. Anything else raises
    ``EnvelopeError``.
    """
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        raise EnvelopeError(f"Expected an array or an envelope, got {type(data).__name__}")
    if VALUES_KEY in data:
        values = data[VALUES_KEY]
        if isinstance(values, list):
            return values
        if isinstance(values, dict):
            return list(values.values())
        raise EnvelopeError(f"{VALUES_KEY} is not an array")
    if "items" in data:
        return unwrap_values(data["items"])
    arrays = [value for value in data.values() if isinstance(value, list)]
    if len(arrays) == 1:
        return arrays[0]
    raise EnvelopeError("No enveloping array field found")


def unwrap_single(data: Any) -> dict[str, Any]:
    """Return the object of a single-entity answer, which may also be enveloped."""
    if isinstance(data, dict) and VALUES_KEY not in data:
        return data
    try:
        values = unwrap_values(data)
    except EnvelopeError as exc:
        raise FetchError("Format de réponse invalide.") from exc
    if not values or not isinstance(values[0], dict):
        raise FetchError("Format de réponse invalide.")
    return values[0]


def unwrap_collection(data: Any) -> list[Any]:
    """Like ``unwrap_values`` but converts a malformed shape into ``FetchError``."""
    try:
        return unwrap_values(data)
    except EnvelopeError as exc:
        raise FetchError("Format de réponse invalide : attendu un tableau.") from exc
