"""Inbound payload normalization.

Gateways and their versions disagree on key names (``sender`` vs ``from``,
``url`` vs ``media_url`` ...). ``FIELD_ALIASES`` lists, per normalized field,
the raw keys to try in priority order. Supporting a new payload dialect means
adding keys here, nothing else.

For flag fields such as ``is_group`` any falsy value (``false``, ``0``) also
falls through to the next key, so ``{"is_group": false, "isGroup": true}``
is a group message.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from src.models import InboundMessage

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "device_id": ("device_id", "deviceId"),
    "sender": ("sender", "from", "phone"),
    "text": ("message", "text", "body"),
    "message_id": ("id", "message_id"),
    "message_type": ("type",),
    "is_group": ("is_group", "isGroup"),
    "group_id": ("group_id", "groupId"),
    "group_name": ("group_name", "groupName"),
    "button_id": ("button_id", "buttonId", "button"),
    "list_id": ("list_id", "listId", "list"),
    "media_url": ("url", "media_url", "mediaUrl"),
    "caption": ("caption",),
    "filename": ("filename", "file_name"),
    "received_at": ("timestamp",),
}


_FLAG_FIELDS = frozenset({"is_group"})


class NormalizationError(Exception):
    """Raised when a webhook body cannot be turned into an InboundMessage."""


def _first_present(
    data: Mapping[str, Any], keys: tuple[str, ...], truthy: bool = False,
) -> Any:
    for key in keys:
        value = data.get(key)
        if truthy and not value:
            continue
        if value is not None and value != "":
            return value
    return None


def resolve_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    """Pick a value for every normalized field that the payload carries."""
    resolved: dict[str, Any] = {}
    for field_name, keys in FIELD_ALIASES.items():
        value = _first_present(data, keys, truthy=field_name in _FLAG_FIELDS)
        if value is not None:
            resolved[field_name] = value
    return resolved


def normalize_payload(data: Any) -> InboundMessage:
    """Build an InboundMessage from a raw webhook body.

    Missing ``type`` defaults to "text", missing group flag to False and a
    missing timestamp to the time of receipt. The body is kept as ``raw``.
    """
    if not isinstance(data, Mapping):
        raise NormalizationError(
            f"Expected an object payload, got {type(data).__name__}",
        )
    try:
        return InboundMessage(**resolve_fields(data), raw=data)
    except ValidationError as exc:
        raise NormalizationError(str(exc)) from exc
