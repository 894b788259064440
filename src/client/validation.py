"""Request validation and template serialization for the gateway client."""

from __future__ import annotations

import json
import re
from typing import Any

from src.models import ButtonMenu, ListMenu

_NON_DIGITS = re.compile(r"[^0-9]")
_PHONE_DIGITS = re.compile(r"^[0-9]{10,15}$")

INVALID_PHONE_MESSAGE = (
    "Invalid phone number format. Must be 10-15 digits with country code."
)


class MessageValidationError(ValueError):
    """Raised when a message request fails a local precondition."""


def validate_phone_number(phone_number: str) -> str:
    """Strip separators and return the bare digits of a WhatsApp number.

    The cleaned number must hold 10-15 digits, country code included.
    """
    cleaned = _NON_DIGITS.sub("", phone_number)
    if not _PHONE_DIGITS.match(cleaned):
        raise MessageValidationError(INVALID_PHONE_MESSAGE)
    return cleaned


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def serialize_buttons(menu: ButtonMenu) -> str:
    """Encode buttons as the JSON array string the gateway expects."""
    return _compact([{"display": b.display, "id": b.id} for b in menu.buttons])


def serialize_list(menu: ListMenu) -> str:
    """Encode a list menu, sending an empty description for bare rows."""
    return _compact({
        "title": menu.title,
        "sections": [
            {
                "title": section.title,
                "rows": [
                    {
                        "title": row.title,
                        "description": row.description or "",
                        "id": row.id,
                    }
                    for row in section.rows
                ],
            }
            for section in menu.sections
        ],
    })
