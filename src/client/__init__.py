"""Outbound side: send messages through the Fonnte gateway."""

from src.client.client import FonnteClient, build_send_body
from src.client.errors import format_error
from src.client.validation import (
    MessageValidationError,
    serialize_buttons,
    serialize_list,
    validate_phone_number,
)

__all__ = [
    "FonnteClient",
    "MessageValidationError",
    "build_send_body",
    "format_error",
    "serialize_buttons",
    "serialize_list",
    "validate_phone_number",
]
