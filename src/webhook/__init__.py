"""Inbound side: receive and dispatch Fonnte webhook callbacks."""

from src.webhook.dispatcher import HandlerRegistry, MessageHandler
from src.webhook.normalize import FIELD_ALIASES, NormalizationError, normalize_payload
from src.webhook.receiver import (
    ReceiverAlreadyStartedError,
    WebhookReceiver,
    create_webhook_app,
)

__all__ = [
    "FIELD_ALIASES",
    "HandlerRegistry",
    "MessageHandler",
    "NormalizationError",
    "ReceiverAlreadyStartedError",
    "WebhookReceiver",
    "create_webhook_app",
    "normalize_payload",
]
