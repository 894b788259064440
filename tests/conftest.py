"""Shared test fixtures for fonnte-wa."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.audit.logger import AuditLogger
from src.models import (
    AuditEvent,
    AuditEventType,
    ClientConfig,
    OutboundMessage,
    RiskLevel,
    WebhookConfig,
)

TEST_API_KEY = "test-api-key"
TEST_BASE_URL = "https://gateway.test"
VALID_TARGET = "628123456789"


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def mock_http() -> Iterator[AsyncMock]:
    """Patch httpx.AsyncClient inside the client module; yields the client mock.

    Tests set ``mock_http.request.return_value`` (or ``side_effect``).
    """
    with patch("src.client.client.httpx.AsyncClient") as mock_client_cls:
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        mock_client_cls.return_value = mock_client
        mock_client.cls = mock_client_cls
        yield mock_client


# --- Factory functions for test data ---


def make_response(
    status_code: int = 200,
    json: Any = None,
    text: str | None = None,
    method: str = "POST",
    path: str = "/send",
) -> httpx.Response:
    """Build a real httpx.Response bound to a request so raise_for_status works."""
    request = httpx.Request(method, f"{TEST_BASE_URL}{path}")
    if text is not None:
        return httpx.Response(status_code, text=text, request=request)
    return httpx.Response(status_code, json=json, request=request)


def make_client_config(**kwargs: Any) -> ClientConfig:
    defaults: dict[str, Any] = {
        "api_key": TEST_API_KEY,
        "base_url": TEST_BASE_URL,
    }
    defaults.update(kwargs)
    return ClientConfig(**defaults)


def make_outbound_message(**kwargs: Any) -> OutboundMessage:
    defaults: dict[str, Any] = {
        "target": VALID_TARGET,
        "text": "hello",
    }
    defaults.update(kwargs)
    return OutboundMessage(**defaults)


def make_webhook_config(**kwargs: Any) -> WebhookConfig:
    defaults: dict[str, Any] = {
        "port": 0,
        "path": "/webhook/fonnte",
        "host": "127.0.0.1",
    }
    defaults.update(kwargs)
    return WebhookConfig(**defaults)


def make_audit_event(**kwargs: Any) -> AuditEvent:
    defaults: dict[str, Any] = {
        "event_type": AuditEventType.WEBHOOK_AUTH_FAILURE,
        "action": "POST /webhook",
        "result": "rejected",
        "risk_level": RiskLevel.HIGH,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)
