"""Fonnte gateway client.

Every message variant is a thin precondition check over ``send_message`` so
request shaping and error shaping are identical whichever entry point is used.
No call on this client raises; failures come back as ``OutboundResult``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.audit.logger import AuditLogger
from src.client.errors import format_error, validation_failure
from src.client.validation import (
    MessageValidationError,
    serialize_buttons,
    serialize_list,
    validate_phone_number,
)
from src.models import (
    AuditEvent,
    AuditEventType,
    ClientConfig,
    OutboundMessage,
    OutboundResult,
    RiskLevel,
)

logger = logging.getLogger(__name__)

SEND_PATH = "/send"
DEVICE_PATH = "/device"


def build_send_body(
    msg: OutboundMessage, target: str, default_device: str | None = None,
) -> dict[str, Any]:
    """Build the /send form for one message; absent options are left out."""
    body: dict[str, Any] = {"target": target, "message": msg.text}

    device = msg.device_id or default_device
    if device:
        body["device"] = device

    optional: dict[str, Any] = {
        "url": msg.media_url,
        "schedule": (
            int(msg.scheduled_at.timestamp()) if msg.scheduled_at else None
        ),
        "delay": (
            int(msg.delay.total_seconds()) if msg.delay is not None else None
        ),
        "typing": msg.typing,
        "read": msg.read_receipt,
        "online": msg.online,
        "filename": msg.filename,
        "footer": msg.footer,
        "header": msg.header,
    }
    body.update({key: value for key, value in optional.items() if value is not None})

    if msg.button_menu is not None:
        body["button"] = serialize_buttons(msg.button_menu)
    if msg.list_menu is not None:
        body["list"] = serialize_list(msg.list_menu)
    return body


def _response_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class FonnteClient:
    """Async client for the Fonnte WhatsApp HTTP API."""

    def __init__(
        self,
        config: ClientConfig,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._config = config
        self._audit = audit_logger

    @property
    def config(self) -> ClientConfig:
        return self._config

    def _url(self, path: str) -> str:
        return f"{self._config.base_url.rstrip('/')}{path}"

    async def send_message(self, msg: OutboundMessage) -> OutboundResult:
        """Send a text message, or any variant once its fields are checked."""
        try:
            target = validate_phone_number(msg.target)
        except MessageValidationError as exc:
            return validation_failure(str(exc))

        try:
            body = build_send_body(msg, target, self._config.device_id)
        except (TypeError, ValueError, OverflowError) as exc:
            return format_error(exc)

        return await self._request(
            "POST",
            SEND_PATH,
            json=body,
            default_message="Message sent successfully",
            target=target,
        )

    async def send_media(self, msg: OutboundMessage) -> OutboundResult:
        if not msg.media_url:
            return validation_failure("URL is required for media messages")
        return await self.send_message(msg)

    async def send_document(self, msg: OutboundMessage) -> OutboundResult:
        if not msg.media_url:
            return validation_failure("URL is required for document messages")
        if not msg.filename:
            return validation_failure("Filename is required for document messages")
        return await self.send_message(msg)

    async def send_buttons(self, msg: OutboundMessage) -> OutboundResult:
        if msg.button_menu is None or not msg.button_menu.buttons:
            return validation_failure(
                "Button template is required for button messages",
            )
        return await self.send_message(msg)

    async def send_list(self, msg: OutboundMessage) -> OutboundResult:
        if msg.list_menu is None or not msg.list_menu.sections:
            return validation_failure("List template is required for list messages")
        return await self.send_message(msg)

    async def get_device_status(self, device_id: str | None = None) -> OutboundResult:
        """Query the connection status of the configured (or given) device."""
        device = device_id or self._config.device_id
        return await self._request(
            "GET",
            DEVICE_PATH,
            params={"device": device} if device else None,
            default_message="Device status retrieved",
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        default_message: str,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        target: str | None = None,
    ) -> OutboundResult:
        headers = {
            "Authorization": self._config.api_key,
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout) as client:
                response = await client.request(
                    method,
                    self._url(path),
                    json=json,
                    params=params,
                    headers=headers,
                )
                response.raise_for_status()
        except Exception as exc:  # every failure is reported, never raised
            result = format_error(exc)
            logger.warning(
                "%s %s failed (%s): %s",
                method, path, result.error_kind.value if result.error_kind else "-",
                result.message,
            )
            await self._log_audit(
                AuditEventType.MESSAGE_FAILED, f"{method} {path}", "failure",
                RiskLevel.MEDIUM, target, result.status_code,
            )
            return result

        payload = _response_payload(response)
        message = payload.get("message") if isinstance(payload, dict) else None
        await self._log_audit(
            AuditEventType.MESSAGE_SENT, f"{method} {path}", "success",
            RiskLevel.INFO, target, response.status_code,
        )
        # A 2xx reply counts as delivered to the gateway, whatever "status" says.
        return OutboundResult(
            succeeded=True,
            message=str(message) if message else default_message,
            payload=payload,
            status_code=response.status_code,
        )

    async def _log_audit(
        self,
        event_type: AuditEventType,
        action: str,
        result: str,
        risk_level: RiskLevel,
        target: str | None,
        status_code: int | None,
    ) -> None:
        if not self._audit:
            return
        await self._audit.record(AuditEvent(
            event_type=event_type,
            action=action,
            result=result,
            risk_level=risk_level,
            details={"target": target, "status_code": status_code},
        ))
