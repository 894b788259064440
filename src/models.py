"""Shared Pydantic data models for fonnte-wa."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_BASE_URL = "https://api.fonnte.com"
DEFAULT_TIMEOUT_SECONDS = 30.0

# --- Enums ---


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    SERVER = "server"
    NO_RESPONSE = "no_response"
    SETUP = "setup"


class AuditEventType(str, Enum):
    MESSAGE_SENT = "message_sent"
    MESSAGE_FAILED = "message_failed"
    WEBHOOK_RECEIVED = "webhook_received"
    WEBHOOK_AUTH_FAILURE = "webhook_auth_failure"
    WEBHOOK_ERROR = "webhook_error"
    HANDLER_FAILURE = "handler_failure"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


def _env_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


# --- Configuration ---


class ClientConfig(BaseModel):
    """Gateway client settings. The API key is sent verbatim as Authorization."""

    model_config = ConfigDict(frozen=True)

    api_key: str = Field(min_length=1, repr=False)
    base_url: str = DEFAULT_BASE_URL
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    device_id: str | None = None

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Create ClientConfig from FONNTE_* environment variables."""
        return cls(
            api_key=os.environ["FONNTE_API_KEY"],
            base_url=os.environ.get("FONNTE_BASE_URL", DEFAULT_BASE_URL),
            timeout=float(os.environ.get("FONNTE_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)),
            device_id=os.environ.get("FONNTE_DEVICE_ID") or None,
        )


class WebhookConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    port: int = Field(ge=0, le=65535)  # 0 binds an ephemeral port
    path: str
    secret: str | None = Field(default=None, repr=False)
    host: str = "0.0.0.0"
    wait_for_handlers: bool = False

    @field_validator("path")
    @classmethod
    def _path_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("path must start with '/'")
        return value

    @classmethod
    def from_env(cls) -> WebhookConfig:
        """Create WebhookConfig from FONNTE_WEBHOOK_* environment variables."""
        return cls(
            port=int(os.environ["FONNTE_WEBHOOK_PORT"]),
            path=os.environ.get("FONNTE_WEBHOOK_PATH", "/webhook"),
            secret=os.environ.get("FONNTE_WEBHOOK_SECRET") or None,
            host=os.environ.get("FONNTE_WEBHOOK_HOST", "0.0.0.0"),
            wait_for_handlers=_env_flag(
                os.environ.get("FONNTE_WEBHOOK_WAIT_FOR_HANDLERS"),
            ),
        )


# --- Interactive templates ---


class Button(BaseModel):
    model_config = ConfigDict(frozen=True)

    display: str
    id: str


class ButtonMenu(BaseModel):
    buttons: list[Button] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self) -> ButtonMenu:
        ids = [b.id for b in self.buttons]
        if len(ids) != len(set(ids)):
            raise ValueError("button ids must be unique within a menu")
        return self


class ListRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    id: str
    description: str | None = None


class ListSection(BaseModel):
    title: str
    rows: list[ListRow] = Field(default_factory=list)


class ListMenu(BaseModel):
    title: str
    sections: list[ListSection] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self) -> ListMenu:
        ids = [row.id for section in self.sections for row in section.rows]
        if len(ids) != len(set(ids)):
            raise ValueError("row ids must be unique within a list menu")
        return self


# --- Outbound ---


class OutboundMessage(BaseModel):
    """A single message request. Built per call, never persisted."""

    target: str
    text: str = ""
    media_url: str | None = None
    device_id: str | None = None
    scheduled_at: datetime | None = None
    delay: timedelta | None = None
    typing: bool | None = None
    read_receipt: bool | None = None
    online: bool | None = None
    filename: str | None = None
    footer: str | None = None
    header: str | None = None
    button_menu: ButtonMenu | None = None
    list_menu: ListMenu | None = None


class OutboundResult(BaseModel):
    """Uniform result of every send call, success or failure."""

    succeeded: bool
    message: str
    payload: Any = None
    error: Any = None
    status_code: int | None = None
    error_kind: ErrorKind | None = None


# --- Inbound ---


def _now() -> datetime:
    return datetime.now(UTC)


class InboundMessage(BaseModel):
    """Normalized webhook message, whatever dialect the gateway posted."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    device_id: str | None = None
    sender: str | None = None
    text: str | None = None
    message_id: str | None = None
    message_type: str = "text"
    is_group: bool = False
    group_id: str | None = None
    group_name: str | None = None
    button_id: str | None = None
    list_id: str | None = None
    media_url: str | None = None
    caption: str | None = None
    filename: str | None = None
    received_at: datetime = Field(default_factory=_now)
    raw: Any = None


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    action: str
    result: str  # "success" | "failure" | "rejected"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
