"""Fonnte webhook receiver: one authenticated POST route plus /health.

The receiver owns a uvicorn server bound to a socket it creates itself, so a
busy port surfaces as ``OSError`` from ``start()`` and ``stop()`` releases the
port before returning.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import socket
from typing import Any

import uvicorn
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from src.audit.logger import AuditLogger
from src.models import AuditEvent, AuditEventType, RiskLevel, WebhookConfig
from src.webhook.dispatcher import HandlerRegistry, MessageHandler
from src.webhook.normalize import NormalizationError, normalize_payload

logger = logging.getLogger(__name__)

SECRET_HEADER = "x-webhook-secret"
HEALTH_PATH = "/health"

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")
_STARTUP_POLL_SECONDS = 0.01


class ReceiverAlreadyStartedError(RuntimeError):
    """Raised when start() is called on a receiver that is already listening."""


def _reply(status: bool, message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"status": status, "message": message}, status_code=status_code)


def _media_type(request: Request) -> str:
    return request.headers.get("content-type", "").split(";", 1)[0].strip().lower()


async def _read_payload(request: Request) -> Any:
    if _media_type(request) in _FORM_TYPES:
        form = await request.form()
        return dict(form)
    body = await request.body()
    if not body.strip():
        return {}
    return await request.json()


def create_webhook_app(
    config: WebhookConfig,
    registry: HandlerRegistry,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create the FastAPI app that authenticates, normalizes and fans out."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    secret = config.secret.encode() if config.secret else None

    async def audit(
        request: Request,
        event_type: AuditEventType,
        result: str,
        risk_level: RiskLevel,
        details: dict[str, object] | None = None,
    ) -> None:
        if not audit_logger:
            return
        await audit_logger.record(AuditEvent(
            event_type=event_type,
            source_ip=request.client.host if request.client else None,
            action=f"{request.method} {request.url.path}",
            result=result,
            risk_level=risk_level,
            details=details,
        ))

    @app.get(HEALTH_PATH)
    async def health() -> JSONResponse:
        return _reply(True, "Webhook server is running", 200)

    @app.post(config.path)
    async def receive(request: Request, background_tasks: BackgroundTasks) -> JSONResponse:
        if secret is not None:
            # Starlette decodes header bytes as latin-1; recover the raw bytes.
            provided = request.headers.get(SECRET_HEADER, "").encode("latin-1")
            if not hmac.compare_digest(provided, secret):
                await audit(
                    request, AuditEventType.WEBHOOK_AUTH_FAILURE, "rejected",
                    RiskLevel.HIGH, {"reason": "secret_mismatch"},
                )
                return _reply(False, "Unauthorized", 401)

        try:
            payload = await _read_payload(request)
            message = normalize_payload(payload)
        except (NormalizationError, ValueError, HTTPException) as exc:
            logger.error("Error processing webhook: %s", exc)
            await audit(
                request, AuditEventType.WEBHOOK_ERROR, "failure",
                RiskLevel.LOW, {"error": type(exc).__name__},
            )
            return _reply(False, "Error processing webhook", 500)

        await audit(
            request, AuditEventType.WEBHOOK_RECEIVED, "success", RiskLevel.INFO,
            {"sender": message.sender, "message_id": message.message_id},
        )
        if config.wait_for_handlers:
            await registry.dispatch(message)
        else:
            background_tasks.add_task(registry.dispatch, message)
        return _reply(True, "Webhook received", 200)

    return app


def _bind_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


class WebhookReceiver:
    """Listens for gateway callbacks and hands each message to every handler.

    Usage::

        receiver = WebhookReceiver(WebhookConfig(port=3000, path="/webhook"))
        receiver.on_message(handle)
        async with receiver:
            ...
    """

    def __init__(
        self,
        config: WebhookConfig,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._config = config
        self._registry = HandlerRegistry(audit_logger)
        self._app = create_webhook_app(config, self._registry, audit_logger)
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None
        self._socket: socket.socket | None = None

    @property
    def app(self) -> FastAPI:
        return self._app

    @property
    def config(self) -> WebhookConfig:
        return self._config

    @property
    def handlers(self) -> tuple[MessageHandler, ...]:
        return self._registry.handlers

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> int:
        """Port actually listened on; differs from config when port is 0."""
        if self._socket is None:
            return self._config.port
        return self._socket.getsockname()[1]

    def on_message(self, handler: MessageHandler) -> WebhookReceiver:
        self._registry.register(handler)
        return self

    async def start(self) -> None:
        """Bind and serve; returns once the listener accepts connections."""
        if self._server is not None:
            raise ReceiverAlreadyStartedError(
                f"Webhook receiver already listening on port {self.bound_port}",
            )

        sock = _bind_socket(self._config.host, self._config.port)
        server = uvicorn.Server(uvicorn.Config(self._app, log_config=None))
        task = asyncio.create_task(server.serve(sockets=[sock]))

        while not server.started:
            if task.done():
                sock.close()
                task.result()
                raise RuntimeError("Webhook server exited during startup")
            await asyncio.sleep(_STARTUP_POLL_SECONDS)

        self._server, self._task, self._socket = server, task, sock
        logger.info(
            "Fonnte webhook server running on port %d (path %s)",
            self.bound_port, self._config.path,
        )

    async def stop(self) -> None:
        """Shut the listener down and release its port. No-op when stopped."""
        if self._server is None or self._task is None:
            return

        self._server.should_exit = True
        try:
            await self._task
        finally:
            if self._socket is not None:
                self._socket.close()
            self._server = self._task = self._socket = None
        logger.info("Fonnte webhook server stopped")

    async def wait_closed(self) -> None:
        """Block until the server exits, e.g. after SIGINT or ``stop()``."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def __aenter__(self) -> WebhookReceiver:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
