"""Handler registry and concurrent fan-out for inbound messages."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from src.audit.logger import AuditLogger
from src.models import AuditEvent, AuditEventType, InboundMessage, RiskLevel

logger = logging.getLogger(__name__)

MessageHandler = Callable[[InboundMessage], Awaitable[None] | None]


class HandlerRegistry:
    """Append-only, ordered list of message handlers."""

    def __init__(self, audit_logger: AuditLogger | None = None) -> None:
        self._handlers: list[MessageHandler] = []
        self._audit = audit_logger

    def register(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    @property
    def handlers(self) -> tuple[MessageHandler, ...]:
        return tuple(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    async def dispatch(self, message: InboundMessage) -> int:
        """Run every handler concurrently; return how many of them failed.

        A failing handler is logged and never cancels or delays the others.
        """
        # Snapshot so a registration mid-dispatch does not change this fan-out.
        handlers = self.handlers
        if not handlers:
            return 0
        outcomes = await asyncio.gather(
            *(self._run(handler, message) for handler in handlers),
        )
        return outcomes.count(False)

    async def _run(self, handler: MessageHandler, message: InboundMessage) -> bool:
        try:
            result = handler(message)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            name = getattr(handler, "__qualname__", repr(handler))
            logger.exception("Webhook handler %s failed", name)
            await self._log_failure(name, exc, message)
            return False
        return True

    async def _log_failure(
        self, name: str, exc: Exception, message: InboundMessage,
    ) -> None:
        if not self._audit:
            return
        await self._audit.record(AuditEvent(
            event_type=AuditEventType.HANDLER_FAILURE,
            action=name,
            result="failure",
            risk_level=RiskLevel.MEDIUM,
            details={
                "error": type(exc).__name__,
                "sender": message.sender,
                "message_id": message.message_id,
            },
        ))
