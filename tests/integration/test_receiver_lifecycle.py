"""Lifecycle tests: the receiver binds a real socket and serves over TCP."""

from __future__ import annotations

import asyncio
import socket

import httpx
import pytest

from src.models import InboundMessage
from src.webhook.receiver import ReceiverAlreadyStartedError, WebhookReceiver
from tests.conftest import make_webhook_config


def _port_is_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        # Tolerate TIME_WAIT connections; only a live listener should block.
        probe.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            probe.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True


@pytest.mark.asyncio
async def test_start_serves_and_stop_releases_port() -> None:
    receiver = WebhookReceiver(make_webhook_config())
    await receiver.start()
    port = receiver.bound_port
    try:
        assert receiver.is_running
        assert port != 0
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.get(f"http://127.0.0.1:{port}/health")
        assert resp.status_code == 200
    finally:
        await receiver.stop()

    assert not receiver.is_running
    assert _port_is_free(port)


@pytest.mark.asyncio
async def test_stop_before_start_is_noop() -> None:
    receiver = WebhookReceiver(make_webhook_config())
    await receiver.stop()
    assert not receiver.is_running


@pytest.mark.asyncio
async def test_double_start_rejected() -> None:
    receiver = WebhookReceiver(make_webhook_config())
    await receiver.start()
    try:
        with pytest.raises(ReceiverAlreadyStartedError):
            await receiver.start()
    finally:
        await receiver.stop()


@pytest.mark.asyncio
async def test_restart_after_stop() -> None:
    receiver = WebhookReceiver(make_webhook_config())
    await receiver.start()
    await receiver.stop()
    await receiver.start()
    try:
        assert receiver.is_running
    finally:
        await receiver.stop()


@pytest.mark.asyncio
async def test_port_in_use_raises_from_start() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as holder:
        holder.bind(("127.0.0.1", 0))
        holder.listen()
        busy_port = holder.getsockname()[1]
        receiver = WebhookReceiver(make_webhook_config(port=busy_port))
        with pytest.raises(OSError):
            await receiver.start()
        assert not receiver.is_running


@pytest.mark.asyncio
async def test_context_manager_lifecycle() -> None:
    received: list[InboundMessage] = []
    receiver = WebhookReceiver(make_webhook_config()).on_message(received.append)

    async with receiver:
        url = f"http://127.0.0.1:{receiver.bound_port}/webhook/fonnte"
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.post(url, json={"sender": "628123456789", "message": "hi"})
        assert resp.status_code == 200

    assert not receiver.is_running
    assert received[0].text == "hi"


@pytest.mark.asyncio
async def test_acknowledgment_does_not_wait_for_slow_handler() -> None:
    release = asyncio.Event()
    finished: list[str] = []

    async def slow(msg: InboundMessage) -> None:
        await release.wait()
        finished.append(msg.text or "")

    receiver = WebhookReceiver(make_webhook_config()).on_message(slow)
    async with receiver:
        url = f"http://127.0.0.1:{receiver.bound_port}/webhook/fonnte"
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await asyncio.wait_for(
                client.post(url, json={"message": "later"}), timeout=5,
            )
        assert resp.status_code == 200
        assert finished == []
        release.set()
        for _ in range(100):
            if finished:
                break
            await asyncio.sleep(0.01)

    assert finished == ["later"]
