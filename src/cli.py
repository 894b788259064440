"""Click CLI for sending messages and running the webhook receiver."""

from __future__ import annotations

import asyncio
import logging

import click

from src.audit.logger import AuditLogger
from src.client.client import FonnteClient
from src.models import (
    DEFAULT_BASE_URL,
    DEFAULT_TIMEOUT_SECONDS,
    ClientConfig,
    InboundMessage,
    OutboundMessage,
    OutboundResult,
    WebhookConfig,
)
from src.webhook.receiver import WebhookReceiver


def _client(ctx: click.Context) -> FonnteClient:
    options = ctx.obj
    if not options["api_key"]:
        raise click.UsageError("An API key is required (--api-key or FONNTE_API_KEY).")
    config = ClientConfig(
        api_key=options["api_key"],
        base_url=options["base_url"],
        timeout=options["timeout"],
        device_id=options["device"],
    )
    return FonnteClient(config, audit_logger=options["audit_logger"])


def _echo_result(result: OutboundResult) -> None:
    click.echo(result.model_dump_json(indent=2, exclude_none=True))
    if not result.succeeded:
        raise SystemExit(1)


@click.group()
@click.option("--api-key", envvar="FONNTE_API_KEY", default=None, help="Fonnte API token.")
@click.option("--base-url", envvar="FONNTE_BASE_URL", default=DEFAULT_BASE_URL, show_default=True)
@click.option(
    "--timeout", envvar="FONNTE_TIMEOUT", type=float,
    default=DEFAULT_TIMEOUT_SECONDS, show_default=True, help="Request timeout in seconds.",
)
@click.option("--device", envvar="FONNTE_DEVICE_ID", default=None, help="Default device ID.")
@click.option("--audit-log", default=None, help="Audit log file path.")
@click.option(
    "--log-level", default="INFO", show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
@click.pass_context
def cli(
    ctx: click.Context,
    api_key: str | None,
    base_url: str,
    timeout: float,
    device: str | None,
    audit_log: str | None,
    log_level: str,
) -> None:
    """Fonnte WhatsApp gateway client and webhook receiver."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj.update(
        api_key=api_key,
        base_url=base_url,
        timeout=timeout,
        device=device,
        audit_logger=AuditLogger.from_env(audit_log) if audit_log else None,
    )


@cli.command()
@click.argument("target")
@click.argument("text", default="")
@click.option("--url", default=None, help="Media or document URL.")
@click.option("--filename", default=None, help="Document filename (requires --url).")
@click.option("--footer", default=None)
@click.option("--typing", is_flag=True, help="Show the typing indicator first.")
@click.pass_context
def send(
    ctx: click.Context,
    target: str,
    text: str,
    url: str | None,
    filename: str | None,
    footer: str | None,
    typing: bool,
) -> None:
    """Send TEXT to TARGET, as a media or document message when --url is given."""
    client = _client(ctx)
    msg = OutboundMessage(
        target=target,
        text=text,
        media_url=url,
        filename=filename,
        footer=footer,
        typing=typing or None,
    )
    if filename:
        result = asyncio.run(client.send_document(msg))
    elif url:
        result = asyncio.run(client.send_media(msg))
    else:
        result = asyncio.run(client.send_message(msg))
    _echo_result(result)


@cli.command("device-status")
@click.pass_context
def device_status(ctx: click.Context) -> None:
    """Show the gateway's view of the configured device."""
    _echo_result(asyncio.run(_client(ctx).get_device_status()))


@cli.command()
@click.option("--port", envvar="FONNTE_WEBHOOK_PORT", type=int, default=3000, show_default=True)
@click.option("--path", envvar="FONNTE_WEBHOOK_PATH", default="/webhook", show_default=True)
@click.option("--host", envvar="FONNTE_WEBHOOK_HOST", default="0.0.0.0", show_default=True)
@click.option("--secret", envvar="FONNTE_WEBHOOK_SECRET", default=None)
@click.pass_context
def serve(
    ctx: click.Context, port: int, path: str, host: str, secret: str | None,
) -> None:
    """Run the webhook receiver and print every inbound message as JSON."""
    config = WebhookConfig(port=port, path=path, host=host, secret=secret or None)
    receiver = WebhookReceiver(config, audit_logger=ctx.obj["audit_logger"])

    def echo(message: InboundMessage) -> None:
        click.echo(message.model_dump_json(exclude={"raw"}, exclude_none=True))

    receiver.on_message(echo)
    asyncio.run(_run_until_closed(receiver))


async def _run_until_closed(receiver: WebhookReceiver) -> None:
    await receiver.start()
    try:
        await receiver.wait_closed()
    finally:
        await receiver.stop()


if __name__ == "__main__":
    cli()
