"""Command-line interface for inspecting and watching an IMAP account.

What:
  Provide a Typer-based entry point exposing the ``capabilities``, ``status``,
  and ``watch`` commands on top of :class:`~imapsession.imap.client.ImapSession`.

Why:
  Operators need a quick way to check what a server advertises, how full a
  mailbox is, and whether push notifications arrive, without writing code.

How:
  Each command builds an :class:`ImapConfig` from options (credentials may come
  from ``IMAPSESSION_USERNAME``/``IMAPSESSION_PASSWORD``), falls back to the
  runtime configuration for everything else, and runs the session as a context
  manager. ``watch`` subscribes to push-mode events and prints one JSON object
  per event until interrupted or until ``--duration`` elapses.

Interfaces:
  ``app`` (Typer application), ``capabilities``, ``status``, ``watch``.

Invariants & Safety:
  - Exit codes follow shell expectations (``0`` success, ``1`` failure).
  - Passwords are read from options or the environment and never echoed.
"""
from __future__ import annotations

import dataclasses
import json
import logging
import threading
from typing import Any, Optional

import typer

from .config.loader import ConfigLoadError, load_runtime_config
from .errors import ImapSessionError
from .imap.client import ImapConfig, ImapSession
from .models import EventKind, IdleErrorEvent, IdleMessageEvent

app = typer.Typer(help="IMAP session engine utilities")

LOGGER = logging.getLogger("imapsession.cli")

_HOST = typer.Option(None, "--host", help="IMAP server host (defaults to config.yaml)")
_PORT = typer.Option(None, "--port", help="IMAP server port")
_SSL = typer.Option(None, "--ssl/--no-ssl", help="Connect with TLS")
_USERNAME = typer.Option(None, "--username", envvar="IMAPSESSION_USERNAME", help="Login name")
_PASSWORD = typer.Option(
    None, "--password", envvar="IMAPSESSION_PASSWORD", help="Password or token", show_default=False
)


def _build_config(
    host: Optional[str],
    port: Optional[int],
    ssl: Optional[bool],
    username: Optional[str],
    password: Optional[str],
) -> ImapConfig:
    try:
        load_runtime_config(required=False)
    except ConfigLoadError as exc:
        LOGGER.error("runtime_load_failed: %s", exc)
        raise typer.Exit(code=1) from exc
    return ImapConfig(host=host, port=port, ssl=ssl, username=username, password=password)


def _event_payload(kind: EventKind, event: Any) -> dict[str, Any]:
    if isinstance(event, IdleMessageEvent):
        return {"event": kind.value, "count": event.message_count, "uid": event.message_uid}
    if isinstance(event, IdleErrorEvent):
        return {"event": kind.value, "error": str(event.exception)}
    return {"event": kind.value}


@app.command("capabilities")
def capabilities(
    host: Optional[str] = _HOST,
    port: Optional[int] = _PORT,
    ssl: Optional[bool] = _SSL,
    username: Optional[str] = _USERNAME,
    password: Optional[str] = _PASSWORD,
) -> None:
    """Print the server's capabilities, one per line."""

    config = _build_config(host, port, ssl, username, password)
    try:
        with ImapSession(config) as session:
            names = sorted(session.capabilities())
    except (ImapSessionError, ValueError) as exc:
        LOGGER.error("capabilities_failed error=%s", exc)
        raise typer.Exit(code=1) from exc
    for name in names:
        typer.echo(name)


@app.command("status")
def status(
    mailbox: Optional[str] = typer.Option(None, "--mailbox", help="Mailbox to inspect (default mailbox when omitted)"),
    host: Optional[str] = _HOST,
    port: Optional[int] = _PORT,
    ssl: Optional[bool] = _SSL,
    username: Optional[str] = _USERNAME,
    password: Optional[str] = _PASSWORD,
) -> None:
    """Print message counters and storage usage of a mailbox as JSON."""

    config = _build_config(host, port, ssl, username, password)
    try:
        with ImapSession(config) as session:
            result = session.get_status(mailbox)
    except (ImapSessionError, ValueError) as exc:
        LOGGER.error("status_failed mailbox=%s error=%s", mailbox, exc)
        raise typer.Exit(code=1) from exc
    typer.echo(json.dumps(dataclasses.asdict(result), sort_keys=True))


@app.command("watch")
def watch(
    mailbox: Optional[str] = typer.Option(None, "--mailbox", help="Mailbox to watch (default mailbox when omitted)"),
    host: Optional[str] = _HOST,
    port: Optional[int] = _PORT,
    ssl: Optional[bool] = _SSL,
    username: Optional[str] = _USERNAME,
    password: Optional[str] = _PASSWORD,
    duration: Optional[float] = typer.Option(
        None, help="Stop after this many seconds instead of waiting for Ctrl-C"
    ),
) -> None:
    """Stream push-mode events from a mailbox as JSON lines."""

    config = _build_config(host, port, ssl, username, password)
    if mailbox:
        config.default_mailbox = mailbox
    done = threading.Event()
    lock = threading.Lock()

    def printer(kind: EventKind):
        def handle(event: Any) -> None:
            with lock:
                typer.echo(json.dumps(_event_payload(kind, event), sort_keys=True))

        return handle

    try:
        with ImapSession(config) as session:
            session.subscribe(EventKind.IDLE_ERROR, printer(EventKind.IDLE_ERROR))
            session.subscribe(EventKind.NEW_MESSAGE, printer(EventKind.NEW_MESSAGE))
            session.subscribe(EventKind.MESSAGE_DELETED, printer(EventKind.MESSAGE_DELETED))
            LOGGER.info("watch_started mailbox=%s", session.default_mailbox)
            done.wait(duration)
    except KeyboardInterrupt:
        LOGGER.info("watch_stopped")
        raise typer.Exit(code=0) from None
    except (ImapSessionError, ValueError) as exc:
        LOGGER.error("watch_failed error=%s", exc)
        raise typer.Exit(code=1) from exc


def main() -> None:
    """Execute the Typer application entry point."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
