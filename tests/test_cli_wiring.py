"""CLI wiring tests ensuring Typer commands drive the session correctly.

What:
  Validate the ``capabilities``, ``status`` and ``watch`` commands with the
  session replaced by a stub, covering output format, credential lookup from
  the environment, and failure exit codes.

How:
  Use :class:`typer.testing.CliRunner` to invoke the commands with
  ``imapsession.cli.ImapSession`` monkeypatched to a recording stub.
"""
from __future__ import annotations

import json
from typing import Any, List

import pytest
from typer.testing import CliRunner

from imapsession.cli import app
from imapsession.errors import InvalidCredentials
from imapsession.models import EventKind, IdleMessageEvent, MailboxStatus


runner = CliRunner()


class _StubSession:
    """Context-managed stand-in recording how the CLI uses the session."""

    instances: List["_StubSession"] = []
    fail_with: Any = None

    def __init__(self, config) -> None:
        self.config = config
        self.subscriptions: List[EventKind] = []
        self.default_mailbox = config.default_mailbox
        _StubSession.instances.append(self)

    def __enter__(self) -> "_StubSession":
        if _StubSession.fail_with is not None:
            raise _StubSession.fail_with
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def capabilities(self):
        return frozenset({"IMAP4REV1", "IDLE"})

    def get_status(self, mailbox):
        self.requested_mailbox = mailbox
        return MailboxStatus(messages=12, unread=3, used_storage=1024, free_storage=2048)

    def subscribe(self, kind, handler) -> None:
        self.subscriptions.append(kind)
        if kind is EventKind.NEW_MESSAGE:
            handler(IdleMessageEvent(message_count=5, message_uid=42, session=self))


@pytest.fixture(autouse=True)
def stub_session(monkeypatch: pytest.MonkeyPatch):
    _StubSession.instances = []
    _StubSession.fail_with = None
    monkeypatch.setattr("imapsession.cli.ImapSession", _StubSession)
    return _StubSession


def test_capabilities_prints_sorted_names(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IMAPSESSION_USERNAME", "alice")
    monkeypatch.setenv("IMAPSESSION_PASSWORD", "secret")

    result = runner.invoke(app, ["capabilities"])

    assert result.exit_code == 0
    assert result.stdout.split() == ["IDLE", "IMAP4REV1"]
    config = _StubSession.instances[0].config
    assert (config.username, config.password) == ("alice", "secret")
    assert config.host == "imap.example.test"


def test_status_prints_json(monkeypatch: pytest.MonkeyPatch) -> None:
    result = runner.invoke(app, ["status", "--mailbox", "Archive", "--host", "mail.local", "--port", "1143"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {
        "messages": 12,
        "unread": 3,
        "used_storage": 1024,
        "free_storage": 2048,
    }
    session = _StubSession.instances[0]
    assert session.requested_mailbox == "Archive"
    assert (session.config.host, session.config.port) == ("mail.local", 1143)


def test_watch_subscribes_and_prints_events() -> None:
    result = runner.invoke(app, ["watch", "--mailbox", "Alerts", "--duration", "0"])

    assert result.exit_code == 0
    session = _StubSession.instances[0]
    assert session.config.default_mailbox == "Alerts"
    assert set(session.subscriptions) == {
        EventKind.IDLE_ERROR,
        EventKind.NEW_MESSAGE,
        EventKind.MESSAGE_DELETED,
    }
    assert json.loads(result.stdout.strip()) == {"event": "new_message", "count": 5, "uid": 42}


def test_session_failure_exits_with_one(stub_session) -> None:
    stub_session.fail_with = InvalidCredentials("NO", "bad password", "LOGIN")

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 1
