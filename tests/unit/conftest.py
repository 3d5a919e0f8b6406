"""Pytest fixtures for unit tests driving the session over a scripted transport.

What:
  Make ``tests/unit`` importable and expose ``transport``/``session`` fixtures
  backed by :class:`ScriptedTransport`.

Why:
  Most tests need a connected, authenticated session whose server replies are
  controlled by the test. Building it once keeps the tests focused on the
  exchange under test.

How:
  Append the unit directory to ``sys.path`` for local imports, build a
  transport whose LOGIN reply advertises ``IDLE`` and ``QUOTA``, and yield an
  :class:`ImapSession` that is closed after the test so background threads
  never outlive it.

Interfaces:
  :func:`transport`, :func:`session` (pytest fixtures).
"""

import sys
from pathlib import Path

import pytest

from imapsession.imap.client import ImapConfig, ImapSession

UNIT_DIR = Path(__file__).resolve().parent
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

from fakes import ScriptedTransport

CAPABILITY_LINE = "* CAPABILITY IMAP4rev1 IDLE QUOTA AUTH=PLAIN"


@pytest.fixture
def transport() -> ScriptedTransport:
    transport = ScriptedTransport()
    transport.on("LOGIN", CAPABILITY_LINE, "{tag} OK LOGIN completed")
    return transport


@pytest.fixture
def session(transport: ScriptedTransport):
    """Yield a session logged in as ``alice`` over the scripted transport."""

    session = ImapSession(ImapConfig(username="alice", password="secret"), transport=transport)
    session.connect()
    session.login()
    try:
        yield session
    finally:
        session.close()
