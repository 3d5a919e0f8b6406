"""End-to-end session scenarios against a scripted TCP server.

What:
  Run the real :class:`ImapSession` over a localhost socket: log in, pick up
  capabilities from the login exchange, enter push mode, receive an
  ``EXISTS`` notification, and log out.

Why:
  Unit tests use an in-memory transport; this suite checks that the socket
  transport, the blocking reader, and teardown by socket shutdown cooperate.

How:
  A background thread accepts one connection and answers each command from a
  small script. It pushes ``* 5 EXISTS`` right after the first ``IDLE``.
"""

import socket
import threading
from typing import List

from imapsession.imap.client import ImapConfig, ImapSession
from imapsession.models import EventKind


class _ScriptedServer(threading.Thread):
    def __init__(self) -> None:
        super().__init__(name="scripted-imap-server", daemon=True)
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(1)
        self._listener.settimeout(10)
        self.port = self._listener.getsockname()[1]
        self.commands: List[str] = []

    def run(self) -> None:
        conn, _ = self._listener.accept()
        with conn, conn.makefile("rb") as reader:

            def send(line: str) -> None:
                conn.sendall(line.encode("utf-8") + b"\r\n")

            send("* OK scripted server ready")
            idle_tag = None
            pushed = False
            for raw in reader:
                line = raw.decode("utf-8").rstrip("\r\n")
                if line == "DONE":
                    send(f"{idle_tag} OK IDLE terminated")
                    idle_tag = None
                    continue
                tag, _, command = line.partition(" ")
                self.commands.append(command)
                verb = command.split(" ", 1)[0].upper()
                if verb == "LOGIN":
                    send("* CAPABILITY IMAP4rev1 IDLE")
                    send(f"{tag} OK LOGIN completed")
                elif verb == "IDLE":
                    idle_tag = tag
                    send("+ idling")
                    if not pushed:
                        pushed = True
                        send("* 5 EXISTS")
                elif verb == "STATUS":
                    send('* STATUS "INBOX" (UIDNEXT 43)')
                    send(f"{tag} OK STATUS completed")
                elif verb == "LOGOUT":
                    send("* BYE logging out")
                    send(f"{tag} OK LOGOUT completed")
                    break
                else:
                    send(f"{tag} OK {verb} completed")
        self._listener.close()


def test_login_push_and_logout_over_tcp() -> None:
    server = _ScriptedServer()
    server.start()
    received = []
    arrived = threading.Event()

    def on_new_message(event) -> None:
        received.append(event)
        arrived.set()

    config = ImapConfig(host="127.0.0.1", port=server.port, ssl=False, username="alice", password="secret")
    with ImapSession(config) as session:
        assert session.supports("IDLE")
        session.subscribe(EventKind.NEW_MESSAGE, on_new_message)
        assert arrived.wait(10)

    server.join(10)
    assert not server.is_alive()
    assert len(received) == 1
    assert received[0].message_count == 5
    assert received[0].message_uid == 42
    assert "CAPABILITY" not in server.commands
    assert server.commands[0] == 'LOGIN "alice" "secret"'
    assert server.commands[-1] == "LOGOUT"
