"""Stateful IMAP session with push-mode aware command bracketing.

What:
  Expose the connection-level operations of an IMAP4rev1 client: connect and
  authenticate, mailbox management, status and quota, UID based message
  retrieval and mutation, and push-mode event subscriptions.

Why:
  Every public call has to coexist with the background IDLE reader on a single
  connection. Centralising the "pause push mode, run, resume" bracket and the
  session caches (capabilities, selected mailbox) in one class keeps that rule
  from leaking into callers.

How:
  :class:`ImapConfig` carries connection settings with runtime configuration
  fallbacks. :class:`ImapSession` owns the transport, a
  :class:`~imapsession.imap.engine.CommandEngine`, and an
  :class:`~imapsession.imap.idle.IdleController`. Public operations run inside
  :meth:`ImapSession._exclusive`, which serialises foreground callers with a
  re-entrant lock and pauses push mode for the duration of the call.

Interfaces:
  :class:`ImapConfig`, :class:`ImapSession`.

Invariants & Safety:
  - All message operations are UID based; sequence numbers are never sent.
  - The selected-mailbox cache changes only after a successful ``SELECT``.
  - The capability cache is filled once per connection and never invalidated.
  - Credentials are never logged.
"""
from __future__ import annotations

import contextlib
import re
import threading
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple, Union

from .. import auth
from ..config.loader import get_runtime_config
from ..errors import (
    CapabilityUnsupported,
    ImapSessionError,
    InvalidCredentials,
    MessageNotFound,
    NotAuthenticated,
    ProtocolViolation,
    ServerRejected,
    TransportError,
)
from ..models import (
    AuthMethod,
    EventKind,
    FetchOptions,
    IdleErrorEvent,
    IdleMessageEvent,
    MailboxQuota,
    MailboxStatus,
    MessageFlag,
)
from ..transport import Transport, open_transport
from ..utils.logging import JsonLogger, get_logger
from ..utils.mime import message_from_bytes, message_from_header, prune_message
from .engine import CommandEngine
from .idle import IdleController
from .responses import LineKind, Response
from .search import build_search, quote_string
from .sequence import build_sequence_set

Handler = Callable[..., None]
UidSelection = Union[int, Iterable[int]]

_CAPABILITY_CODE_RE = re.compile(r"\[CAPABILITY ([^\]]*)\]", re.IGNORECASE)
_LIST_RE = re.compile(r'^\*\s+LIST\s+\(([^)]*)\)\s+(NIL|"(?:[^"\\]|\\.)*")\s+(.*)$', re.IGNORECASE)
_FETCH_RE = re.compile(r"^\*\s+\d+\s+FETCH\s+\(", re.IGNORECASE)
_QUOTED_BODY_RE = re.compile(r'BODY\[[^\]]*\]\s+"((?:[^"\\]|\\.)*)"', re.IGNORECASE)
_FLAGS_RE = re.compile(r"FLAGS \(([^)]*)\)", re.IGNORECASE)
_BODYSTRUCTURE_RE = re.compile(r"\bBODYSTRUCTURE\s+(?=\()", re.IGNORECASE)
_FETCH_UID_RE = re.compile(r"\bUID\s+(\d+)", re.IGNORECASE)
_LITERAL_MARKER_RE = re.compile(r"\{(\d+)\}")
_QUOTA_RE = re.compile(r'^\*\s+QUOTA\s+(?:"(?:[^"\\]|\\.)*"|\S+)\s+\(([^)]*)\)', re.IGNORECASE)
_UNQUOTE_RE = re.compile(r"\\(.)")

_PUSH_EVENTS = (EventKind.NEW_MESSAGE, EventKind.MESSAGE_DELETED)


def _parse_capabilities(text: str) -> FrozenSet[str]:
    return frozenset(token.upper() for token in text.split())


def _status_number(text: str, item: str) -> int:
    match = re.search(rf"\b{item}\s+(\d+)", text, re.IGNORECASE)
    if not match:
        raise ProtocolViolation(f"STATUS response lacks {item}", text)
    return int(match.group(1))


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return _UNQUOTE_RE.sub(r"\1", value[1:-1])
    return value


def _inline_literals(response: Response) -> str:
    """Return the response text with each ``{n}`` marker replaced by its literal.

    Literals are rendered as quoted strings (undecodable bytes become U+FFFD)
    so the result is a single self-contained parenthesised expression.
    """

    if not response.literals:
        return response.text
    text = response.text
    literals = iter(response.literals)
    parts: List[str] = []
    in_quote = False
    index = 0
    while index < len(text):
        char = text[index]
        if in_quote:
            if char == "\\":
                parts.append(text[index:index + 2])
                index += 2
                continue
            if char == '"':
                in_quote = False
        elif char == '"':
            in_quote = True
        elif char == "{":
            match = _LITERAL_MARKER_RE.match(text, index)
            payload = next(literals, None) if match else None
            if payload is not None:
                value = payload.decode("utf-8", errors="replace")
                parts.append('"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"')
                index = match.end()
                continue
        parts.append(char)
        index += 1
    return "".join(parts)


def _balanced_group(text: str, start: int) -> str:
    """Return the parenthesised group opening at ``text[start]``."""

    depth = 0
    in_quote = False
    index = start
    while index < len(text):
        char = text[index]
        if in_quote:
            if char == "\\":
                index += 2
                continue
            if char == '"':
                in_quote = False
        elif char == '"':
            in_quote = True
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
        index += 1
    raise ProtocolViolation("unbalanced parentheses in FETCH response", text)


def _uid_set(uids: UidSelection) -> str:
    if isinstance(uids, int):
        return build_sequence_set([uids])
    return build_sequence_set(list(uids))


def _flag_list(flags: Iterable[MessageFlag]) -> str:
    return " ".join(flag.value for flag in flags)


@dataclass
class ImapConfig:
    """Connection parameters for one IMAP session.

    What:
      Captures the server address, credentials, and protocol defaults needed
      to open a session.

    How:
      Fields left as ``None`` are filled in :meth:`__post_init__` from
      :func:`imapsession.config.loader.get_runtime_config`, so a config file can
      carry site defaults while callers pass only what differs.

    Attributes:
      host: IMAP hostname.
      username: Login name; optional when logging in explicitly.
      password: Password, or the bearer token for XOAUTH2.
      port: Server port.
      ssl: Wrap the connection in TLS before the greeting.
      method: Authentication method used by :meth:`ImapSession.login`.
      default_mailbox: Mailbox used when an operation names none.
      tag_prefix: Prefix for generated command tags.
      keepalive_interval: Seconds between push-mode keepalive ticks.
      join_timeout: Bound for background joins during :meth:`ImapSession.close`.
    """

    host: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    port: Optional[int] = None
    ssl: Optional[bool] = None
    verify_certificate: Optional[bool] = None
    method: Optional[AuthMethod] = None
    default_mailbox: Optional[str] = None
    tag_prefix: Optional[str] = None
    keepalive_interval: Optional[float] = None
    join_timeout: Optional[float] = None
    log_level: Optional[str] = None

    def __post_init__(self) -> None:
        settings = get_runtime_config()
        if self.host is None:
            self.host = settings.server.host
        if self.port is None:
            self.port = settings.server.port
        if self.ssl is None:
            self.ssl = settings.server.ssl
        if self.verify_certificate is None:
            self.verify_certificate = settings.server.verify_certificate
        if self.method is None:
            self.method = AuthMethod(settings.session.auth_method)
        if self.default_mailbox is None:
            self.default_mailbox = settings.session.default_mailbox
        if self.tag_prefix is None:
            self.tag_prefix = settings.session.tag_prefix
        if self.keepalive_interval is None:
            self.keepalive_interval = settings.idle.keepalive_interval_s
        if self.join_timeout is None:
            self.join_timeout = settings.idle.join_timeout_s
        if self.log_level is None:
            self.log_level = settings.logging.level


class ImapSession:
    """One IMAP connection and the state attached to it.

    What:
      Tracks authentication, the capability set, the selected mailbox, and the
      push-mode controller. Event handlers subscribe per :class:`EventKind`.

    Why:
      The server keeps per-connection state (selected mailbox, IDLE mode);
      mirroring it locally avoids redundant round trips and lets push mode be
      suspended and restored transparently.

    How:
      :meth:`connect` opens the transport (unless one was injected) and reads
      the greeting. Every public operation below runs inside
      :meth:`_exclusive`. Internal helpers prefixed with ``_`` assume the
      bracket is already held and are the only code the push-mode controller
      calls back into.

    Args:
      config: Connection settings.
      transport: Pre-opened transport; :meth:`connect` then only reads the
        greeting. Used for tunnels and tests.
      logger: Structured logger; defaults to one named ``imapsession.session``.
    """

    def __init__(
        self,
        config: Optional[ImapConfig] = None,
        *,
        transport: Optional[Transport] = None,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self._config = config or ImapConfig()
        self._transport = transport
        self._logger = logger or get_logger("imapsession.session", min_level=self._config.log_level or "INFO")
        self._lock = threading.RLock()
        self._engine: Optional[CommandEngine] = None
        self._idle: Optional[IdleController] = None
        self._authenticated = False
        self._capabilities: Optional[FrozenSet[str]] = None
        self._selected: Optional[str] = None
        self._default_mailbox = self._config.default_mailbox or "INBOX"
        self._handlers: Dict[EventKind, List[Handler]] = {kind: [] for kind in EventKind}
        self._handlers_lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------
    # lifecycle

    def __enter__(self) -> "ImapSession":
        self.connect()
        if not self._authenticated and self._config.username is not None:
            self.login()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._authenticated and not self._closed:
                self.logout()
        except ImapSessionError as error:
            self._logger.warning("logout during exit failed", error=str(error))
        finally:
            self.close()

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    @property
    def selected_mailbox(self) -> Optional[str]:
        """Mailbox the server currently has selected, as last confirmed."""

        return self._selected

    @property
    def idling(self) -> bool:
        return self._idle is not None and self._idle.active

    @property
    def idle_controller(self) -> Optional[IdleController]:
        return self._idle

    @property
    def default_mailbox(self) -> str:
        return self._default_mailbox

    @default_mailbox.setter
    def default_mailbox(self, value: str) -> None:
        if not value:
            raise ValueError("default mailbox must not be empty")
        self._default_mailbox = value

    def connect(self) -> None:
        """Open the connection and consume the server greeting.

        A ``PREAUTH`` greeting marks the session authenticated. A
        ``[CAPABILITY ...]`` response code in the greeting fills the
        capability cache.

        Raises:
          TransportError: If the connection cannot be opened.
          ServerRejected: On a ``BYE`` greeting.
          ProtocolViolation: On any other greeting.
        """

        with self._lock:
            if self._engine is not None:
                return
            if self._transport is None:
                if not self._config.host:
                    raise ValueError("no IMAP host configured")
                self._transport = open_transport(
                    self._config.host,
                    int(self._config.port or 143),
                    use_ssl=bool(self._config.ssl),
                    verify_certificate=bool(self._config.verify_certificate),
                )
            engine = CommandEngine(
                self._transport,
                tag_prefix=self._config.tag_prefix or "xm",
                logger=self._logger.child("imapsession.engine"),
            )
            try:
                keyword, greeting = self._read_greeting(engine)
            except ImapSessionError:
                self._close_transport()
                raise
            self._engine = engine
            self._authenticated = keyword == "PREAUTH"
            self._remember_capability_code(greeting.text)
            self._idle = IdleController(
                engine,
                enter_idle=self._enter_idle,
                resolve_highest_uid=self.get_highest_uid,
                emit=self._emit_message_event,
                keepalive=self.noop,
                report=self._report_idle_error,
                keepalive_interval=float(self._config.keepalive_interval or 600.0),
                join_timeout=float(self._config.join_timeout or 5.0),
                logger=self._logger.child("imapsession.idle"),
            )
            self._logger.info("connected", host=self._config.host, preauth=self._authenticated)

    @staticmethod
    def _read_greeting(engine: CommandEngine) -> Tuple[str, Response]:
        greeting = engine.read_response()
        if greeting.kind is not LineKind.UNTAGGED:
            raise ProtocolViolation("unexpected greeting", greeting.text)
        keyword = greeting.keyword
        if keyword == "BYE":
            raise ServerRejected("BYE", greeting.payload[3:].strip(), "CONNECT")
        if keyword not in ("OK", "PREAUTH"):
            raise ProtocolViolation("unexpected greeting", greeting.text)
        return keyword, greeting

    def login(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        method: Optional[AuthMethod] = None,
    ) -> None:
        """Authenticate with ``LOGIN`` or an ``AUTHENTICATE`` mechanism.

        Capabilities announced during the exchange (untagged ``CAPABILITY`` or
        a ``[CAPABILITY ...]`` response code) are cached without issuing a
        separate ``CAPABILITY`` command.

        Raises:
          InvalidCredentials: When the server rejects the credentials.
        """

        username = username if username is not None else self._config.username
        password = password if password is not None else self._config.password
        method = method or self._config.method or AuthMethod.LOGIN
        if username is None or password is None:
            raise ValueError("username and password are required to log in")
        with self._lock:
            engine = self._require_engine()
            if method is AuthMethod.LOGIN:
                verb = "LOGIN"
                completion = engine.execute(
                    f"LOGIN {quote_string(username)} {quote_string(password)}", check=False
                )
            else:
                verb = "AUTHENTICATE"
                mechanism = self._mechanism(method, username, password)

                def answer(challenge: Response) -> bytes:
                    decoded = auth.decode_challenge(challenge.payload)
                    return auth.encode_challenge_response(mechanism.respond(decoded))

                completion = engine.execute(f"AUTHENTICATE {mechanism.name}", continuation=answer, check=False)
            if not completion.ok:
                self._logger.warning("login rejected", method=method.value, status=completion.status)
                raise InvalidCredentials(completion.status, completion.text, verb)
            for response in completion.untagged_matching("CAPABILITY"):
                self._capabilities = _parse_capabilities(response.payload[len("CAPABILITY"):])
            self._remember_capability_code(completion.text)
            self._authenticated = True
            self._logger.info("logged in", method=method.value)

    @staticmethod
    def _mechanism(method: AuthMethod, username: str, password: str) -> auth.SaslMechanism:
        if method is AuthMethod.PLAIN:
            return auth.plain(username, password)
        if method is AuthMethod.CRAM_MD5:
            return auth.cram_md5(username, password)
        return auth.xoauth2(username, password)

    def logout(self) -> None:
        """Stop push mode and end the session; the server must answer ``BYE``."""

        with self._lock:
            if not self._authenticated:
                return
            if self._idle is not None:
                self._idle.stop()
            completion = self._require_engine().execute("LOGOUT")
            self._authenticated = False
            self._selected = None
            if not completion.untagged_matching("BYE"):
                raise ProtocolViolation("LOGOUT completed without BYE", completion.text)
            self._logger.info("logged out")

    def close(self) -> None:
        """Tear the connection down without the lock, unblocking any reader.

        Safe to call from any thread and more than once. Background push-mode
        threads are joined with the configured timeout.
        """

        if self._closed:
            return
        self._closed = True
        self._authenticated = False
        self._selected = None
        transport = self._transport
        if self._idle is not None:
            self._idle.shutdown(self._close_transport)
        elif transport is not None:
            self._close_transport()
        self._logger.info("session closed")

    def _close_transport(self) -> None:
        if self._transport is None:
            return
        try:
            self._transport.close()
        except TransportError as error:
            self._logger.debug("transport close failed", error=str(error))

    # ------------------------------------------------------------------
    # bracketing and state helpers

    def _require_engine(self) -> CommandEngine:
        if self._engine is None or self._closed:
            raise TransportError("session is not connected")
        return self._engine

    def _ensure_authenticated(self) -> None:
        if not self._authenticated:
            raise NotAuthenticated()

    @contextlib.contextmanager
    def _exclusive(self) -> Iterator[CommandEngine]:
        """Hold the session lock with push mode paused for the block."""

        with self._lock:
            engine = self._require_engine()
            idle = self._idle
            if idle is None:
                yield engine
                return
            idle.pause()
            try:
                yield engine
            finally:
                idle.resume()

    def _remember_capability_code(self, text: str) -> None:
        match = _CAPABILITY_CODE_RE.search(text)
        if match:
            self._capabilities = _parse_capabilities(match.group(1))

    def _select(self, mailbox: Optional[str]) -> str:
        self._ensure_authenticated()
        target = mailbox or self._default_mailbox
        if target == self._selected:
            return target
        completion = self._require_engine().execute(f"SELECT {quote_string(target)}", check=False)
        if not completion.ok:
            raise ServerRejected(completion.status, completion.text, "SELECT")
        self._selected = target
        self._logger.debug("mailbox selected", mailbox=target)
        return target

    def _enter_idle(self) -> Tuple[str, List[Response]]:
        # runs on the controller thread while a foreground caller holds the lock
        self._select(None)
        return self._require_engine().request_continuation("IDLE")

    # ------------------------------------------------------------------
    # capabilities and mailboxes

    def capabilities(self) -> FrozenSet[str]:
        """Return the server's capability set, querying it at most once."""

        if self._capabilities is not None:
            return self._capabilities
        with self._exclusive() as engine:
            if self._capabilities is None:
                completion = engine.execute("CAPABILITY")
                found: FrozenSet[str] = frozenset()
                for response in completion.untagged_matching("CAPABILITY"):
                    found = found | _parse_capabilities(response.payload[len("CAPABILITY"):])
                self._capabilities = found
            return self._capabilities

    def supports(self, capability: str) -> bool:
        return capability.upper() in self.capabilities()

    def select_mailbox(self, mailbox: Optional[str] = None) -> None:
        """Select ``mailbox`` (or the default); no round trip when already selected.

        A rejected ``SELECT`` leaves the cached selection unchanged.
        """

        self._ensure_authenticated()
        with self._exclusive():
            self._select(mailbox)

    def create_mailbox(self, mailbox: str) -> None:
        self._ensure_authenticated()
        with self._exclusive() as engine:
            engine.execute(f"CREATE {quote_string(mailbox)}")

    def delete_mailbox(self, mailbox: str) -> None:
        self._ensure_authenticated()
        with self._exclusive() as engine:
            engine.execute(f"DELETE {quote_string(mailbox)}")
            if self._selected == mailbox:
                self._selected = None

    def rename_mailbox(self, mailbox: str, new_name: str) -> None:
        self._ensure_authenticated()
        with self._exclusive() as engine:
            engine.execute(f"RENAME {quote_string(mailbox)} {quote_string(new_name)}")
            if self._selected == mailbox:
                self._selected = None

    def list_mailboxes(self) -> List[str]:
        """Return every selectable mailbox name (``\\Noselect`` entries skipped)."""

        self._ensure_authenticated()
        with self._exclusive() as engine:
            completion = engine.execute('LIST "" "*"')
        names: List[str] = []
        for response in completion.untagged_matching("LIST"):
            match = _LIST_RE.match(response.text)
            if not match:
                raise ProtocolViolation("malformed LIST response", response.text)
            attributes = match.group(1).lower().split()
            if "\\noselect" in attributes:
                continue
            if response.literals:
                names.append(response.literals[-1].decode("utf-8", errors="replace"))
            else:
                names.append(_unquote(match.group(3).strip()))
        return names

    def expunge(self, mailbox: Optional[str] = None) -> None:
        """Permanently remove messages flagged ``\\Deleted``."""

        self._ensure_authenticated()
        with self._exclusive() as engine:
            self._select(mailbox)
            engine.execute("EXPUNGE")

    def get_status(self, mailbox: Optional[str] = None) -> MailboxStatus:
        """Return message counters, plus storage figures when QUOTA is supported."""

        self._ensure_authenticated()
        target = mailbox or self._default_mailbox
        with self._exclusive() as engine:
            completion = engine.execute(f"STATUS {quote_string(target)} (MESSAGES UNSEEN)")
            lines = completion.untagged_matching("STATUS")
            if not lines:
                raise ProtocolViolation("STATUS completed without data", completion.text)
            text = lines[0].text
            messages = _status_number(text, "MESSAGES")
            unread = _status_number(text, "UNSEEN")
            used = free = 0
            if self.supports("QUOTA"):
                for quota in self.get_quota(target):
                    if quota.resource == "STORAGE":
                        used = quota.usage
                        free = max(quota.limit - quota.usage, 0)
        return MailboxStatus(messages=messages, unread=unread, used_storage=used, free_storage=free)

    def get_quota(self, mailbox: Optional[str] = None) -> List[MailboxQuota]:
        """Return the quota resources for ``mailbox``'s quota root.

        ``STORAGE`` figures are reported by servers in KiB and returned here in
        bytes; other resources are returned as counted.

        Raises:
          CapabilityUnsupported: If the server does not advertise ``QUOTA``.
        """

        self._ensure_authenticated()
        if not self.supports("QUOTA"):
            raise CapabilityUnsupported("QUOTA")
        target = mailbox or self._default_mailbox
        with self._exclusive() as engine:
            completion = engine.execute(f"GETQUOTAROOT {quote_string(target)}")
        quotas: List[MailboxQuota] = []
        for response in completion.untagged_matching("QUOTA "):
            match = _QUOTA_RE.match(response.text)
            if not match:
                raise ProtocolViolation("malformed QUOTA response", response.text)
            tokens = match.group(1).split()
            if len(tokens) % 3:
                raise ProtocolViolation("malformed QUOTA resource list", response.text)
            for index in range(0, len(tokens), 3):
                resource = tokens[index].upper()
                scale = 1024 if resource == "STORAGE" else 1
                usage, limit = int(tokens[index + 1]), int(tokens[index + 2])
                quotas.append(MailboxQuota(resource, usage * scale, limit * scale))
        return quotas

    def get_highest_uid(self, mailbox: Optional[str] = None) -> int:
        """Return ``UIDNEXT - 1`` for ``mailbox`` (default mailbox when omitted)."""

        self._ensure_authenticated()
        with self._exclusive() as engine:
            target = self._select(mailbox)
            completion = engine.execute(f"STATUS {quote_string(target)} (UIDNEXT)")
        lines = completion.untagged_matching("STATUS")
        if not lines:
            raise ProtocolViolation("STATUS completed without data", completion.text)
        return _status_number(lines[0].text, "UIDNEXT") - 1

    def noop(self) -> None:
        """Send ``NOOP``; notifications it returns feed the push-mode dispatcher."""

        with self._exclusive() as engine:
            completion = engine.execute("NOOP")
            if self._idle is not None:
                self._idle.observe(completion.untagged)

    # ------------------------------------------------------------------
    # messages

    def search(self, criteria: Union[str, Dict[str, object]] = "ALL", mailbox: Optional[str] = None) -> List[int]:
        """Return UIDs matching ``criteria`` (raw text or a filter dictionary)."""

        self._ensure_authenticated()
        text = criteria if isinstance(criteria, str) else build_search(criteria)
        with self._exclusive() as engine:
            self._select(mailbox)
            completion = engine.execute(f"UID SEARCH {text}")
        uids: List[int] = []
        for response in completion.untagged_matching("SEARCH"):
            for token in response.payload[len("SEARCH"):].split():
                if token.isdigit():
                    uids.append(int(token))
        return uids

    def _fetch(self, engine: CommandEngine, uids: str, items: str) -> List[Response]:
        completion = engine.execute(f"UID FETCH {uids} {items}")
        responses: List[Response] = []
        for response in completion.untagged:
            if not _FETCH_RE.match(response.text):
                continue
            if not response.text.rstrip().endswith(")"):
                raise ProtocolViolation("FETCH response is not closed", response.text)
            responses.append(response)
        return responses

    def _fetch_one(self, engine: CommandEngine, uid: int, items: str) -> Response:
        """Return the FETCH response carrying ``UID uid``.

        Unsolicited FETCH data for other messages (flag updates) is skipped.

        Raises:
          MessageNotFound: If no response carries the requested UID.
        """

        for response in self._fetch(engine, str(uid), items):
            match = _FETCH_UID_RE.search(response.text)
            if match and int(match.group(1)) == uid:
                return response
        raise MessageNotFound(uid)

    def _fetch_section(self, engine: CommandEngine, uid: int, section: str, seen: bool) -> bytes:
        item = f"BODY[{section}]" if seen else f"BODY.PEEK[{section}]"
        response = self._fetch_one(engine, uid, f"({item})")
        if response.literals:
            return response.literals[0]
        match = _QUOTED_BODY_RE.search(response.text)
        if match:
            return _UNQUOTE_RE.sub(r"\1", match.group(1)).encode("utf-8", errors="surrogateescape")
        return b""

    def get_message(
        self,
        uid: int,
        options: FetchOptions = FetchOptions.NORMAL,
        seen: bool = True,
        mailbox: Optional[str] = None,
    ) -> EmailMessage:
        """Fetch one message and build it into an :class:`EmailMessage`.

        Args:
          uid: Message UID.
          options: How much of the message to retrieve.
          seen: When false, use ``BODY.PEEK`` so ``\\Seen`` is not set.
          mailbox: Mailbox to select first (default mailbox when omitted).

        Raises:
          MessageNotFound: If the server returned no data for ``uid``.
        """

        self._ensure_authenticated()
        with self._exclusive() as engine:
            self._select(mailbox)
            if options is FetchOptions.HEADERS_ONLY:
                return message_from_header(self._fetch_section(engine, uid, "HEADER", seen))
            raw = self._fetch_section(engine, uid, "", seen)
        message = message_from_bytes(raw)
        if options is FetchOptions.TEXT_ONLY:
            return prune_message(message, text_only=True, drop_attachments=True)
        if options is FetchOptions.NO_ATTACHMENTS:
            return prune_message(message, text_only=False, drop_attachments=True)
        return message

    def get_messages(
        self,
        uids: Iterable[int],
        options: FetchOptions = FetchOptions.NORMAL,
        seen: bool = True,
        mailbox: Optional[str] = None,
    ) -> List[EmailMessage]:
        self._ensure_authenticated()
        with self._exclusive():
            return [self.get_message(uid, options, seen, mailbox) for uid in uids]

    def get_bodystructure(self, uid: int, mailbox: Optional[str] = None) -> str:
        """Return the parenthesised ``BODYSTRUCTURE`` of ``uid``.

        Literals inside the structure are inlined as quoted strings.
        """

        self._ensure_authenticated()
        with self._exclusive() as engine:
            self._select(mailbox)
            response = self._fetch_one(engine, uid, "(BODYSTRUCTURE)")
        text = _inline_literals(response)
        match = _BODYSTRUCTURE_RE.search(text)
        if not match:
            raise ProtocolViolation("FETCH response lacks BODYSTRUCTURE", response.text)
        return _balanced_group(text, match.end())

    def copy_message(self, uids: UidSelection, destination: str, mailbox: Optional[str] = None) -> None:
        self._ensure_authenticated()
        with self._exclusive() as engine:
            self._select(mailbox)
            engine.execute(f"UID COPY {_uid_set(uids)} {quote_string(destination)}")

    def move_message(self, uids: UidSelection, destination: str, mailbox: Optional[str] = None) -> None:
        """Copy to ``destination`` then flag the originals ``\\Deleted``.

        The source mailbox is not expunged.
        """

        self._ensure_authenticated()
        with self._exclusive():
            self.copy_message(uids, destination, mailbox)
            self.delete_message(uids, mailbox)

    def delete_message(self, uids: UidSelection, mailbox: Optional[str] = None) -> None:
        self._ensure_authenticated()
        with self._exclusive() as engine:
            self._select(mailbox)
            engine.execute(f"UID STORE {_uid_set(uids)} +FLAGS.SILENT (\\Deleted \\Seen)")

    def get_message_flags(self, uid: int, mailbox: Optional[str] = None) -> List[MessageFlag]:
        """Return the system flags set on ``uid``; keywords are ignored."""

        self._ensure_authenticated()
        with self._exclusive() as engine:
            self._select(mailbox)
            response = self._fetch_one(engine, uid, "(FLAGS)")
        match = _FLAGS_RE.search(response.text)
        if not match:
            raise ProtocolViolation("FETCH response lacks FLAGS", response.text)
        flags: List[MessageFlag] = []
        for token in match.group(1).split():
            flag = MessageFlag.from_wire(token)
            if flag is not None:
                flags.append(flag)
        return flags

    def _store_flags(self, action: str, uids: UidSelection, flags: Iterable[MessageFlag], mailbox: Optional[str]) -> None:
        self._ensure_authenticated()
        with self._exclusive() as engine:
            self._select(mailbox)
            engine.execute(f"UID STORE {_uid_set(uids)} {action}.SILENT ({_flag_list(flags)})")

    def set_message_flags(self, uids: UidSelection, flags: Iterable[MessageFlag], mailbox: Optional[str] = None) -> None:
        """Replace the flags of ``uids`` with ``flags``."""

        self._store_flags("FLAGS", uids, flags, mailbox)

    def add_message_flags(self, uids: UidSelection, flags: Iterable[MessageFlag], mailbox: Optional[str] = None) -> None:
        self._store_flags("+FLAGS", uids, flags, mailbox)

    def remove_message_flags(self, uids: UidSelection, flags: Iterable[MessageFlag], mailbox: Optional[str] = None) -> None:
        self._store_flags("-FLAGS", uids, flags, mailbox)

    # ------------------------------------------------------------------
    # push-mode events

    def subscribe(self, kind: EventKind, handler: Handler) -> None:
        """Register ``handler`` for ``kind``.

        The first new-message or message-deleted subscriber starts push mode.

        Raises:
          CapabilityUnsupported: If push mode is needed and the server lacks IDLE.
        """

        with self._lock:
            with self._handlers_lock:
                self._handlers[kind].append(handler)
            if kind not in _PUSH_EVENTS or self.idling:
                return
            try:
                self._ensure_authenticated()
                if not self.supports("IDLE"):
                    raise CapabilityUnsupported("IDLE")
                if self._idle is None:
                    raise TransportError("session is not connected")
                self._idle.start()
            except BaseException:
                with self._handlers_lock:
                    self._handlers[kind].remove(handler)
                raise

    def unsubscribe(self, kind: EventKind, handler: Handler) -> None:
        """Remove ``handler``; push mode stops once no push subscriber remains."""

        with self._lock:
            with self._handlers_lock:
                if handler in self._handlers[kind]:
                    self._handlers[kind].remove(handler)
                remaining = any(self._handlers[k] for k in _PUSH_EVENTS)
            if not remaining and self._idle is not None and self._idle.active:
                self._idle.stop()

    def _handlers_for(self, kind: EventKind) -> List[Handler]:
        with self._handlers_lock:
            return list(self._handlers[kind])

    def _emit_message_event(self, kind: EventKind, count: int, uid: int) -> None:
        event = IdleMessageEvent(message_count=count, message_uid=uid, session=self)
        for handler in self._handlers_for(kind):
            try:
                handler(event)
            except Exception as exc:
                self._logger.error("event handler failed", kind=kind.value, error=str(exc))
                self._report_idle_error(exc)

    def _report_idle_error(self, error: BaseException) -> None:
        event = IdleErrorEvent(exception=error, session=self)
        for handler in self._handlers_for(EventKind.IDLE_ERROR):
            try:
                handler(event)
            except Exception as exc:
                self._logger.error("idle error handler failed", error=str(exc))


__all__ = ["ImapConfig", "ImapSession"]
