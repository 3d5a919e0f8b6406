"""Push-mode (IDLE) controller, reader, dispatcher, and keepalive.

What:
  Run the long-lived notification mode next to ordinary request/response
  traffic on the same connection: enter IDLE, read untagged notifications on a
  background reader, dispatch ``EXISTS``/``EXPUNGE`` events on a separate
  dispatcher, pause/resume around foreground commands, and keep the
  connection alive with a periodic NOOP.

Why:
  The protocol forbids ordinary commands while IDLE is active, so every
  foreground call has to leave push mode, run, and re-enter it. Doing that
  with shared counters guarded by ad hoc locks is where deadlocks and lost
  notifications come from.

How:
  :class:`IdleController` owns all push-mode state (``active``, pause depth,
  the current reader) on a single owner thread. :meth:`IdleController.start`,
  :meth:`pause`, :meth:`resume` and :meth:`stop` post messages to that thread
  and wait on a :class:`concurrent.futures.Future` for the outcome, so state
  transitions are strictly serialised and the caller only returns once the
  connection is quiescent. Only the 0->1 pause transition sends ``DONE`` and
  joins the reader; only the 1->0 resume transition re-issues ``IDLE``.
  The reader pushes raw lines onto a FIFO queue drained by the dispatcher,
  which resolves the highest UID through a collaborator and emits the event.
  A slow event handler therefore never stalls the reader or the keepalive.

Interfaces:
  :class:`IdleController`, :class:`Keepalive`, :func:`match_event`.

Invariants & Safety:
  - The dispatcher is started once per controller (one per connection).
  - A transport read failure observed while a deliberate teardown is in
    progress (pause, stop, shutdown) ends the reader silently.
  - Handler and collaborator failures are reported, never allowed to end the
    dispatcher loop.
"""
from __future__ import annotations

import queue
import re
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple, Union

from ..errors import ImapSessionError, TransportError
from ..models import EventKind
from ..utils.logging import JsonLogger, get_logger
from .engine import CommandEngine
from .responses import LineKind, Response, parse_completion

EnterIdle = Callable[[], Tuple[str, List[Response]]]
ResolveUid = Callable[[], int]
Emit = Callable[[EventKind, int, int], None]
Report = Callable[[BaseException], None]

_EVENT_RE = re.compile(r"^\*\s+(\d+)\s+(\w+)")
_EVENT_KINDS = {"EXISTS": EventKind.NEW_MESSAGE, "EXPUNGE": EventKind.MESSAGE_DELETED}
_STOP = None
_Item = Union[str, BaseException, None]


def match_event(line: str) -> Optional[Tuple[EventKind, int]]:
    """Return ``(kind, count)`` for ``* <n> EXISTS``/``* <n> EXPUNGE`` lines."""

    match = _EVENT_RE.match(line)
    if not match:
        return None
    kind = _EVENT_KINDS.get(match.group(2).upper())
    if kind is None:
        return None
    return kind, int(match.group(1))


class _ReaderUnit(threading.Thread):
    """Reads push-mode lines until the IDLE completion arrives."""

    def __init__(
        self,
        engine: CommandEngine,
        tag: str,
        events: "queue.Queue[_Item]",
        tearing_down: threading.Event,
        logger: JsonLogger,
    ) -> None:
        super().__init__(name=f"imap-idle-reader-{tag}", daemon=True)
        self._engine = engine
        self.tag = tag
        self._events = events
        self._tearing_down = tearing_down
        self._logger = logger
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            while True:
                response = self._engine.read_response(self.tag)
                if response.kind is LineKind.TAGGED:
                    status, text = parse_completion(response.text, self.tag)
                    if status != "OK":
                        self._logger.warning("idle ended with non-OK status", tag=self.tag, status=status, text=text)
                    return
                if response.kind is LineKind.CONTINUATION:
                    continue
                self._events.put(response.text)
        except TransportError as exc:
            if self._tearing_down.is_set():
                self._logger.debug("idle reader stopped by teardown", tag=self.tag)
                return
            self.error = exc
            self._logger.error("idle reader lost the connection", tag=self.tag, error=str(exc))
            self._events.put(exc)
        except ImapSessionError as exc:
            self.error = exc
            self._logger.error("idle reader failed", tag=self.tag, error=str(exc))
            self._events.put(exc)
        finally:
            self._engine.finish(self.tag)


class _Dispatcher(threading.Thread):
    """Turns queued push-mode lines into user-visible events."""

    def __init__(
        self,
        events: "queue.Queue[_Item]",
        resolve_highest_uid: ResolveUid,
        emit: Emit,
        report: Report,
        logger: JsonLogger,
    ) -> None:
        super().__init__(name="imap-idle-dispatcher", daemon=True)
        self._events = events
        self._resolve = resolve_highest_uid
        self._emit = emit
        self._report = report
        self._logger = logger

    def run(self) -> None:
        while True:
            line = self._events.get()
            if line is _STOP:
                return
            if isinstance(line, BaseException):
                self._report(line)
                continue
            matched = match_event(line)
            if matched is None:
                continue
            kind, count = matched
            try:
                uid = self._resolve()
                self._emit(kind, count, uid)
            except Exception as exc:
                self._logger.error("event dispatch failed", kind=kind.value, error=str(exc))
                self._report(exc)


class Keepalive:
    """Recurring timer invoking ``tick`` every ``interval`` seconds until stopped."""

    def __init__(self, interval: float, tick: Callable[[], None], report: Report, logger: JsonLogger) -> None:
        self._interval = interval
        self._tick = tick
        self._report = report
        self._logger = logger
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="imap-idle-keepalive", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        # Never joined: the tick may itself be waiting on the controller.
        self._stopped.set()

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stopped.is_set()

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            self._logger.debug("keepalive tick")
            try:
                self._tick()
            except Exception as exc:
                self._logger.error("keepalive failed", error=str(exc))
                self._report(exc)


@dataclass
class _Message:
    kind: str
    reply: "Future[None]"


class IdleController:
    """Single owner of push-mode state; transitions arrive as messages.

    What:
      Implements the ``Inactive -> Starting -> Active -> (Pausing -> Inactive
      -> Resuming -> Active)* -> Stopping -> Inactive`` lifecycle.

    How:
      A dedicated owner thread consumes :class:`_Message` objects from an
      inbox. The public methods post a message and block on its future; calls
      made from the owner thread itself are handled inline. ``enter_idle`` is
      supplied by the session and must not take the session lock: it runs
      while the foreground caller holds that lock and waits for the reply.

    Args:
      engine: Command engine of the connection.
      enter_idle: Selects the push mailbox and issues ``IDLE``; returns the
        IDLE tag and untagged responses seen before the continuation.
      resolve_highest_uid: Collaborator resolving the newest UID.
      emit: Called on the dispatcher with ``(kind, count, uid)``.
      keepalive: Callable run by the keepalive timer (pause, NOOP, resume).
      report: Receives background failures.
      keepalive_interval: Seconds between keepalive ticks.
      join_timeout: Bound for joins performed during :meth:`shutdown`.
    """

    def __init__(
        self,
        engine: CommandEngine,
        *,
        enter_idle: EnterIdle,
        resolve_highest_uid: ResolveUid,
        emit: Emit,
        keepalive: Callable[[], None],
        report: Report,
        keepalive_interval: float = 600.0,
        join_timeout: float = 5.0,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self._engine = engine
        self._enter_idle = enter_idle
        self._resolve = resolve_highest_uid
        self._emit = emit
        self._keepalive_tick = keepalive
        self._report = report
        self._keepalive_interval = keepalive_interval
        self._join_timeout = join_timeout
        self._logger = logger or get_logger("imapsession.idle")

        self._inbox: "queue.Queue[_Message]" = queue.Queue()
        self._events: "queue.Queue[_Item]" = queue.Queue()
        self._owner: Optional[threading.Thread] = None
        self._owner_lock = threading.Lock()
        self._tearing_down = threading.Event()
        self._closed = False

        # owned by the owner thread
        self._active = False
        self._depth = 0
        self._reader: Optional[_ReaderUnit] = None
        self._dispatcher: Optional[_Dispatcher] = None
        self._keepalive: Optional[Keepalive] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pause_depth(self) -> int:
        return self._depth

    @property
    def reader_alive(self) -> bool:
        reader = self._reader
        return reader is not None and reader.is_alive()

    def start(self) -> None:
        """Enter push mode; no-op when already active."""

        self._call("start")

    def pause(self) -> None:
        """Leave push mode for a foreground command (reference counted)."""

        self._call("pause")

    def resume(self) -> None:
        """Undo one :meth:`pause`; re-enters push mode on the 1->0 transition."""

        self._call("resume")

    def stop(self) -> None:
        """Unconditionally leave push mode."""

        self._call("stop")

    def observe(self, responses: Iterable[Response]) -> None:
        """Queue notifications seen in foreground replies while push mode is on."""

        if not self._active:
            return
        for response in responses:
            if match_event(response.text) is not None:
                self._events.put(response.text)

    def shutdown(self, close_transport: Callable[[], None]) -> None:
        """Tear everything down abruptly, closing the transport to unblock reads.

        The transport is closed on the calling thread before the owner is
        asked to stop, so an owner blocked joining a reader (or a reader
        blocked on a silent server) is released first.
        """

        with self._owner_lock:
            if self._closed:
                return
            self._closed = True
        self._tearing_down.set()
        keepalive = self._keepalive
        if keepalive is not None:
            keepalive.stop()
        close_transport()
        owner = self._owner
        if owner is not None and owner is not threading.current_thread():
            reply: "Future[None]" = Future()
            self._inbox.put(_Message("shutdown", reply))
            owner.join(self._join_timeout)
        else:
            self._handle_shutdown()
        self._logger.info("idle controller shut down")

    def _call(self, kind: str) -> None:
        with self._owner_lock:
            if self._closed:
                if kind in ("stop", "pause", "resume"):
                    return
                raise TransportError("session is closed")
            if self._owner is None:
                self._owner = threading.Thread(target=self._run, name="imap-idle-owner", daemon=True)
                self._owner.start()
            owner = self._owner
        if owner is threading.current_thread():
            self._handle(kind)
            return
        reply: "Future[None]" = Future()
        self._inbox.put(_Message(kind, reply))
        reply.result()

    def _run(self) -> None:
        while True:
            message = self._inbox.get()
            try:
                self._handle(message.kind)
            except BaseException as exc:
                message.reply.set_exception(exc)
            else:
                message.reply.set_result(None)
            if message.kind == "shutdown":
                return

    def _handle(self, kind: str) -> None:
        handler = {
            "start": self._handle_start,
            "pause": self._handle_pause,
            "resume": self._handle_resume,
            "stop": self._handle_stop,
            "shutdown": self._handle_shutdown,
        }[kind]
        handler()

    def _handle_start(self) -> None:
        if self._active:
            return
        self._enter()
        self._active = True
        self._depth = 0
        if self._dispatcher is None:
            self._dispatcher = _Dispatcher(self._events, self._resolve, self._emit, self._report, self._logger)
            self._dispatcher.start()
        self._keepalive = Keepalive(self._keepalive_interval, self._keepalive_tick, self._report, self._logger)
        self._keepalive.start()
        self._logger.info("idle started", tag=self._reader.tag if self._reader else None)

    def _handle_pause(self) -> None:
        if not self._active:
            return
        self._depth += 1
        if self._depth != 1:
            return
        try:
            self._leave()
        except BaseException:
            self._deactivate()
            raise
        self._logger.debug("idle paused")

    def _handle_resume(self) -> None:
        if not self._active or self._depth == 0:
            return
        self._depth -= 1
        if self._depth != 0:
            return
        try:
            self._enter()
        except BaseException:
            self._deactivate()
            raise
        self._logger.debug("idle resumed", tag=self._reader.tag if self._reader else None)

    def _handle_stop(self) -> None:
        if not self._active:
            return
        try:
            if self._depth == 0:
                self._leave()
        finally:
            self._deactivate()
        self._logger.info("idle stopped")

    def _handle_shutdown(self) -> None:
        self._tearing_down.set()
        self._deactivate()
        current = threading.current_thread()
        reader = self._reader
        if reader is not None and reader is not current:
            reader.join(self._join_timeout)
        self._reader = None
        dispatcher = self._dispatcher
        if dispatcher is not None:
            self._events.put(_STOP)
            if dispatcher is not current:
                dispatcher.join(self._join_timeout)

    def _deactivate(self) -> None:
        self._active = False
        self._depth = 0
        if self._keepalive is not None:
            self._keepalive.stop()
            self._keepalive = None

    def _enter(self) -> None:
        tag, early = self._enter_idle()
        for response in early:
            self._events.put(response.text)
        self._reader = _ReaderUnit(
            self._engine, tag, self._events, self._tearing_down, self._logger
        )
        self._reader.start()

    def _leave(self) -> None:
        reader = self._reader
        self._reader = None
        if reader is None:
            return
        if not reader.is_alive():
            # ended on its own: server completion or a reported failure
            return
        self._tearing_down.set()
        try:
            self._engine.send("DONE")
            reader.join()
        finally:
            if not self._closed:
                self._tearing_down.clear()
