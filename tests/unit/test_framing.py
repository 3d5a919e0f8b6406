"""Framing reader and literal handling.

What:
  Verify CRLF/LF line framing, exact-count literal reads (including embedded
  line endings), and end-of-stream signalling.
"""

import pytest

from fakes import ScriptedTransport

from imapsession.errors import TransportError
from imapsession.imap.engine import CommandEngine
from imapsession.imap.framing import FramingReader, LineWriter
from imapsession.imap.responses import LineKind, literal_length


def test_read_line_strips_crlf_and_bare_lf():
    transport = ScriptedTransport(greeting=None)
    transport.feed(b"* OK first\r\n* OK second\n")
    reader = FramingReader(transport)

    assert reader.read_line() == "* OK first"
    assert reader.read_line() == "* OK second"


def test_read_line_raises_on_end_of_stream():
    transport = ScriptedTransport(greeting=None)
    transport.feed(b"* OK partial")
    transport.close()

    with pytest.raises(TransportError):
        FramingReader(transport).read_line()


def test_read_exact_raises_when_stream_ends_early():
    transport = ScriptedTransport(greeting=None)
    transport.feed(b"abc")
    transport.close()

    with pytest.raises(TransportError):
        FramingReader(transport).read_exact(10)


def test_literal_consumes_exact_bytes_before_framing_resumes():
    transport = ScriptedTransport(greeting=None)
    transport.feed(b"* 1 FETCH (UID 7 BODY[] {12}\r\nab\r\ncd\r\nefgh)\r\n", b"* OK next\r\n")
    engine = CommandEngine(transport)

    response = engine.read_response()

    assert response.kind is LineKind.UNTAGGED
    assert response.literals == [b"ab\r\ncd\r\nefgh"]
    assert response.text == "* 1 FETCH (UID 7 BODY[] {12})"
    assert engine.read_response().text == "* OK next"


def test_multiple_literals_in_one_response():
    transport = ScriptedTransport(greeting=None)
    transport.feed(b"* 2 FETCH (BODY[HEADER] {3}\r\nH\r\n BODY[TEXT] {2}\r\nT\n)\r\n")

    response = CommandEngine(transport).read_response()

    assert response.literals == [b"H\r\n", b"T\n"]
    assert response.text.endswith(")")


def test_literal_length_recognises_markers():
    assert literal_length("* 1 FETCH (BODY[] {42}") == 42
    assert literal_length("a001 APPEND x {5+}") == 5
    assert literal_length("* OK no literal") is None


def test_writer_rejects_embedded_line_breaks():
    writer = LineWriter(ScriptedTransport(greeting=None))

    with pytest.raises(ValueError):
        writer.write_line("a001 LOGIN a\r\nb001 LOGOUT")
