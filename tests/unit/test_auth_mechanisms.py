"""SASL mechanism responders."""

import base64
import dataclasses

import pytest

from imapsession.auth import cram_md5, decode_challenge, encode_challenge_response, plain, xoauth2
from imapsession.errors import ProtocolViolation


def test_plain_builds_nul_separated_message():
    mechanism = plain("alice", "secret")

    assert mechanism.name == "PLAIN"
    assert mechanism.respond(b"") == b"\0alice\0secret"
    assert "secret" not in repr(mechanism)


def test_cram_md5_matches_rfc_2195_example():
    mechanism = cram_md5("tim", "tanstaaftanstaaf")

    answer = mechanism.respond(b"<1896.697170952@postoffice.reston.mci.net>")

    assert answer == b"tim b913a602c7eda7a495b4e6e7334d3890"


def test_xoauth2_answers_error_round_with_empty_response():
    mechanism = xoauth2("alice@example.com", "ya29.token")

    first = mechanism.respond(b"")
    second = mechanism.respond(b'{"status":"401"}')

    assert first == b"user=alice@example.com\x01auth=Bearer ya29.token\x01\x01"
    assert second == b""


def test_challenge_codec():
    assert decode_challenge(base64.b64encode(b"hello").decode()) == b"hello"
    assert decode_challenge("") == b""
    assert encode_challenge_response(b"hello") == base64.b64encode(b"hello")


def test_invalid_base64_challenge_is_a_protocol_violation():
    with pytest.raises(ProtocolViolation):
        decode_challenge("not base64!")


def test_mechanism_is_a_name_and_a_responder():
    mechanism = plain("alice", "secret")

    assert [f.name for f in dataclasses.fields(mechanism)] == ["name", "respond"]
