"""Authentication mechanisms consumed by the session's login orchestration."""

from .mechanisms import (
    SaslMechanism,
    cram_md5,
    decode_challenge,
    encode_challenge_response,
    plain,
    xoauth2,
)

__all__ = [
    "SaslMechanism",
    "plain",
    "cram_md5",
    "xoauth2",
    "decode_challenge",
    "encode_challenge_response",
]
