"""Message builders used by the fetch operations."""

from email.message import EmailMessage

from imapsession.utils.mime import extract_text, message_from_bytes, message_from_header, prune_message


def _multipart() -> bytes:
    message = EmailMessage()
    message["Subject"] = "Report"
    message["From"] = "bob@example.com"
    message.set_content("Hello there\n")
    message.add_alternative("<p>Hello there</p>", subtype="html")
    message.add_attachment(b"\x00\x01", maintype="application", subtype="octet-stream", filename="a.bin")
    return message.as_bytes()


def test_header_only_message():
    message = message_from_header(b"Subject: Hi\r\nFrom: a@example.com\r\n\r\n")

    assert message["Subject"] == "Hi"
    assert message["From"] == "a@example.com"


def test_drop_attachments_keeps_alternatives():
    message = prune_message(message_from_bytes(_multipart()), text_only=False, drop_attachments=True)

    assert all(part.get_content_disposition() != "attachment" for part in message.walk())
    assert "text/html" in [part.get_content_type() for part in message.walk()]


def test_text_only_keeps_text_leaves():
    message = prune_message(message_from_bytes(_multipart()), text_only=True, drop_attachments=True)

    leaves = [part.get_content_type() for part in message.walk() if not part.is_multipart()]
    assert leaves == ["text/plain", "text/html"]


def test_extract_text_returns_first_text_body():
    assert extract_text(message_from_bytes(_multipart())) == "Hello there\n"


def test_single_part_message_is_left_unchanged():
    message = message_from_bytes(b"Subject: x\r\n\r\nbody\r\n")

    assert prune_message(message, text_only=True, drop_attachments=True) is message
