"""Search criteria rendering and string quoting."""

from datetime import date, datetime

import pytest

from imapsession.imap.search import any_of, build_search, format_date, quote_string


def test_filters_render_in_insertion_order():
    criteria = build_search({"unseen": True, "from": "bob", "larger": 1024})

    assert criteria == 'UNSEEN FROM "bob" LARGER 1024'


def test_false_and_none_values_are_skipped():
    assert build_search({"flagged": False, "subject": None}) == "ALL"
    assert build_search({}) == "ALL"


def test_dates_use_imap_format():
    assert build_search({"since": date(2024, 3, 5)}) == "SINCE 05-Mar-2024"
    assert format_date(datetime(2023, 12, 31, 23, 59)) == "31-Dec-2023"


def test_uid_and_header_filters():
    criteria = build_search({"uid": [1, 2, 3, 7], "header": ("X-Spam", "yes")})

    assert criteria == 'UID 1:3,7 HEADER X-Spam "yes"'


def test_unknown_keys_are_rejected():
    with pytest.raises(ValueError):
        build_search({"recipient": "x"})


def test_boolean_keys_require_booleans():
    with pytest.raises(ValueError):
        build_search({"seen": "yes"})


def test_quote_string_escapes_backslash_and_quote():
    assert quote_string('say "hi" \\o/') == '"say \\"hi\\" \\\\o/"'


def test_quote_string_refuses_line_breaks():
    with pytest.raises(ValueError):
        quote_string("a\r\nb")


def test_any_of_nests_or_to_the_right():
    assert any_of({"from": "a"}, {"from": "b"}) == 'OR (FROM "a") (FROM "b")'
    assert any_of({"seen": True}, {"flagged": True}, {"draft": True}) == "OR (SEEN) OR (FLAGGED) (DRAFT)"
