"""Tests for the compact sequence-set builder."""

import random

import pytest

from imapsession.imap.sequence import build_sequence_set, expand_sequence_set


@pytest.mark.parametrize(
    ("uids", "expected"),
    [
        ([1, 2, 3, 2, 3, 4], "1:4"),
        ([1, 3, 4, 5, 7], "1,3:5,7"),
        ([4], "4"),
        ([9, 1, 2], "1:2,9"),
    ],
)
def test_build_sequence_set_collapses_runs(uids, expected):
    assert build_sequence_set(uids) == expected


def test_sequence_set_expands_back_to_the_distinct_identifiers():
    rng = random.Random(1234)
    for _ in range(50):
        uids = [rng.randint(1, 60) for _ in range(rng.randint(1, 40))]
        assert expand_sequence_set(build_sequence_set(uids)) == set(uids)


def test_empty_collection_is_rejected():
    with pytest.raises(ValueError):
        build_sequence_set([])


def test_none_is_rejected():
    with pytest.raises(TypeError):
        build_sequence_set(None)


def test_negative_identifiers_are_rejected():
    with pytest.raises(ValueError):
        build_sequence_set([-1, 1])


def test_zero_is_a_valid_identifier():
    assert build_sequence_set([2, 0, 1]) == "0:2"
    assert expand_sequence_set(build_sequence_set([0, 5])) == {0, 5}


def test_expand_rejects_empty_elements():
    with pytest.raises(ValueError):
        expand_sequence_set("1,,3")
