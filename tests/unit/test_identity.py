"""Tests for contributor identity normalisation and classification."""

import pytest

from repo_harvester.utils.identity import (
    has_address_shape,
    is_ignored_identity,
    normalize_identity,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Dev@Example.COM", "dev@example.com"),
        ("  spaced@x.io\n", "spaced@x.io"),
        ("", None),
        ("   ", None),
        (None, None),
    ],
)
def test_normalize_identity(raw, expected):
    assert normalize_identity(raw) == expected


@pytest.mark.parametrize(
    "identity,ignored",
    [
        ("dev@example.com", False),
        ("12345+dev@users.noreply.github.com", True),
        ("NoReply@example.com", True),
        ("no-at-sign.example.com", True),
        ("two@@example.com", True),
        ("local@nodot", True),
        ("root@localhost", True),
        ("with space@example.com", True),
    ],
)
def test_is_ignored_identity(identity, ignored):
    assert is_ignored_identity(identity) is ignored


def test_classification_is_deterministic():
    identity = "someone@example.org"
    assert {is_ignored_identity(identity) for _ in range(5)} == {False}


def test_empty_patterns_only_check_shape():
    assert is_ignored_identity("bot@noreply.example.com", patterns=[]) is False
    assert has_address_shape("bot@noreply.example.com")
