"""Tests for lenient endpoint metadata decoding."""

import pytest

from endpoint_broker.utils.metadata_utils import parse_endpoint_metadata


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('{"namespace": "dev", "nodes": 3}', {"namespace": "dev", "nodes": 3}),
        ("{}", "{}"),
        ("{not json", "{not json"),
        ("[1, 2]", "[1, 2]"),
        ("plain text", "plain text"),
        ("", ""),
        (None, None),
        ({"already": "decoded"}, {"already": "decoded"}),
        (42, "42"),
    ],
)
def test_parse_endpoint_metadata(raw, expected):
    assert parse_endpoint_metadata(raw) == expected


def test_json_string_that_is_not_an_object_stays_a_string():
    assert parse_endpoint_metadata('{"a": 1} trailing') == '{"a": 1} trailing'
