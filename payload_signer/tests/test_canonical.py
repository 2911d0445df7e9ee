"""
Canonical encoding contract.

Sign and verify only interoperate if two JSON texts with the same
logical content reduce to the same bytes. These tests pin the exact
encoding rules; changing them invalidates every issued MAC.
"""

import pytest

from payload_signer.app.core.errors import MalformedInput
from payload_signer.app.utils.canonical import (
    MAX_NESTING_DEPTH,
    canonicalize,
    parse_json,
)


# ---------------------------------------------------------------------------
# Determinism
# ---------------------------------------------------------------------------

def test_key_order_does_not_affect_bytes():
    a = canonicalize(parse_json('{"b":2,"a":1}'))
    b = canonicalize(parse_json('{"a":1,"b":2}'))

    assert a == b == b'{"a":1,"b":2}'


def test_whitespace_does_not_affect_bytes():
    compact = parse_json(b'{"a":[1,2,{"y":true,"x":null}],"b":"s"}')
    spaced = parse_json(
        b'{\n  "b" : "s",\n  "a" : [ 1, 2, { "x": null, "y": true } ]\n}\n'
    )

    assert canonicalize(compact) == canonicalize(spaced)


def test_nested_objects_are_sorted_recursively():
    value = parse_json('{"z":{"d":1,"c":{"f":2,"e":3}},"a":0}')

    assert canonicalize(value) == b'{"a":0,"z":{"c":{"e":3,"f":2},"d":1}}'


def test_array_order_is_preserved():
    assert canonicalize([3, 1, 2]) == b"[3,1,2]"
    assert canonicalize([3, 1, 2]) != canonicalize([1, 2, 3])


def test_keys_sorted_by_code_point():
    value = {"b": 1, "é": 4, "a": 2, "z": 5, "A": 3}

    assert canonicalize(value) == '{"A":3,"a":2,"b":1,"z":5,"é":4}'.encode(
        "utf-8"
    )


def test_idempotent_over_reparse():
    value = parse_json('{"k":[1.5,"ü\\n",{"b":false,"a":null}],"n":-0.25}')
    once = canonicalize(value)

    assert canonicalize(parse_json(once)) == once


# ---------------------------------------------------------------------------
# Scalar conventions
# ---------------------------------------------------------------------------

def test_non_ascii_emitted_verbatim_as_utf8():
    assert canonicalize({"name": "Zoë 東京"}) == '{"name":"Zoë 東京"}'.encode(
        "utf-8"
    )


def test_control_characters_escaped():
    assert canonicalize('a"b\\c\n\x01') == b'"a\\"b\\\\c\\n\\u0001"'


def test_integral_floats_render_as_integers():
    assert canonicalize(parse_json("[1.0,1e2,-0.0,2.50]")) == b"[1,100,0,2.5]"


def test_integer_and_integral_float_spellings_agree():
    assert canonicalize(parse_json('{"n":1}')) == canonicalize(
        parse_json('{"n":1.0}')
    )


def test_large_integers_are_exact():
    assert canonicalize(parse_json("12345678901234567890123")) == (
        b"12345678901234567890123"
    )


def test_booleans_are_not_numbers():
    assert canonicalize([True, False, None, 1, 0]) == b"[true,false,null,1,0]"


# ---------------------------------------------------------------------------
# Malformed input
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b"",
        b'{"a":1,}',
        b'{"a":NaN}',
        b"[Infinity]",
        b"[-Infinity]",
        b"\xff\xfe",
    ],
)
def test_parse_rejects_invalid_json(raw):
    with pytest.raises(MalformedInput):
        parse_json(raw)


def test_overflowing_number_is_rejected_at_canonicalization():
    value = parse_json("[1e400]")

    with pytest.raises(MalformedInput):
        canonicalize(value)


def test_lone_surrogate_is_rejected():
    value = parse_json('"\\ud800"')

    with pytest.raises(MalformedInput):
        canonicalize(value)


def test_pathological_nesting_is_rejected():
    with pytest.raises(MalformedInput):
        parse_json("[" * 200_000 + "]" * 200_000)


def nested(depth: int) -> str:
    return "[" * depth + "]" * depth


def test_nesting_at_the_limit_is_accepted():
    value = parse_json(nested(MAX_NESTING_DEPTH))

    assert canonicalize(value) == nested(MAX_NESTING_DEPTH).encode()


def test_nesting_beyond_the_limit_is_rejected():
    with pytest.raises(MalformedInput, match="deeper than"):
        parse_json(nested(MAX_NESTING_DEPTH + 1))


def test_nesting_limit_counts_objects_and_arrays():
    text = '{"a":' + nested(MAX_NESTING_DEPTH - 1) + "}"
    assert parse_json(text) is not None

    with pytest.raises(MalformedInput):
        parse_json(text, max_depth=MAX_NESTING_DEPTH - 1)


def test_non_json_types_are_rejected():
    with pytest.raises(MalformedInput):
        canonicalize({"when": object()})

    with pytest.raises(MalformedInput):
        canonicalize({1: "int key"})
