"""
Canonical JSON encoding for MAC inputs.

Both the sign and the verify path reduce a JSON value to bytes through
``canonicalize`` in this module, and nowhere else. Two JSON texts that
decode to the same logical value always produce the same bytes:

- object keys sorted by Unicode code point (UTF-8 byte order)
- array order preserved
- no insignificant whitespace
- UTF-8 output, non-ASCII characters emitted verbatim
- integers emitted exactly; integral floats emitted as integers;
  other floats in shortest round-trip form
- NaN and Infinity rejected
- at most MAX_NESTING_DEPTH nested arrays/objects per decoded value

IMPORTANT:
- Changing any of these rules invalidates every previously issued MAC.
"""

import json
import math
from typing import Any, Dict, List, Union

from payload_signer.app.core.errors import MalformedInput

JSONValue = Union[
    None, bool, int, float, str, List["JSONValue"], Dict[str, "JSONValue"]
]


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

# Nested arrays/objects, counting the outermost. Must stay well below
# the interpreter recursion limit.
MAX_NESTING_DEPTH = 256


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite number '{name}' is not valid JSON")


def _check_depth(value: JSONValue, max_depth: int) -> None:
    stack = [(value, 1)]
    while stack:
        node, depth = stack.pop()
        if isinstance(node, dict):
            children = node.values()
        elif isinstance(node, list):
            children = node
        else:
            continue
        if depth > max_depth:
            raise MalformedInput(
                f"Input nests deeper than {max_depth} levels"
            )
        stack.extend((child, depth + 1) for child in children)


def parse_json(
    raw: Union[bytes, bytearray, str],
    *,
    max_depth: int = MAX_NESTING_DEPTH,
) -> JSONValue:
    """
    Decode a JSON text into plain Python values.

    Raises:
        MalformedInput: on invalid UTF-8, invalid JSON, NaN/Infinity
        literals, or more than ``max_depth`` nested arrays/objects.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedInput("Input is not valid UTF-8") from exc

    try:
        value = json.loads(raw, parse_constant=_reject_constant)
    except RecursionError as exc:
        raise MalformedInput(
            f"Input nests deeper than {max_depth} levels"
        ) from exc
    except ValueError as exc:
        raise MalformedInput(f"Input is not valid JSON: {exc}") from exc

    _check_depth(value, max_depth)
    return value


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _normalize(value: Any) -> JSONValue:
    # bool is an int subclass and must pass through untouched
    if value is None or isinstance(value, (bool, str, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise MalformedInput("Non-finite numbers cannot be canonicalized")
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, dict):
        normalized: Dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise MalformedInput(
                    f"Object keys must be strings, got {type(key).__name__}"
                )
            normalized[key] = _normalize(item)
        return normalized
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    raise MalformedInput(
        f"Object of type {type(value).__name__} is not a JSON value"
    )


def canonicalize(value: Any) -> bytes:
    """
    Return the canonical UTF-8 byte encoding of a JSON value.

    Pure and idempotent: ``canonicalize(parse_json(canonicalize(v)))``
    equals ``canonicalize(v)``.

    Raises:
        MalformedInput: if the value contains non-JSON types, non-finite
        numbers, lone surrogates, or is nested too deeply.
    """
    try:
        normalized = _normalize(value)
        text = json.dumps(
            normalized,
            sort_keys=True,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )
        return text.encode("utf-8")
    except (ValueError, RecursionError) as exc:
        raise MalformedInput(f"Value cannot be canonicalized: {exc}") from exc
