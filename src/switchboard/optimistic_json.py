"""
Optimistic JSON Parser — live previews of streamed tool arguments

A tool call's arguments arrive as text deltas and the accumulated text is
not valid JSON until the call finishes. The parser returns the best
reconstruction available so far, in three tiers:

  1. Strict parse of the text as-is        → is_complete=True
  2. Strict parse after closing open
     strings, arrays and objects           → is_complete=False
  3. Raw scan for "key": value pairs        → parsed=None

Never raises. A weaker result is always returned instead.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# "3." is a number cut mid-stream
_NUMBER = re.compile(r"-?\d+\.?\d*")
_BOOLEAN = re.compile(r"true|tru|false|fals")
_WHITESPACE = " \t\r\n"


@dataclass
class ParseResult:
    """Outcome of one optimistic parse."""
    parsed: Optional[Dict[str, Any]] = None
    is_complete: bool = False
    extracted_values: Dict[str, Any] = field(default_factory=dict)


def flatten_keys(value: Any) -> Dict[str, Any]:
    """Every object property at every depth, keyed by dotted path.

    Arrays are leaves: their items never contribute paths.
    """
    out: Dict[str, Any] = {}
    pending: List[Tuple[str, Any]] = [("", value)]
    while pending:
        prefix, node = pending.pop()
        if not isinstance(node, dict):
            continue
        children = []
        for key, child in node.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            out[path] = child
            children.append((path, child))
        pending.extend(reversed(children))
    return out


def close_partial_json(text: str) -> str:
    """Append whatever closers a truncated JSON document is missing."""
    stack: List[str] = []
    in_string = False
    escape_next = False

    for ch in text:
        if escape_next:
            escape_next = False
            continue
        if ch == "\\":
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            stack.append("}")
        elif ch == "[":
            stack.append("]")
        elif ch in "}]" and stack:
            expected = stack.pop()
            if expected != ch:
                # malformed input: keep the expectation and carry on
                stack.append(expected)

    closed = text
    if in_string:
        if escape_next:
            closed = closed[:-1]
        closed += '"'
    return closed + "".join(reversed(stack))


def _skip_whitespace(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in _WHITESPACE:
        pos += 1
    return pos


def _read_string(text: str, start: int) -> Tuple[str, int, bool]:
    """Read the string literal opening at ``start``.

    Returns (decoded value, position after it, whether it was closed).
    """
    pos = start + 1
    escaped = False
    while pos < len(text):
        ch = text[pos]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            return _decode(text[start + 1:pos]), pos + 1, True
        pos += 1

    raw = text[start + 1:]
    if escaped:
        raw = raw[:-1]
    return _decode(raw), len(text), False


def _decode(raw: str) -> str:
    try:
        return json.loads(f'"{raw}"')
    except ValueError:
        # half-written \u escape and friends
        return raw


def extract_raw_values(text: str) -> Dict[str, Any]:
    """Scan unparseable text for ``"key": value`` pairs in one pass.

    A value opening with a quote is a string (closing quote optional). A
    leading minus or digit makes it a number. Otherwise a possibly cut
    boolean token (tru, true, fals, false) is accepted. Later duplicates win.
    """
    values: Dict[str, Any] = {}
    pos = 0
    length = len(text)

    while pos < length:
        if text[pos] != '"':
            pos += 1
            continue

        key, pos, closed = _read_string(text, pos)
        if not closed:
            break
        colon = _skip_whitespace(text, pos)
        if colon >= length or text[colon] != ":":
            # a string value or array item, not a key
            continue

        start = _skip_whitespace(text, colon + 1)
        if start >= length:
            break

        if text[start] == '"':
            values[key], pos, _ = _read_string(text, start)
            continue

        number = _NUMBER.match(text, start)
        if number:
            values[key] = float(number.group(0))
            pos = number.end()
            continue

        boolean = _BOOLEAN.match(text, start)
        if boolean:
            values[key] = boolean.group(0).startswith("tru")
            pos = boolean.end()
            continue

        pos = start

    return values


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def _loads_object(text: str) -> Dict[str, Any]:
    """Strict parse that only accepts a JSON object.

    ``NaN``/``Infinity`` are refused, and so is nesting deep enough to
    exhaust the decoder's recursion.
    """
    try:
        parsed = json.loads(text, parse_constant=_reject_constant)
    except RecursionError as exc:
        raise ValueError("nesting too deep") from exc
    if not isinstance(parsed, dict):
        raise ValueError(f"expected an object, got {type(parsed).__name__}")
    return parsed


class OptimisticJsonParser:
    """Stateless; ``parse`` is safe to call from anywhere, concurrently."""

    @staticmethod
    def parse(text: str) -> ParseResult:
        if not text or not text.strip():
            return ParseResult()

        try:
            parsed = _loads_object(text)
            return ParseResult(parsed=parsed, is_complete=True, extracted_values=flatten_keys(parsed))
        except ValueError:
            pass

        repaired = close_partial_json(text)
        try:
            parsed = _loads_object(repaired)
            return ParseResult(parsed=parsed, is_complete=False, extracted_values=flatten_keys(parsed))
        except ValueError:
            logger.debug("repair failed, falling back to raw extraction (%d chars)", len(text))

        return ParseResult(extracted_values=extract_raw_values(text))


def parse_optimistic(text: str) -> ParseResult:
    return OptimisticJsonParser.parse(text)


def get_optimistic_value(
    values: Dict[str, Any],
    key: str,
    default: Any = None,
    expected_type: Optional[type] = None,
) -> Any:
    """Look up ``key``, falling back to ``default`` when absent or mistyped."""
    if key not in values:
        return default
    value = values[key]
    if expected_type is not None and not isinstance(value, expected_type):
        return default
    return value


# Demo: replay a tool call as a provider would stream it
if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)

    streamed = '{"thought": "Check the \\"orders\\" table", "nextThoughtNeeded": false, "step": {"n": 2}}'
    for end in range(0, len(streamed) + 1, 9):
        result = OptimisticJsonParser.parse(streamed[:end])
        print(f"{streamed[:end]!r:<100} complete={result.is_complete} values={result.extracted_values}")
