import json

import pytest

from switchboard.optimistic_json import (
    OptimisticJsonParser,
    close_partial_json,
    extract_raw_values,
    flatten_keys,
    get_optimistic_value,
    parse_optimistic,
)


def test_complete_document_is_flattened_at_every_depth():
    doc = {"a": {"b": {"c": 1}}, "tags": [{"x": 1}], "ok": True}

    result = OptimisticJsonParser.parse(json.dumps(doc))

    assert result.is_complete
    assert result.parsed == doc
    assert result.extracted_values["a"] == {"b": {"c": 1}}
    assert result.extracted_values["a.b"] == {"c": 1}
    assert result.extracted_values["a.b.c"] == 1
    assert result.extracted_values["tags"] == [{"x": 1}]
    assert "tags.x" not in result.extracted_values
    assert "tags.0" not in result.extracted_values


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_empty_input(text):
    result = OptimisticJsonParser.parse(text)

    assert result.parsed is None
    assert result.is_complete is False
    assert result.extracted_values == {}


def test_truncated_string_is_closed():
    result = OptimisticJsonParser.parse('{"message": "Hello wor')

    assert result.is_complete is False
    assert result.parsed == {"message": "Hello wor"}
    assert result.extracted_values["message"] == "Hello wor"


def test_truncated_nested_object():
    assert close_partial_json('{"a": {"b": 1') == '{"a": {"b": 1}}'

    result = OptimisticJsonParser.parse('{"a": {"b": 1')

    assert result.parsed == {"a": {"b": 1}}
    assert result.extracted_values["a"] == {"b": 1}
    assert result.extracted_values["a.b"] == 1


def test_truncated_array_inside_object():
    result = OptimisticJsonParser.parse('{"files": [{"name": "a.yml", "yml_content": "na')

    assert result.parsed == {"files": [{"name": "a.yml", "yml_content": "na"}]}
    assert result.extracted_values["files"][0]["yml_content"] == "na"


def test_repair_is_idempotent():
    text = '{"sql": "select 1", "opts": {"limit": [1, 2'
    first = OptimisticJsonParser.parse(text)

    again = OptimisticJsonParser.parse(close_partial_json(text))

    assert first.parsed is not None
    assert again.is_complete
    assert again.parsed == first.parsed


def test_escaped_quote_does_not_end_string():
    result = OptimisticJsonParser.parse('{"thought": "she said \\"hi')

    assert result.parsed == {"thought": 'she said "hi'}


def test_dangling_backslash_is_dropped():
    result = OptimisticJsonParser.parse('{"path": "C:\\')

    assert result.parsed == {"path": "C:"}


def test_brackets_inside_strings_are_ignored():
    result = OptimisticJsonParser.parse('{"sql": "select [x] from {t}", "n": [1')

    assert result.parsed == {"sql": "select [x] from {t}", "n": [1]}


@pytest.mark.parametrize("token,expected", [("tru", True), ("true", True), ("fals", False), ("false", False)])
def test_boolean_prefix_detection(token, expected):
    result = OptimisticJsonParser.parse('{"flag": ' + token)

    assert result.extracted_values["flag"] is expected


def test_truncated_boolean_falls_back_to_raw_extraction():
    result = OptimisticJsonParser.parse('{"thought": "ok", "nextThoughtNeeded": fals')

    assert result.parsed is None
    assert result.is_complete is False
    assert result.extracted_values == {"thought": "ok", "nextThoughtNeeded": False}


def test_mismatched_brackets_do_not_raise():
    result = OptimisticJsonParser.parse('{"a": [1, 2}')

    assert result.is_complete is False
    assert result.parsed is None


def test_raw_extraction_numbers_and_strings():
    values = extract_raw_values('{"limit": -12.5, "name": "orders", "count": 3., "next": ')

    assert values["limit"] == -12.5
    assert values["name"] == "orders"
    assert values["count"] == 3.0
    assert "next" not in values


def test_raw_extraction_later_duplicate_wins():
    values = extract_raw_values('{"a": "first", "a": "second", "b": [')

    assert values["a"] == "second"


def test_raw_extraction_string_value_is_not_mistaken_for_key():
    values = extract_raw_values('{"text": "x", "y": 1, "z": tr')

    assert values == {"text": "x", "y": 1.0}


def test_trailing_comma_keeps_earlier_values():
    result = OptimisticJsonParser.parse('{"final_response": "Done", ')

    assert result.parsed is None
    assert result.extracted_values["final_response"] == "Done"


def test_top_level_array_is_not_an_object():
    result = parse_optimistic("[1, 2, 3]")

    assert result.is_complete is False
    assert result.parsed is None
    assert result.extracted_values == {}


@pytest.mark.parametrize("text", ['"abc', "42", "true"])
def test_top_level_scalar_is_not_an_object(text):
    result = OptimisticJsonParser.parse(text)

    assert result.parsed is None
    assert result.is_complete is False


def test_get_optimistic_value():
    values = {"thought": "hmm", "count": 2}

    assert get_optimistic_value(values, "thought", "") == "hmm"
    assert get_optimistic_value(values, "missing", "fallback") == "fallback"
    assert get_optimistic_value(values, "missing") is None
    assert get_optimistic_value(values, "count", "", expected_type=str) == ""


def test_deep_nesting_degrades_instead_of_raising():
    result = OptimisticJsonParser.parse('{"a": ' + "[" * 100000)

    assert result.parsed is None
    assert result.is_complete is False
    assert result.extracted_values == {}


def test_deep_nesting_keeps_earlier_raw_values():
    result = OptimisticJsonParser.parse('{"name": "x", "a": ' + "[" * 100000 + "1" + "]" * 100000 + "}")

    assert result.parsed is None
    assert result.extracted_values["name"] == "x"


def test_flatten_keys_handles_deep_objects():
    doc = {}
    node = doc
    for _ in range(5000):
        node["k"] = {}
        node = node["k"]

    paths = flatten_keys(doc)

    assert len(paths) == 5000
    assert ".".join(["k"] * 5000) in paths


@pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
def test_non_standard_constants_are_not_complete(constant):
    result = OptimisticJsonParser.parse('{"name": "orders", "limit": ' + constant + "}")

    assert result.is_complete is False
    assert result.parsed is None
    assert result.extracted_values == {"name": "orders"}


def test_truncated_infinity_is_not_repaired_into_a_float():
    result = OptimisticJsonParser.parse('{"limit": -Infinity')

    assert result.parsed is None
    assert "limit" not in result.extracted_values
