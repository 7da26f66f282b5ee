import pytest

from commentlens.utils.llm_json import ParseError, clean_json_text, extract_balanced_json, parse_json_safe


def test_extract_balanced_json_skips_surrounding_noise():
    assert extract_balanced_json('prefix noise {"a":{"b":1}} trailing') == '{"a":{"b":1}}'


def test_extract_balanced_json_without_braces_returns_none():
    assert extract_balanced_json("no braces here") is None


def test_extract_balanced_json_unterminated_returns_none():
    assert extract_balanced_json('{"a": {"b": 1}') is None


def test_extract_balanced_json_ignores_braces_inside_strings():
    text = 'Here: {"text": "closing } brace and { opener", "q": "say \\"}\\""} done {"x": 2}'
    assert extract_balanced_json(text) == '{"text": "closing } brace and { opener", "q": "say \\"}\\""}'


def test_extract_balanced_json_returns_first_object():
    assert extract_balanced_json('{"first": 1} {"second": 2}') == '{"first": 1}'


def test_parse_json_safe_strict():
    assert parse_json_safe('{"comments": []}') == {"comments": []}


def test_parse_json_safe_trailing_comma():
    assert parse_json_safe('{"a":1,}') == {"a": 1}


def test_parse_json_safe_code_fence_and_control_chars():
    text = '```json\n{"comments": [\x00{"text": "test", "sentiment": 0.5,}],}\n```'
    assert parse_json_safe(text) == {"comments": [{"text": "test", "sentiment": 0.5}]}


def test_parse_json_safe_unquoted_keys_and_single_quotes():
    assert parse_json_safe("{comments: [{text: 'hi', sentiment: -0.2}]}") == {
        "comments": [{"text": "hi", "sentiment": -0.2}]
    }


def test_parse_json_safe_never_evaluates_code():
    with pytest.raises(ParseError):
        parse_json_safe("__import__('os').getcwd()")


def test_parse_json_safe_rejects_prose():
    with pytest.raises(ParseError) as excinfo:
        parse_json_safe("not json at all")
    assert excinfo.value.snippet == "not json at all"


def test_parse_error_truncates_diagnostics():
    text = "x" * 500
    with pytest.raises(ParseError) as excinfo:
        parse_json_safe(text)
    assert len(excinfo.value.snippet) == 200


def test_clean_json_text_strips_fences_and_commas():
    assert clean_json_text('```JSON {"a": [1, 2, ], } ```') == ' {"a": [1, 2]} '


def test_parse_json_safe_deep_nesting_raises_parse_error():
    with pytest.raises(ParseError):
        parse_json_safe('{"comments": ' + "[" * 100000 + "]" * 100000 + "}")
