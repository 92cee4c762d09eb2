"""
Response Parsing Tests

Key Scenarios:
- Header blocks parse into mappings with title-cased values
- JSON bodies decode with big integers kept as strings and invalid UTF-8 replaced
- Form bodies encode nested data like HTML forms

Usage:
    pytest tests/test_parsing.py
"""

from __future__ import annotations

import pytest

from httpsession import MalformedResponseError, ResponseDecodeError
from httpsession.parsing import (
    build_query,
    canonical_header_name,
    decode_body,
    is_json_content_type,
    parse_header_block,
    split_response,
    title_case,
)


class TestSplitResponse:
    def test_splits_on_first_blank_line(self):
        head, body = split_response(b"HTTP/1.1 200 OK\r\nA: b\r\n\r\nline1\r\n\r\nline2")
        assert head == b"HTTP/1.1 200 OK\r\nA: b"
        assert body == b"line1\r\n\r\nline2"

    def test_empty_body(self):
        assert split_response(b"HTTP/1.1 204 No Content\r\n\r\n") == (
            b"HTTP/1.1 204 No Content",
            b"",
        )

    def test_missing_separator_raises(self):
        with pytest.raises(MalformedResponseError):
            split_response(b"HTTP/1.1 200 OK\r\nA: b\r\n")


class TestParseHeaderBlock:
    def test_values_are_title_cased(self):
        parsed = parse_header_block("Content-Type: application/json\r\nX-Request-Id: abc123")
        assert parsed == {"Content-Type": "Application/Json", "X-Request-Id": "Abc123"}

    def test_status_line_splits_on_whitespace(self):
        parsed = parse_header_block(b"HTTP/1.1 404 Not Found\r\nServer: nginx")
        assert parsed["HTTP/1.1"] == "404 Not Found"
        assert parsed["Server"] == "Nginx"

    def test_line_without_separator_gets_empty_value(self):
        assert parse_header_block("Lonely") == {"Lonely": ""}

    def test_parts_are_trimmed(self):
        assert parse_header_block("X-Pad:    spaced out   ") == {"X-Pad": "Spaced out"}

    def test_last_duplicate_wins(self):
        parsed = parse_header_block("Set-Cookie: a=1\r\nSet-Cookie: b=2")
        assert parsed == {"Set-Cookie": "B=2"}

    def test_key_mode_title_cases_keys_only(self):
        parsed = parse_header_block("content-type: application/json", title_case_part="key")
        assert parsed == {"Content-Type": "application/json"}

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            parse_header_block("A: b", title_case_part="both")


class TestTitleCase:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("application/json", "Application/Json"),
            ("keep-alive", "Keep-Alive"),
            ("X-ID", "X-ID"),
            ("200 OK", "200 OK"),
            ("", ""),
        ],
    )
    def test_title_case(self, raw, expected):
        assert title_case(raw) == expected

    def test_canonical_header_name(self):
        assert canonical_header_name("x-REQUEST-id") == "X-Request-Id"
        assert canonical_header_name("etag") == "Etag"


class TestDecodeBody:
    def test_json_object(self):
        assert decode_body({"Content-Type": "Application/Json"}, b'{"x":1}') == {"x": 1}

    @pytest.mark.parametrize(
        "content_type",
        ["application/json", "Application/Json; Charset=Utf-8", "APPLICATION/JSON"],
    )
    def test_json_content_type_is_case_insensitive(self, content_type):
        assert is_json_content_type(content_type)

    @pytest.mark.parametrize("content_type", [None, "", "text/json", "application/jso"])
    def test_non_json_content_types(self, content_type):
        assert not is_json_content_type(content_type)

    def test_big_integers_become_strings(self):
        body = b'{"small": 9223372036854775807, "big": 9223372036854775808, "neg": -9223372036854775809}'
        decoded = decode_body({"Content-Type": "Application/Json"}, body)
        assert decoded == {
            "small": 9223372036854775807,
            "big": "9223372036854775808",
            "neg": "-9223372036854775809",
        }

    def test_invalid_utf8_is_replaced(self):
        decoded = decode_body({"Content-Type": "Application/Json"}, b'{"name": "caf\xe9"}')
        assert decoded == {"name": "caf\ufffd"}

    def test_empty_json_body_is_none(self):
        assert decode_body({"Content-Type": "Application/Json"}, b"") is None

    def test_malformed_json_raises(self):
        with pytest.raises(ResponseDecodeError) as excinfo:
            decode_body({"Content-Type": "Application/Json"}, b"{not json")
        assert excinfo.value.body == "{not json"

    @pytest.mark.parametrize("body", [b"NaN", b"[Infinity]", b'{"x": -Infinity}'])
    def test_non_standard_constants_raise(self, body):
        with pytest.raises(ResponseDecodeError):
            decode_body({"Content-Type": "Application/Json"}, body)

    def test_deep_nesting_raises_decode_error(self):
        body = b"[" * 100000 + b"]" * 100000
        with pytest.raises(ResponseDecodeError) as excinfo:
            decode_body({"Content-Type": "Application/Json"}, body)
        assert isinstance(excinfo.value.__cause__, RecursionError)

    def test_very_long_integer_kept_as_string(self):
        digits = "9" * 5000
        decoded = decode_body({"Content-Type": "Application/Json"}, f"[{digits}]".encode())
        assert decoded == [digits]

    def test_text_body_left_as_text(self):
        assert decode_body({"Content-Type": "Text/Plain"}, b'{"x":1}') == '{"x":1}'

    def test_text_body_honours_charset(self):
        head = {"Content-Type": "Text/Html; Charset=Iso-8859-1"}
        assert decode_body(head, b"caf\xe9") == "caf\xe9"

    def test_missing_content_type_is_text(self):
        assert decode_body({}, b"plain") == "plain"


class TestBuildQuery:
    def test_flat_mapping(self):
        assert build_query({"a": "1", "b": "2"}) == "a=1&b=2"

    def test_nested_values(self):
        query = build_query({"user": {"name": "ann", "tags": ["x", "y"]}})
        assert query == "user%5Bname%5D=ann&user%5Btags%5D%5B0%5D=x&user%5Btags%5D%5B1%5D=y"

    def test_none_skipped_and_bools_numeric(self):
        assert build_query({"skip": None, "yes": True, "no": False}) == "yes=1&no=0"

    def test_spaces_encoded_as_plus(self):
        assert build_query({"q": "a b&c"}) == "q=a+b%26c"

    def test_empty(self):
        assert build_query({}) == ""
