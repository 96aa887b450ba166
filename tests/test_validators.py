from __future__ import annotations

import json

import pytest

from sse_chat.errors import MalformedRequestError
from sse_chat.validators import ensure_encodable, parse_json_body, sanitize_html, validate_message


def test_sanitize_escapes_each_special_character() -> None:
    assert sanitize_html("&") == "&amp;"
    assert sanitize_html("<") == "&lt;"
    assert sanitize_html(">") == "&gt;"
    assert sanitize_html('"') == "&quot;"
    assert sanitize_html("'") == "&#x27;"
    assert sanitize_html("/") == "&#x2F;"


def test_sanitize_leaves_other_text_untouched() -> None:
    text = "  hello world 123 テスト 漢字 \t\n-_.!?#%  "
    assert sanitize_html(text) == text


def test_sanitize_script_tag() -> None:
    escaped = sanitize_html('<script>alert("xss")</script>Safe content')
    assert escaped == "&lt;script&gt;alert(&quot;xss&quot;)&lt;&#x2F;script&gt;Safe content"


def test_sanitize_twice_differs_from_once() -> None:
    once = sanitize_html("a & b")
    assert once == "a &amp; b"
    assert sanitize_html(once) == "a &amp;amp; b"


def test_valid_pair_has_no_errors() -> None:
    assert validate_message("alice", "hello") == []
    assert validate_message("山田 太郎", "こんにちは") == []
    assert validate_message("カタカナ-user_1.0", "hi") == []


def test_missing_fields_report_both_errors() -> None:
    errors = validate_message(None, None)
    assert "Username is required" in errors
    assert "Message is required" in errors


def test_empty_username() -> None:
    assert "Username cannot be empty" in validate_message("", "hello")
    assert "Username cannot be empty" in validate_message("   ", "hello")


def test_non_string_fields() -> None:
    errors = validate_message(123, ["hello"])
    assert errors == ["Username must be a string", "Message must be a string"]


def test_username_length_boundary() -> None:
    assert validate_message("a" * 50, "hello") == []
    assert validate_message("  " + "a" * 50 + "  ", "hello") == []
    assert validate_message("a" * 51, "hello") == ["Username must be 50 characters or less"]


def test_message_length_boundary() -> None:
    assert validate_message("alice", "m" * 500) == []
    assert validate_message("alice", "\n" + "m" * 500 + " ") == []
    assert validate_message("alice", "m" * 501) == ["Message must be 500 characters or less"]


def test_empty_message() -> None:
    assert validate_message("alice", " \t ") == ["Message cannot be empty"]


@pytest.mark.parametrize("username", ["bad<name>", "alice!", "bob@example", "emoji😀", "semi;colon"])
def test_username_invalid_characters(username: str) -> None:
    assert validate_message(username, "hello") == ["Username contains invalid characters"]


def test_all_violations_reported_together() -> None:
    errors = validate_message("x" * 51, "")
    assert errors == ["Username must be 50 characters or less", "Message cannot be empty"]


def test_parse_json_body_returns_object() -> None:
    assert parse_json_body(b'{"username": "alice", "message": "hi"}') == {"username": "alice", "message": "hi"}


def test_parse_json_body_rejects_broken_json() -> None:
    with pytest.raises(MalformedRequestError) as exc_info:
        parse_json_body(b'{"username": "alice",')
    assert exc_info.value.to_dict() == {
        "error": "Bad Request",
        "message": "Invalid JSON format",
        "details": ["Request body contains invalid JSON"],
    }


def test_parse_json_body_rejects_non_object() -> None:
    with pytest.raises(MalformedRequestError) as exc_info:
        parse_json_body(b'["alice", "hi"]')
    assert exc_info.value.message == "Invalid JSON format"


def test_parse_json_body_rejects_empty_body() -> None:
    with pytest.raises(MalformedRequestError) as exc_info:
        parse_json_body(b"")
    assert exc_info.value.message == "Request body is required"


def test_parse_json_body_rejects_bad_encoding() -> None:
    with pytest.raises(MalformedRequestError):
        parse_json_body(b'{"username": "\xff\xfe"}')


def test_parse_json_body_rejects_lone_surrogate() -> None:
    raw = json.dumps({"username": "alice", "message": "hi " + chr(0xD800)}).encode("ascii")

    with pytest.raises(MalformedRequestError) as exc_info:
        parse_json_body(raw)
    assert exc_info.value.to_dict() == {
        "error": "Bad Request",
        "message": "Invalid JSON format",
        "details": ["Request body contains invalid Unicode text"],
    }


def test_ensure_encodable_accepts_astral_characters() -> None:
    ensure_encodable({"username": "alice", "message": "party " + chr(0x1F389)})

    with pytest.raises(MalformedRequestError):
        ensure_encodable({"username": chr(0xDC00), "message": "hi"})


def test_lengths_count_code_points() -> None:
    emoji = chr(0x1F600)

    assert validate_message("alice", emoji * 500) == []
    assert validate_message("alice", emoji * 501) == ["Message must be 500 characters or less"]
