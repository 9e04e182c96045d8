"""Unit tests for payload decoding."""

from __future__ import annotations

import pytest

from services.decoder import (
    DecodeError,
    DecodeFailure,
    decode_message,
    decode_reading_value,
    parse_value,
)


def _failure_kind(payload: bytes | str) -> DecodeFailure:
    with pytest.raises(DecodeError) as excinfo:
        decode_reading_value(payload)
    return excinfo.value.kind


def test_decode_valid_message() -> None:
    message = decode_message(b'{"tds_value": "412.5"}')

    assert message.tds_value == "412.5"
    assert decode_reading_value(b'{"tds_value": "412.5"}') == 412.5


def test_decode_accepts_text_and_ignores_extra_keys() -> None:
    assert decode_reading_value('{"tds_value": "-3", "sensor": "pool"}') == -3.0


def test_decode_rejects_invalid_utf8() -> None:
    assert _failure_kind(b"\xff\xfe\x00") is DecodeFailure.encoding


@pytest.mark.parametrize(
    "payload",
    [b"not json", b"[1, 2]", b'"412"', b'{"tds_value": 412.5}', b'{"tds_value": null}', b""],
)
def test_decode_rejects_wrong_structure(payload: bytes) -> None:
    assert _failure_kind(payload) is DecodeFailure.structure


def test_decode_reports_missing_field() -> None:
    with pytest.raises(DecodeError) as excinfo:
        decode_message(b'{"value": "12.0"}')

    assert excinfo.value.kind is DecodeFailure.missing_field
    assert "tds_value" in str(excinfo.value)


@pytest.mark.parametrize("text", ["abc", "", " 12.0", "1_000", "nan", "inf", "-Infinity", "12,5"])
def test_parse_value_rejects_non_numeric_text(text: str) -> None:
    with pytest.raises(DecodeError) as excinfo:
        parse_value(text)

    assert excinfo.value.kind is DecodeFailure.numeric


@pytest.mark.parametrize(
    ("text", "expected"),
    [("12.5", 12.5), ("0", 0.0), ("-4.25", -4.25), ("1e3", 1000.0), (".5", 0.5)],
)
def test_parse_value_accepts_float_text(text: str, expected: float) -> None:
    assert parse_value(text) == expected


def test_decode_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        decode_reading_value(b'{"tds_value": "abc"}')


@pytest.mark.parametrize("payload", [b"[" * 200_000, b'{"a":' * 200_000])
def test_deeply_nested_payload_is_a_structure_failure(payload: bytes) -> None:
    assert _failure_kind(payload) is DecodeFailure.structure
