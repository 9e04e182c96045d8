"""Decoding of raw broker payloads into reading values."""

from __future__ import annotations

import json
import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError


class DecodeFailure(str, Enum):
    """Distinct reasons a payload can be rejected."""

    encoding = "encoding"
    structure = "structure"
    missing_field = "missing_field"
    numeric = "numeric"


class DecodeError(ValueError):
    """Raised when a payload cannot be turned into a reading value."""

    def __init__(self, kind: DecodeFailure, detail: str) -> None:
        super().__init__(f"{kind.value}: {detail}")
        self.kind = kind
        self.detail = detail


class IncomingMessage(BaseModel):
    """Wire shape published by the sensor: ``{"tds_value": "<number>"}``."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    tds_value: StrictStr


def decode_message(payload: bytes | str) -> IncomingMessage:
    """Validate encoding and document shape of a raw payload."""
    if isinstance(payload, (bytes, bytearray)):
        try:
            text = bytes(payload).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(DecodeFailure.encoding, "payload is not valid UTF-8") from exc
    else:
        text = payload

    try:
        document: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(DecodeFailure.structure, f"invalid JSON: {exc.msg}") from exc
    except RecursionError as exc:
        raise DecodeError(DecodeFailure.structure, "JSON nested too deeply") from exc

    if not isinstance(document, dict):
        raise DecodeError(
            DecodeFailure.structure,
            f"expected a JSON object, got {type(document).__name__}",
        )

    try:
        return IncomingMessage.model_validate(document)
    except ValidationError as exc:
        error_types = {error["type"] for error in exc.errors()}
        if "missing" in error_types:
            raise DecodeError(DecodeFailure.missing_field, "missing field 'tds_value'") from exc
        raise DecodeError(DecodeFailure.structure, "field 'tds_value' must be a string") from exc


def parse_value(text: str) -> float:
    """Parse the textual measurement into a finite float."""
    if not text or text != text.strip() or "_" in text:
        raise DecodeError(DecodeFailure.numeric, f"invalid numeric value {text!r}")
    try:
        value = float(text)
    except ValueError as exc:
        raise DecodeError(DecodeFailure.numeric, f"invalid numeric value {text!r}") from exc
    if not math.isfinite(value):
        raise DecodeError(DecodeFailure.numeric, f"non-finite numeric value {text!r}")
    return value


def decode_reading_value(payload: bytes | str) -> float:
    return parse_value(decode_message(payload).tds_value)
