"""Metadata block extraction.

A document may start with a block delimited by a marker line (``---`` by
default) holding YAML key/value pairs::

    ---
    title: Quarterly report
    authors: [Ann, Bob]
    ---
    # First heading

The block is located with a character level state machine instead of a
regular expression so the closing marker is only recognised at the start of a
line, and a line that merely begins with the delimiter character (``- item``)
stays part of the payload.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from .errors import MetadataPayloadError, MetadataSyntaxError

DEFAULT_DELIMITER = "---"

_WHITESPACE = frozenset(" \t\r\n")
_TEXT_FIELDS = ("title", "subtitle", "date", "version", "customer", "policy", "document_id")
_LIST_FIELDS = ("authors", "keywords")
_KEY_ALIASES = {
    "document": "document_id",
    "author": "authors",
}
_DUMP_KEYS = {
    "document_id": "document-id",
    "include_toc": "include-toc",
}


@dataclass(frozen=True)
class Metadata:
    title: Optional[str] = None
    subtitle: Optional[str] = None
    date: Optional[str] = None
    version: Optional[str] = None
    customer: Optional[str] = None
    policy: Optional[str] = None
    document_id: Optional[str] = None
    authors: Optional[Tuple[str, ...]] = None
    include_toc: Optional[bool] = None
    keywords: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Metadata":
        """Build a block from a deserialized payload.

        Unknown keys are ignored. Raises ``ValueError`` when a known key holds a
        value of the wrong shape.
        """
        values: Dict[str, Any] = {}
        aliased: Dict[str, Any] = {}
        for raw_key, value in data.items():
            key = str(raw_key).strip().lower().replace("-", "_")
            if key in _KEY_ALIASES:
                aliased.setdefault(_KEY_ALIASES[key], (raw_key, value))
                continue
            if key in _TEXT_FIELDS or key in _LIST_FIELDS or key == "include_toc":
                values[key] = (raw_key, value)
        for key, pair in aliased.items():
            values.setdefault(key, pair)

        kwargs: Dict[str, Any] = {}
        for key, (raw_key, value) in values.items():
            if value is None:
                continue
            if key in _TEXT_FIELDS:
                kwargs[key] = _coerce_text(raw_key, value)
            elif key in _LIST_FIELDS:
                kwargs[key] = _coerce_text_list(raw_key, value)
            else:
                if not isinstance(value, bool):
                    raise ValueError(f"'{raw_key}' must be a boolean, got {type(value).__name__}")
                kwargs[key] = value
        return cls(**kwargs)

    def to_mapping(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None:
                continue
            if isinstance(value, tuple):
                value = list(value)
            out[_DUMP_KEYS.get(item.name, item.name)] = value
        return out


def _coerce_text(key: Any, value: Any) -> str:
    if isinstance(value, bool) or isinstance(value, (list, dict, tuple)):
        raise ValueError(f"'{key}' must be a text value, got {type(value).__name__}")
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ValueError(f"'{key}' must be a text value, got {type(value).__name__}")


def _coerce_text_list(key: Any, value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list of text values, got {type(value).__name__}")
    return tuple(_coerce_text(key, item) for item in value)


# Parser states. Each character of the input is dispatched on the current
# state; the loop owns exactly one of these at a time.


@dataclass
class _SearchingStart:
    pass


@dataclass
class _ReadingBlockBody:
    buffer: List[str] = field(default_factory=list)
    at_line_start: bool = True


@dataclass
class _ReadingDelimiterMarker:
    count: int
    is_closing: bool
    body: Optional[_ReadingBlockBody] = None


@dataclass
class _SkippingNewlineAfterMarker:
    is_closing: bool
    body: Optional[_ReadingBlockBody] = None


_State = Union[_SearchingStart, _ReadingDelimiterMarker, _ReadingBlockBody, _SkippingNewlineAfterMarker]


def check_delimiter(delimiter: str) -> Tuple[str, int]:
    if not delimiter or len(set(delimiter)) != 1 or delimiter[0] in _WHITESPACE:
        raise ValueError(f"Invalid metadata delimiter {delimiter!r}: expected a run of one non-blank character")
    return delimiter[0], len(delimiter)


def _open_marker(length: int, is_closing: bool, body: Optional[_ReadingBlockBody]) -> _State:
    if length == 1:
        return _SkippingNewlineAfterMarker(is_closing=is_closing, body=body)
    return _ReadingDelimiterMarker(count=1, is_closing=is_closing, body=body)


def locate(raw_text: str, delimiter: str = DEFAULT_DELIMITER) -> Tuple[str, int]:
    """Return ``(payload, body_offset)`` of the leading metadata block.

    Raises ``MetadataSyntaxError`` when the block is missing, malformed or not
    closed before the end of the input.
    """
    marker, length = check_delimiter(delimiter)
    state: _State = _SearchingStart()

    for idx, ch in enumerate(raw_text):
        if isinstance(state, _SearchingStart):
            if ch == marker:
                state = _open_marker(length, False, None)
            elif ch not in _WHITESPACE:
                raise MetadataSyntaxError("start of metadata block not found", idx)

        elif isinstance(state, _ReadingDelimiterMarker):
            if ch == marker:
                state.count += 1
                if state.count == length:
                    state = _SkippingNewlineAfterMarker(is_closing=state.is_closing, body=state.body)
            elif state.is_closing and state.body is not None:
                # Only a prefix of the marker: the line belongs to the payload.
                body = state.body
                body.buffer.append(marker * state.count)
                body.buffer.append(ch)
                body.at_line_start = ch == "\n"
                state = body
            else:
                raise MetadataSyntaxError("malformed marker", idx)

        elif isinstance(state, _SkippingNewlineAfterMarker):
            if ch == "\n":
                if state.is_closing and state.body is not None:
                    return "".join(state.body.buffer), idx + 1
                state = _ReadingBlockBody()
            elif ch == marker and not state.is_closing:
                raise MetadataSyntaxError("malformed marker", idx)
            else:
                raise MetadataSyntaxError(f"expected newline after marker, got {ch!r}", idx)

        else:
            if ch == marker and state.at_line_start:
                state = _open_marker(length, True, state)
            else:
                state.buffer.append(ch)
                state.at_line_start = ch == "\n"

    raise MetadataSyntaxError("unexpected end of input", len(raw_text))


def parse_payload(payload: str) -> Metadata:
    """Deserialize a block payload. Raises ``ValueError`` or ``yaml.YAMLError``."""
    data = yaml.safe_load(payload) if payload.strip() else None
    if data is None:
        return Metadata()
    if not isinstance(data, dict):
        raise ValueError(f"metadata payload must be a mapping, got {type(data).__name__}")
    return Metadata.from_mapping(data)


def extract(raw_text: str, delimiter: str = DEFAULT_DELIMITER) -> Tuple[Metadata, int]:
    payload, body_offset = locate(raw_text, delimiter)
    try:
        metadata = parse_payload(payload)
    except (yaml.YAMLError, ValueError) as exc:
        raise MetadataPayloadError("metadata block could not be deserialized", body_offset) from exc
    return metadata, body_offset


def dump(metadata: Metadata, delimiter: str = DEFAULT_DELIMITER) -> str:
    check_delimiter(delimiter)
    body = yaml.safe_dump(metadata.to_mapping(), sort_keys=False, allow_unicode=True, default_flow_style=False)
    if body.strip() == "{}":
        body = ""
    return f"{delimiter}\n{body}{delimiter}\n"
