"""Exception hierarchy for prettydoc."""

from __future__ import annotations

from typing import List, Optional


class PrettyDocError(Exception):
    """Base class for every error raised by prettydoc."""


class ConfigError(PrettyDocError):
    pass


class MetadataError(PrettyDocError):
    """Raised when the metadata block at the head of a document cannot be read."""


class MetadataSyntaxError(MetadataError):
    def __init__(self, message: str, position: int) -> None:
        self.position = position
        super().__init__(f"{message} (at character {position})")


class MetadataPayloadError(MetadataError):
    """The block is well delimited but its payload does not match the schema.

    ``body_offset`` still points past the closing marker, so callers can keep
    going with the document body.
    """

    def __init__(self, message: str, body_offset: int) -> None:
        self.body_offset = body_offset
        super().__init__(message)


class RuleError(PrettyDocError):
    pass


class AssetError(PrettyDocError):
    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.path = path
        super().__init__(message)


class ComposeError(PrettyDocError):
    pass


def format_error_chain(exc: BaseException) -> str:
    parts: List[str] = []
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        text = str(current) or type(current).__name__
        parts.append(text)
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
    return "; caused by: ".join(parts)
