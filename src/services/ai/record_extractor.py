"""Incremental extraction of structured records from a streamed response.

The model's JSON output arrives in arbitrary fragments. `RecordExtractor`
keeps one buffer per attempt and a string-aware brace scanner that only ever
advances over new text. Whenever an object closes, the span from its opening
brace is validated against the record model; a valid span is emitted and cut
out of the buffer, an invalid one is left behind and never looked at again.
The enclosing response object (`{"rephrasedParagraphs": [...]}`) therefore
never validates and is simply ignored.

`TextCollector` is the free-text counterpart: it only accumulates and turns
the whole response into one record when the attempt ends.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from pydantic import BaseModel, ValidationError


logger = logging.getLogger(__name__)


class ReasoningFilter:
    """Drop `<think>...</think>` blocks from a fragment stream.

    Tags may be split across fragments, so a trailing partial tag is held back
    until the next fragment decides it.
    """

    OPEN = "<think>"
    CLOSE = "</think>"

    def __init__(self) -> None:
        self._pending = ""
        self._inside = False

    @staticmethod
    def _partial_tag_length(text: str, tag: str) -> int:
        for size in range(min(len(tag) - 1, len(text)), 0, -1):
            if text.endswith(tag[:size]):
                return size
        return 0

    def feed(self, fragment: str) -> str:
        text = self._pending + fragment
        self._pending = ""
        visible: list[str] = []
        while text:
            tag = self.CLOSE if self._inside else self.OPEN
            idx = text.find(tag)
            if idx == -1:
                keep = self._partial_tag_length(text, tag)
                cut = len(text) - keep
                if not self._inside:
                    visible.append(text[:cut])
                self._pending = text[cut:]
                break
            if not self._inside:
                visible.append(text[:idx])
            text = text[idx + len(tag) :]
            self._inside = not self._inside
        return "".join(visible)

    def flush(self) -> str:
        """Release a held-back partial tag at end of stream."""
        rest = "" if self._inside else self._pending
        self._pending = ""
        return rest


def strip_reasoning(text: str) -> str:
    """Remove reasoning blocks from a complete response."""
    reasoning = ReasoningFilter()
    return reasoning.feed(text) + reasoning.flush()


class Extractor(Protocol):
    """Common surface of the structured and free-text accumulators."""

    def feed(self, fragment: str) -> list[BaseModel]: ...

    def finish(self) -> list[BaseModel]: ...


class RecordExtractor:
    """Emit records from a growing JSON buffer as soon as each one is complete.

    A `{` only opens an object when the next non-blank character is `"` or
    `}`; braces in prose are skipped, so quotes around them cannot start a
    string. The decision waits for more input when the buffer ends first.
    """

    def __init__(self, record_model: type[BaseModel]) -> None:
        self._model = record_model
        self._filter = ReasoningFilter()
        self._buffer = ""
        self._pos = 0
        self._open_braces: list[int] = []
        self._in_string = False
        self._escaped = False
        self._closed = False

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, fragment: str) -> list[BaseModel]:
        self._buffer += self._filter.feed(fragment)
        return self._scan()

    def finish(self) -> list[BaseModel]:
        self._buffer += self._filter.flush()
        self._closed = True
        return self._scan()

    def _scan(self) -> list[BaseModel]:
        records: list[BaseModel] = []
        i = self._pos
        while i < len(self._buffer):
            ch = self._buffer[i]
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif ch == "\\":
                    self._escaped = True
                elif ch == '"':
                    self._in_string = False
            elif ch == '"':
                # Quotes in prose outside any object do not open strings
                if self._open_braces:
                    self._in_string = True
            elif ch == "{":
                opens = self._opens_object(i)
                if opens is None:
                    break
                if opens:
                    self._open_braces.append(i)
            elif ch == "}" and self._open_braces:
                start = self._open_braces.pop()
                record = self._validate(self._buffer[start : i + 1])
                if record is not None:
                    records.append(record)
                    self._buffer = self._buffer[:start] + self._buffer[i + 1 :]
                    i = start
                    continue
            i += 1
        self._pos = i
        return records

    def _opens_object(self, i: int) -> bool | None:
        j = i + 1
        while j < len(self._buffer) and self._buffer[j].isspace():
            j += 1
        if j == len(self._buffer):
            return False if self._closed else None
        return self._buffer[j] in "\"}"

    def _validate(self, span: str) -> BaseModel | None:
        try:
            return self._model.model_validate_json(span, strict=True)
        except ValidationError:
            # The enclosing response object and malformed records both land
            # here; neither is emitted.
            logger.debug("Skipped non-record JSON span (%d chars)", len(span))
            return None


class TextCollector:
    """Accumulate free text and emit it as a single record at attempt end."""

    def __init__(self, to_record: Callable[[str], BaseModel]) -> None:
        self._to_record = to_record
        self._filter = ReasoningFilter()
        self._parts: list[str] = []

    @property
    def buffer(self) -> str:
        return "".join(self._parts)

    def feed(self, fragment: str) -> list[BaseModel]:
        self._parts.append(self._filter.feed(fragment))
        return []

    def finish(self) -> list[BaseModel]:
        self._parts.append(self._filter.flush())
        text = self.buffer.strip()
        self._parts = []
        if not text:
            return []
        return [self._to_record(text)]
