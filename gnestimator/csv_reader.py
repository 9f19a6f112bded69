"""
Streaming delimited-text reader.

The tokenizer keeps the exact raw text of every record (blank lines and
terminators included) so the writer can reproduce the input byte for byte
with extra columns spliced in. CR and LF
are independent terminators; a CRLF pair ends the record on CR and the LF is
swallowed as a blank line at the start of the next read.
"""
from __future__ import annotations

import io
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, TextIO

from . import config
from .records import ConfigurationError
from .sources import RecordSource

logger = logging.getLogger(__name__)

_EOL = ("\r", "\n")


class ParseState(Enum):
    BEGINNING_OF_FIELD = 0
    OUTSIDE_QUOTES = 1
    IN_QUOTES = 2
    POSSIBLE_END_QUOTE = 3


class Tokenizer:
    """Turns a character stream into successive lists of string fields."""

    def __init__(
        self,
        stream: TextIO,
        delimiter: str = config.DEFAULT_DELIMITER,
        quote: str = config.DEFAULT_QUOTE,
        chunk_size: int = config.READ_CHUNK_SIZE,
    ) -> None:
        if len(delimiter) != 1 or len(quote) != 1:
            raise ConfigurationError(
                "INVALID_OPTION",
                "Delimiter and quote must be single characters.",
                {"delimiter": delimiter, "quote": quote},
            )
        if delimiter == quote or delimiter in _EOL or quote in _EOL:
            raise ConfigurationError(
                "INVALID_OPTION",
                "Delimiter and quote must differ from each other and from line terminators.",
                {"delimiter": delimiter, "quote": quote},
            )
        self.stream = stream
        self.delimiter = delimiter
        self.quote = quote
        self.chunk_size = chunk_size
        self.raw_text = ""
        self._chunk = ""
        self._pos = 0
        self._eof = False

    def _next_char(self) -> Optional[str]:
        if self._pos >= len(self._chunk):
            if self._eof:
                return None
            self._chunk = self.stream.read(self.chunk_size)
            self._pos = 0
            if not self._chunk:
                self._eof = True
                return None
        ch = self._chunk[self._pos]
        self._pos += 1
        return ch

    def read_record(self) -> Optional[list[str]]:
        """Return the next record's fields, or None once the stream is exhausted."""
        fields: list[str] = []
        buffer: list[str] = []
        raw: list[str] = []
        state = ParseState.BEGINNING_OF_FIELD
        delimiter = self.delimiter
        quote = self.quote
        try:
            while True:
                ch = self._next_char()
                if ch is None:
                    if not fields and not buffer:
                        return None
                    fields.append("".join(buffer))
                    return fields

                raw.append(ch)
                if state is ParseState.BEGINNING_OF_FIELD:
                    if ch == delimiter:
                        fields.append("")
                    elif ch == quote:
                        state = ParseState.IN_QUOTES
                    elif ch in _EOL:
                        if fields or buffer:
                            fields.append("".join(buffer))
                            return fields
                        # blank line: keep consuming into the same raw text
                    else:
                        buffer.append(ch)
                        state = ParseState.OUTSIDE_QUOTES

                elif state is ParseState.OUTSIDE_QUOTES:
                    if ch == delimiter:
                        fields.append("".join(buffer))
                        buffer.clear()
                        state = ParseState.BEGINNING_OF_FIELD
                    elif ch in _EOL:
                        fields.append("".join(buffer))
                        return fields
                    else:
                        buffer.append(ch)

                elif state is ParseState.IN_QUOTES:
                    if ch == quote:
                        state = ParseState.POSSIBLE_END_QUOTE
                    else:
                        buffer.append(ch)

                else:
                    if ch == delimiter:
                        fields.append("".join(buffer))
                        buffer.clear()
                        state = ParseState.BEGINNING_OF_FIELD
                    elif ch == quote:
                        buffer.append(ch)
                        state = ParseState.IN_QUOTES
                    elif ch in _EOL:
                        fields.append("".join(buffer))
                        return fields
                    else:
                        # Stray quote inside a quoted field: keep it as data.
                        buffer.append(quote)
                        buffer.append(ch)
                        state = ParseState.OUTSIDE_QUOTES
        finally:
            self.raw_text = "".join(raw)


def parse_line(text: str, delimiter: str = config.DEFAULT_DELIMITER, quote: str = config.DEFAULT_QUOTE) -> Optional[list[str]]:
    """Return the first record in `text`, or None when it holds only blank lines."""
    return Tokenizer(io.StringIO(text), delimiter, quote).read_record()


def open_text(path, encoding: str = config.TEXT_ENCODING) -> TextIO:
    """Open a text file for tokenizing: BOM-tolerant, lossy on bad bytes, without newline translation."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError("MISSING_FILE", f"Cannot open file '{path}'", {"path": str(path)})
    return open(path, "r", encoding=encoding, errors=config.TEXT_ERRORS, newline="")


class DelimitedRecordSource(RecordSource):
    """RecordSource over delimited text, exposing the raw text of each row."""

    def __init__(
        self,
        stream: TextIO,
        has_headers: bool = True,
        delimiter: str = config.DEFAULT_DELIMITER,
        quote: str = config.DEFAULT_QUOTE,
        close_stream: bool = False,
    ) -> None:
        super().__init__(has_headers)
        self._tokenizer = Tokenizer(stream, delimiter, quote)
        self._stream: Optional[TextIO] = stream
        self._close_stream = close_stream
        self.raw_header_line: Optional[str] = None
        if has_headers and self._read_row():
            self.raw_header_line = self._tokenizer.raw_text
            self.headers = self._build_headers(self._current)
            self.current_row_index = -1

    @classmethod
    def open(
        cls,
        path,
        has_headers: bool = True,
        delimiter: str = config.DEFAULT_DELIMITER,
        quote: str = config.DEFAULT_QUOTE,
        encoding: str = config.TEXT_ENCODING,
    ) -> "DelimitedRecordSource":
        stream = open_text(path, encoding)
        try:
            return cls(stream, has_headers, delimiter, quote, close_stream=True)
        except Exception:
            stream.close()
            raise

    @property
    def delimiter(self) -> str:
        return self._tokenizer.delimiter

    @property
    def quote(self) -> str:
        return self._tokenizer.quote

    @property
    def raw_line(self) -> str:
        """Exact text consumed by the last read, including any skipped blank lines."""
        return self._tokenizer.raw_text

    def _read_row(self) -> bool:
        if self._stream is None:
            return False
        fields = self._tokenizer.read_record()
        if fields is None:
            self._current = []
            return False
        self._current = fields
        self.current_row_index += 1
        return True

    def close(self) -> None:
        if self._close_stream and self._stream is not None:
            self._stream.close()
        self._stream = None
        self._close_stream = False
