"""
Reference dictionary loading and name/country lookups.

Dictionary rows carry (name, code, gender, wgt) and must arrive grouped by
(name, code): only adjacent rows are compared when picking the winning
gender for a key.
"""
from __future__ import annotations

import gzip
import io
import logging
import math
import sys
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterator, Optional, TextIO, Union

import requests
import zstandard as zstd
from tqdm import tqdm

from . import config
from .csv_reader import DelimitedRecordSource, open_text
from .records import NOT_FOUND, ConfigurationError, DataRecord, FieldInfo, Gender
from .sources import RecordSource

logger = logging.getLogger(__name__)

ColumnRef = Union[FieldInfo, str, int]


def make_key(first_name: Optional[str], country_code: Optional[str]) -> str:
    """Normalized lookup key: trimmed, case-insensitive name and code."""
    name = (first_name or "").strip().casefold()
    code = (country_code or "").strip().casefold()
    return f"{name}{config.KEY_SEPARATOR}{code}"


def parse_weight(text: Optional[str]) -> Decimal:
    """Parse a dictionary weight; unparseable or non-finite values weigh 0."""
    if text is None:
        return Decimal(0)
    try:
        value = Decimal(text.strip())
        if value.is_finite():
            return value
    except InvalidOperation:
        pass
    try:
        as_float = float(text)
    except ValueError:
        logger.debug("Unparseable dictionary weight %r, using 0", text)
        return Decimal(0)
    if not math.isfinite(as_float):
        return Decimal(0)
    return Decimal(repr(as_float))


def open_dictionary_stream(path) -> TextIO:
    """Open a plain, gzip or zstandard compressed dictionary as text."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError("MISSING_FILE", f"Dictionary file not found: '{path}'", {"path": str(path)})
    suffix = path.suffix.lower()
    if suffix == ".gz":
        return gzip.open(path, "rt", encoding=config.TEXT_ENCODING, errors=config.TEXT_ERRORS, newline="")
    if suffix == ".zst":
        fh = open(path, "rb")
        try:
            reader = zstd.ZstdDecompressor().stream_reader(fh, closefd=True)
        except Exception:
            fh.close()
            raise
        return io.TextIOWrapper(reader, encoding=config.TEXT_ENCODING, errors=config.TEXT_ERRORS, newline="")
    return open_text(path)


def download_dictionary(url: str, dest, *, timeout: int = config.DOWNLOAD_TIMEOUT) -> Path:
    """Stream a dictionary file to `dest`, replacing it only once complete."""
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    temp_path = dest.with_suffix(dest.suffix + ".tmp")
    logger.info("[*] Downloading dictionary from %s", url)
    with requests.get(url, headers=config.HEADERS, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        total = int(response.headers.get("content-length", 0)) or None
        try:
            with open(temp_path, "wb") as fh, tqdm(
                total=total,
                unit="B",
                unit_scale=True,
                desc="Downloading dictionary",
                disable=not sys.stderr.isatty(),
            ) as pbar:
                for chunk in response.iter_content(chunk_size=config.DOWNLOAD_CHUNK_SIZE):
                    if not chunk:
                        continue
                    fh.write(chunk)
                    pbar.update(len(chunk))
            temp_path.replace(dest)
        finally:
            if temp_path.exists():
                temp_path.unlink()
    logger.info("[+] Dictionary saved to %s", dest)
    return dest


def _column_index(source: RecordSource, name: str) -> int:
    index = source.get_ordinal(name)
    return config.DICTIONARY_COLUMNS[name] if index is None else index


class DictionaryResolver:
    """Resolved name/country → gender table plus the enrichment pass over it."""

    def __init__(self) -> None:
        self.table: dict[str, DataRecord] = {}

    @classmethod
    def from_source(cls, source: RecordSource, *, show_progress: bool = False) -> "DictionaryResolver":
        resolver = cls()
        resolver.load(source, show_progress=show_progress)
        return resolver

    @classmethod
    def from_path(cls, path=None, *, show_progress: bool = False) -> "DictionaryResolver":
        path = Path(path) if path else config.DEFAULT_DICTIONARY_FILE
        logger.info("[*] Loading dictionary %s", path)
        stream = open_dictionary_stream(path)
        try:
            source = DelimitedRecordSource(stream, has_headers=True, close_stream=True)
        except Exception:
            stream.close()
            raise
        with source:
            resolver = cls.from_source(source, show_progress=show_progress)
        logger.info("[+] Dictionary ready: %s name/country keys", len(resolver))
        return resolver

    def __len__(self) -> int:
        return len(self.table)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, tuple) and len(key) == 2:
            return make_key(*key) in self.table
        return False

    def load(self, source: RecordSource, *, show_progress: bool = False) -> None:
        name_index = _column_index(source, "name")
        code_index = _column_index(source, "code")
        gender_index = _column_index(source, "gender")
        weight_index = _column_index(source, "wgt")

        rows = tqdm(
            source,
            desc="Loading dictionary",
            unit=" rows",
            miniters=10000,
            disable=not show_progress or not sys.stderr.isatty(),
        )
        winner = NOT_FOUND
        for row in rows:
            record = DataRecord(
                first_name=row[name_index],
                country_code=row[code_index],
                gender=Gender.from_text(row[gender_index]),
                accuracy=parse_weight(row[weight_index]),
            )
            if record.first_name == winner.first_name and record.country_code == winner.country_code:
                if record.accuracy > winner.accuracy:
                    winner = record
                elif record.accuracy == winner.accuracy:
                    winner = replace(winner, gender=Gender.INDETERMINATE)
            else:
                self._commit(winner)
                winner = record
        self._commit(winner)

    def _commit(self, record: DataRecord) -> None:
        if record.first_name:
            self.table[make_key(record.first_name, record.country_code)] = record

    def iter_rows(self) -> Iterator[tuple[str, str, str, str]]:
        """Yield (name, code, gender, wgt) rows for the resolved table in key order."""
        for key in sorted(self.table):
            record = self.table[key]
            yield (
                record.first_name or "",
                record.country_code or "",
                record.gender.value,
                str(record.accuracy),
            )

    def lookup(self, first_name: Optional[str], country_code: Optional[str]) -> DataRecord:
        return self.table.get(make_key(first_name, country_code), NOT_FOUND)

    def process(self, source: RecordSource, first_name: ColumnRef, country_code: ColumnRef) -> Iterator[DataRecord]:
        """Return a lazy stream with one DataRecord per row of `source`.

        Columns are resolved immediately so a missing column fails before any
        row is consumed.
        """
        first_name_index = resolve_required(source, first_name, "First Name")
        country_index = resolve_required(source, country_code, "Country Code")
        return self._iter_records(source, first_name_index, country_index)

    def _iter_records(self, source: RecordSource, first_name_index: int, country_index: int) -> Iterator[DataRecord]:
        for row in source:
            yield self.lookup(row[first_name_index], row[country_index])


def resolve_required(source: RecordSource, column: ColumnRef, label: str) -> int:
    field = FieldInfo.of(column)
    index = field.resolve(source)
    if index is None or index < 0:
        raise ConfigurationError(
            "MISSING_COLUMN",
            f"{label} column could not be determined",
            {"column": field.name if field.name else field.index},
        )
    return index
