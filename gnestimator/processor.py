"""
File processors: run the enrichment pass over an input, write the gender
and accuracy columns next to each row, and aggregate the summary.

Both backends share `iter_data_records`; they differ only in where the two
extra values go (spliced into the raw delimited line, or into grid cells).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from . import config
from .csv_reader import DelimitedRecordSource
from .dictionary import DictionaryResolver, resolve_required
from .records import EMPTY_FIELD, ConfigurationError, DataRecord, FieldInfo, ProcessingCancelled
from .report import ColumnsUsed, build_summary_payload, describe_column, write_json_summary, write_text_summary
from .sources import Grid, GridRecordSource, RecordSource
from .summary import MismatchEvent, SummaryInfo

logger = logging.getLogger(__name__)


@dataclass
class ProcessorOptions:
    input_path: Optional[Path] = None
    output_path: Optional[Path] = None
    summary_path: Optional[Path] = None
    json_summary_path: Optional[Path] = None
    has_headers: bool = True
    delimiter: str = config.DEFAULT_DELIMITER
    quote: str = config.DEFAULT_QUOTE
    first_name: FieldInfo = EMPTY_FIELD
    country_code: FieldInfo = EMPTY_FIELD
    person_id: FieldInfo = EMPTY_FIELD
    disclosure_id: FieldInfo = EMPTY_FIELD
    rows_to_skip: int = 0
    rows_to_trim: int = 0
    on_row_read: Optional[Callable[[RecordSource], None]] = None
    on_summary_mismatch: Optional[Callable[[MismatchEvent], None]] = None
    should_cancel: Optional[Callable[[], bool]] = None
    dictionary_label: str = config.DICTIONARY_LABEL

    def __post_init__(self):
        for name in ("input_path", "output_path", "summary_path", "json_summary_path"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Path):
                setattr(self, name, Path(value))
        for name in ("first_name", "country_code", "person_id", "disclosure_id"):
            setattr(self, name, FieldInfo.of(getattr(self, name)))

    def resolved_output_path(self) -> Path:
        if self.output_path is not None:
            return self.output_path
        self._require_input()
        return self.input_path.with_name(f"{self.input_path.stem}{config.OUTPUT_SUFFIX}{self.input_path.suffix}")

    def resolved_summary_path(self) -> Path:
        if self.summary_path is not None:
            return self.summary_path
        self._require_input()
        return self.input_path.with_name(f"{self.input_path.stem}{config.SUMMARY_SUFFIX}")

    def _require_input(self) -> None:
        if self.input_path is None or not str(self.input_path):
            raise ConfigurationError("INVALID_OPTION", "Input File is required", {"option": "input_path"})


def _optional_index(source: RecordSource, column: FieldInfo) -> Optional[int]:
    index = column.resolve(source)
    return index if index is not None and index >= 0 else None


def _value_or_none(source: RecordSource, index: Optional[int]) -> Optional[str]:
    return None if index is None else source[index]


def iter_data_records(
    resolver: DictionaryResolver,
    options: ProcessorOptions,
    source: RecordSource,
    summary: SummaryInfo,
) -> Iterator[DataRecord]:
    """Enrich every row of `source`, feeding each record into `summary` after the caller sees it.

    Column resolution and callback wiring happen before the generator is
    returned, so configuration errors surface without consuming a row.
    """
    first_name_index = resolve_required(source, options.first_name, "First Name")
    country_index = resolve_required(source, options.country_code, "Country Code")
    person_index = _optional_index(source, options.person_id)
    disclosure_index = _optional_index(source, options.disclosure_id)

    if options.on_summary_mismatch is not None:
        summary.add_mismatch_listener(options.on_summary_mismatch)
    if options.on_row_read is not None:
        source.add_row_read_listener(options.on_row_read)

    def _generate():
        for record in resolver.process(source, first_name_index, country_index):
            if options.should_cancel is not None and options.should_cancel():
                raise ProcessingCancelled(f"Processing cancelled after {summary.row_count} rows")
            yield record
            summary.add(
                _value_or_none(source, person_index),
                _value_or_none(source, disclosure_index),
                record,
            )

    return _generate()


def columns_used(options: ProcessorOptions, source: RecordSource) -> ColumnsUsed:
    return ColumnsUsed(
        first_name=describe_column(options.first_name, source),
        country_code=describe_column(options.country_code, source),
        disclosure_id=describe_column(options.disclosure_id, source),
        person_id=describe_column(options.person_id, source),
    )


def split_terminator(raw_line: str) -> tuple[str, str]:
    """Split a raw line into its body and its final CR/LF character, if any."""
    if raw_line and raw_line[-1] in ("\r", "\n"):
        return raw_line[:-1], raw_line[-1]
    return raw_line, ""


class DelimitedFileProcessor:
    """Copies delimited text to the output with Gender and Accuracy columns appended."""

    def process(self, resolver: DictionaryResolver, options: ProcessorOptions) -> SummaryInfo:
        options._require_input()
        output_path = options.resolved_output_path()
        summary_path = options.resolved_summary_path()
        summary = SummaryInfo()

        with DelimitedRecordSource.open(
            options.input_path,
            has_headers=options.has_headers,
            delimiter=options.delimiter,
            quote=options.quote,
        ) as source:
            records = iter_data_records(resolver, options, source, summary)
            logger.info("[*] Writing enriched rows to %s", output_path)
            try:
                self._write_output(output_path, source, records)
            except Exception:
                output_path.unlink(missing_ok=True)
                raise
            columns = columns_used(options, source)

        with open(summary_path, "w", encoding=config.OUTPUT_ENCODING, newline="") as fh:
            write_text_summary(fh, summary, columns, dictionary_label=options.dictionary_label)
        if options.json_summary_path is not None:
            payload = build_summary_payload(summary, columns, dictionary_label=options.dictionary_label)
            write_json_summary(options.json_summary_path, payload)
        logger.info("[+] Processed %s rows (%s unique people)", summary.row_count, summary.unique_people)
        return summary

    def _write_output(self, output_path: Path, source: DelimitedRecordSource, records: Iterator[DataRecord]) -> None:
        delimiter = source.delimiter
        with open(output_path, "w", encoding=config.OUTPUT_ENCODING, newline="") as out:
            if source.has_headers and source.raw_header_line is not None:
                body, terminator = split_terminator(source.raw_header_line)
                out.write(f"{body}{delimiter}{config.GENDER_COLUMN}{delimiter}{config.ACCURACY_COLUMN}{terminator}")
            for record in records:
                body, terminator = split_terminator(source.raw_line)
                out.write(f"{body}{delimiter}{record.gender.value}{delimiter}{record.accuracy}{terminator}")
            out.write(source.raw_line)


class GridProcessor:
    """Writes Gender and Accuracy into the two columns after a grid's used range."""

    def __init__(self) -> None:
        self.columns: Optional[ColumnsUsed] = None

    def process(self, resolver: DictionaryResolver, grid: Grid, options: ProcessorOptions) -> SummaryInfo:
        summary = SummaryInfo()
        source = GridRecordSource(
            grid,
            has_headers=options.has_headers,
            rows_to_skip=options.rows_to_skip,
            rows_to_trim=options.rows_to_trim,
        )
        records = iter_data_records(resolver, options, source, summary)
        gender_column = grid.max_column + 1
        accuracy_column = gender_column + 1
        if source.has_headers and source.header_row_index >= grid.min_row:
            grid.set_cell(source.header_row_index, gender_column, config.GENDER_COLUMN)
            grid.set_cell(source.header_row_index, accuracy_column, config.ACCURACY_COLUMN)
        for record in records:
            grid.set_cell(source.current_row_index, gender_column, record.gender.value)
            grid.set_cell(source.current_row_index, accuracy_column, record.accuracy)
        self.columns = columns_used(options, source)
        return summary


def create_processor(path) -> tuple[DelimitedFileProcessor, str]:
    """Pick the processor and default delimiter for an input file by extension."""
    suffix = Path(path).suffix.lower()
    delimiter = config.DELIMITERS_BY_EXTENSION.get(suffix)
    if delimiter is None:
        raise ConfigurationError(
            "UNSUPPORTED_FILE_TYPE",
            f"Cannot process files with extension: '{suffix}'",
            {"path": str(path)},
        )
    return DelimitedFileProcessor(), delimiter
