"""
Summary reports for a processing run.

`write_text_summary` renders the tab-separated "GnE Results" document;
`build_summary_payload` / `write_json_summary` produce a machine-readable
snapshot of the same statistics, validated against the bundled JSON schema.
"""
from __future__ import annotations

import datetime as dt
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, TextIO

import jsonschema

from . import config
from .records import CodedError, FieldInfo
from .sources import RecordSource
from .summary import CountAndPercentage, SummaryInfo

_INTRO = (
    "Program code released by Richardson Oliver Insights under CC-BY-SA 40 license. "
    "Find out how to contribute and help Diversity Equity and Inclusion initiatives in the "
    "inventor base and download/updates at:",
    "https://roipatents.com/",
    "",
    "Learn about the Diversity Pledge at:",
    "https://increasingdii.org/",
)


class ReportValidationError(CodedError):
    """Summary payload does not match the bundled JSON schema."""


@dataclass(frozen=True)
class ColumnsUsed:
    first_name: str
    country_code: str
    disclosure_id: str
    person_id: str

    def describe(self) -> str:
        return (
            f"First Name = {self.first_name}, Country Code = {self.country_code}, "
            f"Disclosure ID = {self.disclosure_id}, Person ID = {self.person_id}"
        )


def describe_column(field: FieldInfo, source: RecordSource) -> str:
    """Describe how a column was chosen: quoted header name, bare index, or unused."""
    if field.name:
        return f"'{field.name}'"
    if field.index is None:
        return "unused"
    if source.has_headers:
        name = source.get_name(field.index)
        return "unknown" if name is None else f"'{name}'"
    return str(field.index)


def format_date(date: dt.date) -> str:
    return config.REPORT_DATE_FORMAT.format(date=date)


def format_percent(value: float) -> str:
    return f"{value:.1%}"


class _SummaryWriter:
    def __init__(self, stream: TextIO) -> None:
        self.stream = stream

    def line(self, text: str = "") -> None:
        self.stream.write(text)
        self.stream.write("\n")

    def heading(self, text: str, include_percent: bool) -> None:
        self.line()
        self.line(text)
        self.line("-" * len(text))
        self.line("\tItem\t\tTotal\t\t" + ("Percent" if include_percent else "") + "\t\tComments")

    def count_row(self, item: str, total: int, comment: str = "") -> None:
        self.line(f"\t{item}\t\t{total}\t\t\t\t{comment}")

    def fraction_row(self, item: str, total: float, comment: str = "") -> None:
        self.line(f"\t{item}\t\t{total:.1f}\t\t\t\t{comment}")

    def rate_row(self, item: str, info: CountAndPercentage, comment: str = "") -> None:
        self.line(f"\t{item}\t\t{info.count}\t\t{format_percent(info.percentage)}\t\t{comment}")


def write_text_summary(
    stream: TextIO,
    summary: SummaryInfo,
    columns: ColumnsUsed,
    *,
    dictionary_label: str = config.DICTIONARY_LABEL,
    generated: Optional[dt.date] = None,
) -> None:
    out = _SummaryWriter(stream)
    out.line(config.REPORT_TITLE)
    out.line(f"Generated\t{format_date(generated or dt.date.today())}")
    out.line(f"Dictionary\t{dictionary_label}")
    out.line(f"Columns Used\t{columns.describe()}")
    out.line()
    for text in _INTRO:
        out.line(text)

    out.heading("Basic Counts", False)
    out.count_row(
        "Number of Patents/Apps/Disclosures",
        summary.unique_disclosures,
        "Number of distinct disclosures/patents/applications listed",
    )
    out.count_row(
        "Number of Unique Inventors",
        summary.unique_people,
        "Looks for inventor uniqueness based on provided email addresses/employee identifiers",
    )
    out.count_row(
        "Number of Total Inventors",
        summary.row_count,
        "Total number of listed inventors, e.g. each instance of Jane Doe counts",
    )

    out.heading("Women Inventor Rate Estimate", True)
    rate = summary.inventor_rate()
    out.rate_row("Number of Unique Inventors: All", rate.all)
    out.rate_row("Number of Unique Inventors: Women", rate.women)
    out.rate_row("Number of Unique Inventors: Men", rate.men)
    out.rate_row("Number of Unique Inventors: Undetermined", rate.undetermined)

    out.heading("Patent Output Estimate", True)
    output = summary.disclosure_output()
    out.rate_row("Number of Disclosures/Patents/Apps: All", output.all)
    out.rate_row("Number with at Least one Woman Inventor", output.at_least_one_woman)
    out.rate_row("Number with at Least one Man Inventor", output.at_least_one_man)
    out.rate_row("Number with at Least one Undetermined Inventor", output.at_least_one_undetermined)
    out.line()
    out.rate_row(
        "Number with Solo Woman Inventor",
        output.solo_woman,
        "Only counts patents/apps/disclosures with a single inventor who is estimated to be a woman",
    )
    out.rate_row(
        "Number with Solo Man Inventor",
        output.solo_man,
        "Only counts patents/apps/disclosures with a single inventor who is estimated to be a man",
    )

    out.heading("Fractional Inventorship Rate Estimate", False)
    fractional = summary.fractional_inventorship()
    out.fraction_row("Number of Disclosures/Patents/Apps: All", fractional.all)
    out.fraction_row("Weighted Count of Disclosures: Women", fractional.women)
    out.fraction_row("Weighted Count of Disclosures: Men", fractional.men)
    out.fraction_row("Weighted Count of Disclosures: Undetermined", fractional.undetermined)


def _rate(info: CountAndPercentage) -> dict[str, Any]:
    return {"count": info.count, "percentage": info.percentage}


def build_summary_payload(
    summary: SummaryInfo,
    columns: ColumnsUsed,
    *,
    dictionary_label: str = config.DICTIONARY_LABEL,
    generated: Optional[dt.date] = None,
) -> dict[str, Any]:
    rate = summary.inventor_rate()
    output = summary.disclosure_output()
    fractional = summary.fractional_inventorship()
    return {
        "generated": (generated or dt.date.today()).isoformat(),
        "dictionary": dictionary_label,
        "columns_used": {
            "first_name": columns.first_name,
            "country_code": columns.country_code,
            "disclosure_id": columns.disclosure_id,
            "person_id": columns.person_id,
        },
        "basic_counts": {
            "disclosures": summary.unique_disclosures,
            "unique_people": summary.unique_people,
            "rows": summary.row_count,
        },
        "inventor_rate": {name: _rate(value) for name, value in rate._asdict().items()},
        "disclosure_output": {name: _rate(value) for name, value in output._asdict().items()},
        "fractional_inventorship": dict(fractional._asdict()),
    }


def load_schema(path=config.SUMMARY_SCHEMA_PATH) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def validate_summary_payload(payload: dict[str, Any], schema: Optional[dict[str, Any]] = None) -> None:
    validator = jsonschema.Draft202012Validator(schema or load_schema())
    errors = sorted(validator.iter_errors(payload), key=lambda e: len(list(e.absolute_path)))
    if errors:
        error = errors[0]
        details = {
            "path": list(error.absolute_path),
            "schema_path": list(error.absolute_schema_path),
            "message": error.message,
        }
        raise ReportValidationError("SCHEMA_VIOLATION", "Summary payload failed schema validation.", details)


def write_json_summary(path, payload: dict[str, Any], schema: Optional[dict[str, Any]] = None) -> Path:
    """Validate and write the JSON summary atomically."""
    validate_summary_payload(payload, schema)
    path = Path(path)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    with open(temp_path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False)
        fh.write("\n")
    os.replace(temp_path, path)
    return path
