import argparse
import logging
import sys
import time
from pathlib import Path

from tqdm import tqdm

from . import config
from .dictionary import DictionaryResolver, download_dictionary
from .processor import ProcessorOptions, create_processor
from .records import CodedError, ConfigurationError, FieldInfo, ProcessingCancelled

logger = logging.getLogger(__name__)


class MismatchLogger:
    """Logs person-level gender conflicts, summarising once the limit is hit."""

    def __init__(self, limit=config.MISMATCH_LOG_LIMIT):
        self.limit = limit
        self.count = 0

    def __call__(self, event):
        self.count += 1
        if self.count > self.limit:
            return
        old, new = event.old_record, event.new_record
        logger.warning(
            "[!] Person [%s] has mismatched entries: [%s]-[%s] => %s, %s vs. [%s]-[%s] => %s, %s",
            event.person_id,
            old.first_name,
            old.country_code,
            old.gender.value,
            old.accuracy,
            new.first_name,
            new.country_code,
            new.gender.value,
            new.accuracy,
        )
        if self.count == self.limit:
            logger.warning("[!] Further mismatches will only be counted.")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="gnestimator",
        description="Append estimated gender and accuracy columns to a delimited file and summarise inventorship.",
    )
    parser.add_argument("input", type=Path, help="Delimited input file (.csv, .tsv or .txt).")
    parser.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: <input>-appended).")
    parser.add_argument("-s", "--summary", type=Path, default=None, help="Summary text file (default: <input>-summary.txt).")
    parser.add_argument("--json-summary", type=Path, default=None, help="Also write a JSON summary to this path.")
    parser.add_argument(
        "-d",
        "--dictionary",
        type=Path,
        default=None,
        help=f"Reference dictionary CSV (.csv, .csv.gz or .csv.zst; default: {config.DEFAULT_DICTIONARY_FILE.name}).",
    )
    parser.add_argument(
        "--download-dictionary",
        metavar="URL",
        default=None,
        help="Download the dictionary from URL to --dictionary (or the default location) before processing.",
    )
    parser.add_argument("-f", "--first-name", required=True, help="First name column: header name or 1-based number.")
    parser.add_argument("-c", "--country", required=True, help="Country code column: header name or 1-based number.")
    parser.add_argument("-p", "--person", default=None, help="Person id column: header name or 1-based number.")
    parser.add_argument("-i", "--disclosure", default=None, help="Disclosure id column: header name or 1-based number.")
    parser.add_argument("--no-header", action="store_true", help="Input has no header row.")
    parser.add_argument("--delimiter", default=None, help="Field delimiter (default chosen by file extension).")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Stop processing after this many seconds (checked between rows).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def _deadline_check(timeout):
    if timeout is None:
        return None
    deadline = time.monotonic() + timeout
    return lambda: time.monotonic() >= deadline


def run(args):
    input_path = args.input
    if not input_path.is_file():
        raise ConfigurationError("MISSING_FILE", f"Cannot open file '{input_path}'", {"path": str(input_path)})
    processor, default_delimiter = create_processor(input_path)
    delimiter = args.delimiter if args.delimiter else default_delimiter
    if delimiter == "\\t":
        delimiter = "\t"

    dictionary_path = args.dictionary or config.DEFAULT_DICTIONARY_FILE
    if args.download_dictionary:
        download_dictionary(args.download_dictionary, dictionary_path)
    resolver = DictionaryResolver.from_path(dictionary_path, show_progress=True)

    mismatches = MismatchLogger()
    progress = tqdm(
        desc="Processing rows",
        unit=" rows",
        mininterval=config.PROGRESS_MININTERVAL,
        disable=not sys.stderr.isatty(),
    )
    options = ProcessorOptions(
        input_path=input_path,
        output_path=args.output,
        summary_path=args.summary,
        json_summary_path=args.json_summary,
        has_headers=not args.no_header,
        delimiter=delimiter,
        first_name=FieldInfo.parse(args.first_name),
        country_code=FieldInfo.parse(args.country),
        person_id=FieldInfo.parse(args.person),
        disclosure_id=FieldInfo.parse(args.disclosure),
        on_row_read=lambda _source: progress.update(1),
        on_summary_mismatch=mismatches,
        should_cancel=_deadline_check(args.timeout),
    )

    logger.info('[*] Processing "%s"', input_path)
    try:
        summary = processor.process(resolver, options)
    finally:
        progress.close()
    if mismatches.count:
        logger.warning("[!] %s person id(s) had conflicting gender estimates.", mismatches.count)
    logger.info('[+] Results written to "%s"', options.resolved_output_path())
    logger.info('[+] Summary written to "%s"', options.resolved_summary_path())
    if options.json_summary_path is not None:
        logger.info('[+] JSON summary written to "%s"', options.json_summary_path)
    return summary


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        run(args)
    except CodedError as exc:
        logger.error("[!] %s", exc)
        return 2
    except ProcessingCancelled as exc:
        logger.error("[!] %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
