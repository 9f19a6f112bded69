import gzip
import io
import tempfile
import unittest
from decimal import Decimal
from pathlib import Path
from unittest import mock

import zstandard as zstd

from gnestimator.csv_reader import DelimitedRecordSource
from gnestimator.dictionary import DictionaryResolver, download_dictionary, make_key, parse_weight
from gnestimator.records import NOT_FOUND, ConfigurationError, DataRecord, Gender
from gnestimator.sources import Grid, GridRecordSource

HEADERS = "name,code,gender,wgt"

SAMPLE_DICTIONARY = HEADERS + """
john,US,M,1
mary,US,F,1
pat,US,F,0.5
pat,US,M,0.5
"""


def resolver_from_text(text: str) -> DictionaryResolver:
    with DelimitedRecordSource(io.StringIO(text)) as source:
        return DictionaryResolver.from_source(source)


class DataRulesTests(unittest.TestCase):
    def _resolve(self, rows: str, first_name: str = "John", country_code: str = "US") -> DataRecord:
        return resolver_from_text(HEADERS + rows).lookup(first_name, country_code)

    def _record(self, gender: Gender, accuracy: str) -> DataRecord:
        return DataRecord("John", "US", gender, Decimal(accuracy))

    def test_no_data(self) -> None:
        self.assertEqual(self._resolve(""), NOT_FOUND)

    def test_different_name(self) -> None:
        self.assertEqual(self._resolve("\nJon,US,M,1"), NOT_FOUND)

    def test_different_country(self) -> None:
        self.assertEqual(self._resolve("\nJohn,UK,M,1"), NOT_FOUND)

    def test_one_entry_man(self) -> None:
        self.assertEqual(self._resolve("\nJohn,US,M,1"), self._record(Gender.MAN, "1"))

    def test_one_entry_woman(self) -> None:
        self.assertEqual(self._resolve("\nJohn,US,F,0.75"), self._record(Gender.WOMAN, "0.75"))

    def test_one_entry_unknown(self) -> None:
        self.assertEqual(self._resolve("\nJohn,US,?,0.5"), self._record(Gender.UNKNOWN, "0.5"))

    def test_equal_weights_become_indeterminate(self) -> None:
        cases = {
            "FM": "\nJohn,US,F,0.5\nJohn,US,M,0.5\n",
            "MF": "\nJohn,US,M,0.5\nJohn,US,F,0.5\n",
            "?F": "\nJohn,US,?,0.5\nJohn,US,F,0.5\n",
            "?M": "\nJohn,US,?,0.45\nJohn,US,F,0.1\nJohn,US,M,0.45\n",
        }
        expected = {"FM": "0.5", "MF": "0.5", "?F": "0.5", "?M": "0.45"}
        for name, rows in cases.items():
            with self.subTest(name=name):
                self.assertEqual(self._resolve(rows), self._record(Gender.INDETERMINATE, expected[name]))

    def test_winner_woman(self) -> None:
        rows = "\nJohn,US,?,0.25\nJohn,US,F,0.3\nJohn,US,M,0.25\n"
        self.assertEqual(self._resolve(rows), self._record(Gender.WOMAN, "0.3"))

    def test_winner_man(self) -> None:
        rows = "\nJohn,US,?,0.45\nJohn,US,F,0.05\nJohn,US,M,0.5\n"
        self.assertEqual(self._resolve(rows), self._record(Gender.MAN, "0.5"))

    def test_winner_unknown(self) -> None:
        rows = "\nJohn,US,?,0.57\nJohn,US,F,0.4\nJohn,US,M,0.03\n"
        self.assertEqual(self._resolve(rows), self._record(Gender.UNKNOWN, "0.57"))


class DictionaryResolverTests(unittest.TestCase):
    def test_sample_dictionary(self) -> None:
        resolver = resolver_from_text(SAMPLE_DICTIONARY)
        self.assertEqual(len(resolver), 3)
        self.assertEqual(resolver.lookup("john", "US"), DataRecord("john", "US", Gender.MAN, Decimal("1.0")))
        self.assertEqual(resolver.lookup("mary", "US"), DataRecord("mary", "US", Gender.WOMAN, Decimal("1.0")))
        self.assertEqual(resolver.lookup("pat", "US"), DataRecord("pat", "US", Gender.INDETERMINATE, Decimal("0.5")))

    def test_lookup_is_trimmed_and_case_insensitive(self) -> None:
        resolver = resolver_from_text(SAMPLE_DICTIONARY)
        self.assertEqual(resolver.lookup("  JOHN ", " us ").gender, Gender.MAN)
        self.assertIn(("Mary", "us"), resolver)
        self.assertNotIn(("Mary", "GB"), resolver)
        self.assertIs(resolver.lookup(None, None), NOT_FOUND)

    def test_not_found_sentinel(self) -> None:
        record = resolver_from_text(SAMPLE_DICTIONARY).lookup("Zed", "US")
        self.assertIsNone(record.first_name)
        self.assertIsNone(record.country_code)
        self.assertEqual(record.gender, Gender.NOT_AVAILABLE)
        self.assertEqual(record.accuracy, 0)

    def test_columns_found_by_header_name(self) -> None:
        resolver = resolver_from_text("gender,wgt,name,code\nF,1,mary,US\n")
        self.assertEqual(resolver.lookup("mary", "US").gender, Gender.WOMAN)

    def test_default_column_positions(self) -> None:
        resolver = resolver_from_text("first,country,sex,weight\njohn,US,M,1\n")
        self.assertEqual(resolver.lookup("john", "US").gender, Gender.MAN)

    def test_empty_names_are_skipped(self) -> None:
        resolver = resolver_from_text(HEADERS + "\n,US,M,1\n")
        self.assertEqual(len(resolver), 0)

    def test_later_group_with_same_key_wins(self) -> None:
        resolver = resolver_from_text(HEADERS + "\nJohn,US,M,1\njohn,US,F,0.5\n")
        self.assertEqual(len(resolver), 1)
        self.assertEqual(resolver.lookup("JOHN", "US"), DataRecord("john", "US", Gender.WOMAN, Decimal("0.5")))

    def test_rows_are_only_compared_when_adjacent(self) -> None:
        resolver = resolver_from_text(HEADERS + "\njohn,US,M,1\nmary,US,F,1\njohn,US,F,0.5\n")
        self.assertEqual(resolver.lookup("john", "US").gender, Gender.WOMAN)

    def test_reresolving_table_is_idempotent(self) -> None:
        resolver = resolver_from_text(SAMPLE_DICTIONARY)
        grid = Grid([HEADERS.split(","), *resolver.iter_rows()])
        again = DictionaryResolver.from_source(GridRecordSource(grid))
        self.assertEqual(again.table, resolver.table)

    def test_process_yields_one_record_per_row(self) -> None:
        resolver = resolver_from_text(SAMPLE_DICTIONARY)
        source = DelimitedRecordSource(io.StringIO("first,country,other\nJohn,US,1\nMary,US,2\nPat,US,3\nNobody,US,4"))
        records = list(resolver.process(source, "first", 1))
        self.assertEqual(
            [(r.gender, r.accuracy) for r in records],
            [
                (Gender.MAN, Decimal("1")),
                (Gender.WOMAN, Decimal("1")),
                (Gender.INDETERMINATE, Decimal("0.5")),
                (Gender.NOT_AVAILABLE, Decimal("0")),
            ],
        )

    def test_process_fails_before_reading_rows(self) -> None:
        resolver = resolver_from_text(SAMPLE_DICTIONARY)
        source = DelimitedRecordSource(io.StringIO("first,country\nJohn,US\n"))
        with self.assertRaises(ConfigurationError) as ctx:
            resolver.process(source, "given_name", "country")
        self.assertEqual(ctx.exception.code, "MISSING_COLUMN")
        self.assertEqual(source.current_row_index, -1)


class ParsingHelpersTests(unittest.TestCase):
    def test_parse_weight(self) -> None:
        self.assertEqual(parse_weight("0.5"), Decimal("0.5"))
        self.assertEqual(parse_weight(" 0.25 "), Decimal("0.25"))
        self.assertEqual(parse_weight("1e-1"), Decimal("0.1"))
        self.assertEqual(parse_weight("abc"), Decimal(0))
        self.assertEqual(parse_weight(""), Decimal(0))
        self.assertEqual(parse_weight("NaN"), Decimal(0))
        self.assertEqual(parse_weight(None), Decimal(0))

    def test_gender_from_text(self) -> None:
        self.assertEqual(Gender.from_text("M"), Gender.MAN)
        self.assertEqual(Gender.from_text("female"), Gender.WOMAN)
        self.assertEqual(Gender.from_text("?"), Gender.UNKNOWN)
        self.assertEqual(Gender.from_text("x"), Gender.UNKNOWN)
        self.assertEqual(Gender.from_text(""), Gender.UNKNOWN)
        self.assertEqual(Gender.from_text(None), Gender.UNKNOWN)

    def test_make_key(self) -> None:
        self.assertEqual(make_key(" Ana ", "br "), make_key("ANA", "BR"))
        self.assertNotEqual(make_key("ana", "BR"), make_key("ana", "PT"))


class DictionaryFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_plain_file(self) -> None:
        path = self.tmp / "dict.csv"
        path.write_text(SAMPLE_DICTIONARY, encoding="utf-8")
        self.assertEqual(len(DictionaryResolver.from_path(path)), 3)

    def test_gzip_file(self) -> None:
        path = self.tmp / "dict.csv.gz"
        with gzip.open(path, "wt", encoding="utf-8") as fh:
            fh.write(SAMPLE_DICTIONARY)
        self.assertEqual(DictionaryResolver.from_path(path).lookup("pat", "US").gender, Gender.INDETERMINATE)

    def test_zstandard_file(self) -> None:
        path = self.tmp / "dict.csv.zst"
        path.write_bytes(zstd.ZstdCompressor().compress(SAMPLE_DICTIONARY.encode("utf-8")))
        self.assertEqual(DictionaryResolver.from_path(path).lookup("mary", "US").gender, Gender.WOMAN)

    def test_missing_file(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            DictionaryResolver.from_path(self.tmp / "nope.csv")
        self.assertEqual(ctx.exception.code, "MISSING_FILE")

    def test_stream_closed_when_header_read_fails(self) -> None:
        stream = mock.MagicMock()
        with mock.patch("gnestimator.dictionary.open_dictionary_stream", return_value=stream), mock.patch(
            "gnestimator.dictionary.DelimitedRecordSource", side_effect=ValueError("bad header")
        ):
            with self.assertRaises(ValueError):
                DictionaryResolver.from_path(self.tmp / "dict.csv")
        stream.close.assert_called_once()

    def test_undecodable_bytes_do_not_stop_loading(self) -> None:
        path = self.tmp / "dict.csv"
        path.write_bytes(b"name,code,gender,wgt\n" + "josé,ES,M,1\n".encode("latin-1") + b"mary,US,F,1\n")
        resolver = DictionaryResolver.from_path(path)
        self.assertEqual(len(resolver), 2)
        self.assertEqual(resolver.lookup("jos\ufffd", "ES").gender, Gender.MAN)
        self.assertEqual(resolver.lookup("mary", "US").gender, Gender.WOMAN)

    def test_download_dictionary(self) -> None:
        response = mock.MagicMock()
        response.__enter__.return_value = response
        response.headers = {"content-length": str(len(SAMPLE_DICTIONARY))}
        response.iter_content.return_value = [SAMPLE_DICTIONARY[:10].encode(), SAMPLE_DICTIONARY[10:].encode()]
        dest = self.tmp / "data" / "dict.csv"
        with mock.patch("gnestimator.dictionary.requests.get", return_value=response) as get:
            result = download_dictionary("https://example.org/dict.csv", dest)
        get.assert_called_once()
        response.raise_for_status.assert_called_once()
        self.assertEqual(result, dest)
        self.assertEqual(dest.read_text(encoding="utf-8"), SAMPLE_DICTIONARY)
        self.assertFalse(dest.with_suffix(".csv.tmp").exists())


if __name__ == "__main__":
    unittest.main()
