import unittest

from gnestimator.records import FieldInfo
from gnestimator.sources import Grid, GridRecordSource, column_letter


class ColumnLetterTests(unittest.TestCase):
    def test_letters(self) -> None:
        self.assertEqual(column_letter(1), "A")
        self.assertEqual(column_letter(26), "Z")
        self.assertEqual(column_letter(27), "AA")
        self.assertEqual(column_letter(52), "AZ")
        self.assertEqual(column_letter(703), "AAA")

    def test_rejects_zero(self) -> None:
        with self.assertRaises(ValueError):
            column_letter(0)


class GridTests(unittest.TestCase):
    def test_dimensions_follow_used_cells(self) -> None:
        grid = Grid([["a", "", "c"], [], ["", "e"]])
        self.assertEqual((grid.min_row, grid.max_row), (1, 3))
        self.assertEqual((grid.min_column, grid.max_column), (1, 3))
        self.assertEqual(grid.cell_text(1, 2), "")
        self.assertEqual(grid.rows(), [["a", "", "c"], ["", "", ""], ["", "e", ""]])

    def test_empty_grid(self) -> None:
        grid = Grid()
        self.assertTrue(grid.is_empty)
        source = GridRecordSource(grid)
        self.assertFalse(source.read_next())


class GridRecordSourceTests(unittest.TestCase):
    def test_headers_and_rows(self) -> None:
        grid = Grid([["first", "country"], ["John", "US"], ["Mary", "US"]])
        source = GridRecordSource(grid)
        self.assertEqual(source.headers, {"first": 0, "country": 1})
        self.assertEqual(source.header_row_index, 1)
        rows = [(row.current_row_index, row["first"], row[1]) for row in source]
        self.assertEqual(rows, [(2, "John", "US"), (3, "Mary", "US")])

    def test_blank_header_cell_gets_column_letter(self) -> None:
        grid = Grid([["first", ""], ["John", "US"]])
        source = GridRecordSource(grid)
        self.assertEqual(source.headers, {"first": 0, "B": 1})
        self.assertEqual(FieldInfo(name="B").resolve(source), 1)

    def test_skip_trim_and_empty_rows(self) -> None:
        grid = Grid(
            [
                ["Inventor export"],
                ["first", "country"],
                ["John", "US"],
                [],
                ["Mary", "US"],
                ["Total: 2"],
            ]
        )
        source = GridRecordSource(grid, rows_to_skip=1, rows_to_trim=1)
        self.assertEqual(source.header_row_index, 2)
        self.assertEqual([(row.current_row_index, row.values()) for row in source], [(3, ["John", "US"]), (5, ["Mary", "US"])])

    def test_without_headers_uses_letters(self) -> None:
        grid = Grid([["John", "US"], ["Mary", "US"]])
        source = GridRecordSource(grid, has_headers=False)
        self.assertEqual(source.headers, {"A": 0, "B": 1})
        self.assertEqual(source.field_count, 2)
        self.assertEqual([row["A"] for row in source], ["John", "Mary"])

    def test_row_read_listener(self) -> None:
        grid = Grid([["first"], ["a"], ["b"]])
        source = GridRecordSource(grid)
        seen = []
        source.add_row_read_listener(lambda s: seen.append(s.current_row_index))
        list(source)
        self.assertEqual(seen, [2, 3])

    def test_negative_counts_rejected(self) -> None:
        with self.assertRaises(ValueError):
            GridRecordSource(Grid([["a"]]), rows_to_skip=-1)


if __name__ == "__main__":
    unittest.main()
