"""
Record sources: forward-only row readers with positional and header-based
field access.

`RecordSource` holds the shared bookkeeping (current row values, header map,
row-read listeners). Concrete sources implement `_read_row`:
`DelimitedRecordSource` (csv_reader.py) over a character stream and
`GridRecordSource` below over an in-memory grid of cells.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator, Optional, Sequence, Union

RowReadListener = Callable[["RecordSource"], None]


class RecordSource(ABC):
    def __init__(self, has_headers: bool = True) -> None:
        self.has_headers = has_headers
        self.headers: Optional[dict[str, int]] = None
        self.current_row_index = -1
        self._current: list[str] = []
        self._row_read_listeners: list[RowReadListener] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __getitem__(self, key: Union[int, str]) -> Optional[str]:
        if isinstance(key, str):
            index = self.get_ordinal(key)
            if index is None:
                return None
            key = index
        if key < 0 or key >= len(self._current):
            return None
        return self._current[key]

    def __iter__(self) -> Iterator["RecordSource"]:
        while self.read_next():
            yield self

    @property
    def field_count(self) -> int:
        return len(self._current)

    @property
    def row_count(self) -> int:
        """Number of data rows when known up front, otherwise -1."""
        return -1

    def get_name(self, index: int) -> Optional[str]:
        if not self.headers:
            return None
        for name, position in self.headers.items():
            if position == index:
                return name
        return None

    def get_ordinal(self, name: str) -> Optional[int]:
        if self.headers is None:
            return None
        return self.headers.get(name)

    def values(self) -> list[str]:
        return list(self._current)

    def add_row_read_listener(self, listener: RowReadListener) -> None:
        self._row_read_listeners.append(listener)

    def remove_row_read_listener(self, listener: RowReadListener) -> None:
        self._row_read_listeners.remove(listener)

    def read_next(self) -> bool:
        if not self._read_row():
            return False
        for listener in list(self._row_read_listeners):
            listener(self)
        return True

    def _build_headers(self, names: Sequence[str]) -> dict[str, int]:
        headers: dict[str, int] = {}
        for index, name in enumerate(names):
            headers.setdefault(name, index)
        return headers

    @abstractmethod
    def _read_row(self) -> bool:
        """Load the next row into `_current`; return False when exhausted."""

    def close(self) -> None:
        pass


def column_letter(number: int) -> str:
    """Return the spreadsheet-style letter name of a one-based column number."""
    if number < 1:
        raise ValueError(f"Column numbers start at 1, got {number}")
    letters = []
    while number:
        number, rem = divmod(number - 1, 26)
        letters.append(chr(ord("A") + rem))
    return "".join(reversed(letters))


class Grid:
    """In-memory cell grid addressed by one-based (row, column) pairs."""

    def __init__(self, rows: Optional[Sequence[Sequence[Any]]] = None, title: str = "Sheet 1") -> None:
        self.title = title
        self._cells: dict[tuple[int, int], Any] = {}
        for row_number, row in enumerate(rows or [], start=1):
            for column_number, value in enumerate(row, start=1):
                self.set_cell(row_number, column_number, value)

    def set_cell(self, row: int, column: int, value: Any) -> None:
        if row < 1 or column < 1:
            raise ValueError(f"Cell ({row}, {column}) is outside the grid")
        if value is None or value == "":
            self._cells.pop((row, column), None)
        else:
            self._cells[(row, column)] = value

    def get_cell(self, row: int, column: int) -> Any:
        return self._cells.get((row, column))

    def cell_text(self, row: int, column: int) -> str:
        value = self._cells.get((row, column))
        return "" if value is None else str(value)

    @property
    def is_empty(self) -> bool:
        return not self._cells

    @property
    def min_row(self) -> int:
        return min((r for r, _ in self._cells), default=1)

    @property
    def max_row(self) -> int:
        return max((r for r, _ in self._cells), default=0)

    @property
    def min_column(self) -> int:
        return min((c for _, c in self._cells), default=1)

    @property
    def max_column(self) -> int:
        return max((c for _, c in self._cells), default=0)

    def rows(self) -> list[list[str]]:
        """Return the used range as text, one list per row."""
        return [
            [self.cell_text(r, c) for c in range(self.min_column, self.max_column + 1)]
            for r in range(self.min_row, self.max_row + 1)
        ]


class GridRecordSource(RecordSource):
    """Reads rows from a Grid, skipping empty rows.

    `rows_to_skip` leading rows are ignored before the header (or first data)
    row, and `rows_to_trim` rows are dropped from the bottom of the used
    range. `current_row_index` is the grid row number of the current row so
    writers can target the same row.
    """

    def __init__(
        self,
        grid: Grid,
        has_headers: bool = True,
        rows_to_skip: int = 0,
        rows_to_trim: int = 0,
    ) -> None:
        super().__init__(has_headers)
        if rows_to_skip < 0 or rows_to_trim < 0:
            raise ValueError("rows_to_skip and rows_to_trim must be non-negative")
        self.grid = grid
        self.rows_to_skip = rows_to_skip
        self.rows_to_trim = rows_to_trim
        self._start_column = grid.min_column
        self._end_column = grid.max_column
        self._final_row = grid.max_row - rows_to_trim
        self.current_row_index = grid.min_row + rows_to_skip - 1
        self.header_row_index = self.current_row_index
        if has_headers and self._read_row():
            self.header_row_index = self.current_row_index
            names = []
            for column in range(self._start_column, self._end_column + 1):
                title = self.grid.cell_text(self.header_row_index, column)
                if not title.strip():
                    title = column_letter(column)
                names.append(title)
            self.headers = self._build_headers(names)
        else:
            self.headers = self._build_headers(
                [column_letter(column) for column in range(self._start_column, self._end_column + 1)]
            )
            self._current = [""] * (self._end_column - self._start_column + 1)

    @property
    def row_count(self) -> int:
        return max(0, self._final_row - self.header_row_index)

    def _read_row(self) -> bool:
        while self.current_row_index < self._final_row:
            self.current_row_index += 1
            values = [
                self.grid.cell_text(self.current_row_index, column)
                for column in range(self._start_column, self._end_column + 1)
            ]
            if any(values):
                self._current = values
                return True
        return False
