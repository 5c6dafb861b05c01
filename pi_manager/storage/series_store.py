"""
Append-only CSV storage for metric series.

Each dataset is one CSV file whose first row names its columns, e.g.
``timestamp,cpu,ram,temp,disk,swap,load,wifi`` or ``timestamp,value``.
Appends are a single write under an exclusive lock; rewrites (prune, header
extension) go through a temporary file that atomically replaces the original,
so a concurrent reader sees either the old or the new file, never a torn one.
"""
import csv
import fcntl
import io
import os
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Mapping, NamedTuple, Optional, Union

from pi_manager.utils import get_logger, atomic_write_text

logger = get_logger(__name__)

TIMESTAMP_COLUMN = "timestamp"
VALUE_COLUMN = "value"

Value = Union[str, int, float, None]


class MetricSample(NamedTuple):
    """A single timestamped reading of one series."""
    timestamp: int
    value: float


class SeriesStoreError(Exception):
    """A series file could not be written."""


def _format_line(cells: List[str]) -> str:
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(cells)
    return buffer.getvalue()


def parse_value(cell: str) -> Optional[float]:
    """
    Numeric value of a CSV cell, or None for empty or sentinel cells.

    Load-average cells (``0.52/0.40/0.31``) yield their first, 1-minute figure.
    """
    cell = cell.strip()
    if not cell:
        return None
    if "/" in cell:
        cell = cell.split("/", 1)[0]
    try:
        return float(cell)
    except ValueError:
        return None


def parse_timestamp(cell: str) -> Optional[int]:
    try:
        return int(cell.strip())
    except ValueError:
        return None


class SeriesStore:
    """
    Manages the CSV datasets inside one directory.
    """

    def __init__(self, directory: str):
        """
        :param directory: Directory holding ``<series>.csv`` files
        :type directory: str
        """
        self.directory = directory

    def path_for(self, series: str) -> str:
        return os.path.join(self.directory, f"{series}.csv")

    def _lock_path(self, series: str) -> str:
        return os.path.join(self.directory, f".{series}.lock")

    def exists(self, series: str) -> bool:
        return os.path.exists(self.path_for(series))

    @contextmanager
    def _locked(self, series: str):
        """
        Exclusive lock on a sidecar file. The data file itself is swapped out
        by rewrites, so it cannot carry the lock.
        """
        os.makedirs(self.directory, exist_ok=True)
        with open(self._lock_path(series), 'a') as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read_text(self, series: str) -> str:
        try:
            with open(self.path_for(series), 'r', encoding='utf-8', newline='') as f:
                return f.read()
        except FileNotFoundError:
            return ""

    def columns(self, series: str) -> List[str]:
        """
        Column names from the header row, or an empty list for a missing or empty file.
        """
        try:
            with open(self.path_for(series), 'r', encoding='utf-8', newline='') as f:
                first_line = f.readline()
        except FileNotFoundError:
            return []
        if not first_line.endswith("\n"):
            return []
        return next(csv.reader([first_line]), [])

    def append(self, series: str, timestamp: int, value: Union[Value, Mapping[str, Value]]) -> None:
        """
        Appends one row.

        A scalar ``value`` goes into the ``value`` column; a mapping supplies one
        cell per column. Columns the file does not have yet are added to the
        header, older rows get empty cells for them.

        :param series: Dataset name
        :type series: str
        :param timestamp: Epoch seconds
        :type timestamp: int
        :param value: Scalar value or mapping of column to value
        :type value: Union[Value, Mapping[str, Value]]
        :raises SeriesStoreError: If the file cannot be written
        """
        cells: Dict[str, str] = {}
        if isinstance(value, Mapping):
            for column, cell in value.items():
                cells[column] = "" if cell is None else str(cell)
        else:
            cells[VALUE_COLUMN] = "" if value is None else str(value)

        path = self.path_for(series)
        try:
            with self._locked(series):
                header = self.columns(series)
                if not header:
                    header = [TIMESTAMP_COLUMN] + list(cells)
                    self._rewrite(series, header, [], extra_line=self._row_line(header, timestamp, cells))
                    logger.info(f"Initialised series '{series}' with columns: {', '.join(header)}")
                    return

                new_columns = [column for column in cells if column not in header]
                if new_columns:
                    logger.info(f"Adding columns {new_columns} to series '{series}'")
                    self._extend_header(series, header, new_columns, self._row_line(header + new_columns, timestamp, cells))
                    return

                self._drop_partial_row(path)
                with open(path, 'a', encoding='utf-8', newline='') as f:
                    f.write(self._row_line(header, timestamp, cells))
        except OSError as e:
            logger.error(f"Failed to append to series '{series}' at {path}: {e}")
            raise SeriesStoreError(f"Could not write to {path}: {e}") from e

    def _drop_partial_row(self, path: str) -> None:
        """Truncates a trailing row left behind by an interrupted write."""
        with open(path, 'rb+') as f:
            f.seek(0, os.SEEK_END)
            if f.tell() == 0:
                return
            f.seek(-1, os.SEEK_END)
            if f.read(1) == b"\n":
                return
            f.seek(0)
            data = f.read()
            f.truncate(data.rfind(b"\n") + 1)
            logger.warning(f"Discarded incomplete trailing row in {path}")

    def _row_line(self, header: List[str], timestamp: int, cells: Mapping[str, str]) -> str:
        return _format_line([str(int(timestamp))] + [cells.get(column, "") for column in header[1:]])

    def _extend_header(self, series: str, header: List[str], new_columns: List[str], extra_line: str) -> None:
        rows = []
        for row in self._raw_rows(series):
            if len(row) == len(header):
                rows.append(row + [""] * len(new_columns))
        self._rewrite(series, header + new_columns, rows, extra_line=extra_line)

    def _rewrite(self, series: str, header: List[str], rows: List[List[str]], extra_line: str = "") -> None:
        content = [_format_line(header)]
        content.extend(_format_line(row) for row in rows)
        content.append(extra_line)
        atomic_write_text(self.path_for(series), "".join(content))

    def _raw_rows(self, series: str) -> Iterator[List[str]]:
        """Data rows as lists of cells, header skipped, a trailing partial line dropped."""
        text = self._read_text(series)
        lines = text.splitlines(keepends=True)
        if not lines:
            return
        if not lines[-1].endswith("\n"):
            lines.pop()
        yield from csv.reader(lines[1:])

    def read_rows(self, series: str) -> Iterator[Dict[str, str]]:
        """
        Lazily yields complete rows as column-to-cell dicts, in file order.

        Rows whose cell count does not match the header are skipped.
        """
        path = self.path_for(series)
        try:
            f = open(path, 'r', encoding='utf-8', newline='')
        except FileNotFoundError:
            return
        with f:
            header: Optional[List[str]] = None
            for line in f:
                if not line.endswith("\n"):
                    logger.debug(f"Skipping incomplete trailing row in {path}")
                    break
                cells = next(csv.reader([line]), [])
                if header is None:
                    header = cells
                    continue
                if len(cells) != len(header):
                    logger.debug(f"Skipping malformed row in {path}: {line.strip()!r}")
                    continue
                yield dict(zip(header, cells))

    def read_all(self, series: str, column: str = VALUE_COLUMN) -> Iterator[MetricSample]:
        """
        Lazily yields the samples of one column in file order.

        Re-reads the file on every call. Rows with an unparsable timestamp or an
        empty or non-numeric cell are skipped.

        :param series: Dataset name
        :type series: str
        :param column: Column to read
        :type column: str
        :return: Iterator of samples
        :rtype: Iterator[MetricSample]
        """
        for row in self.read_rows(series):
            timestamp = parse_timestamp(row.get(TIMESTAMP_COLUMN, ""))
            value = parse_value(row.get(column, ""))
            if timestamp is None or value is None:
                continue
            yield MetricSample(timestamp, value)

    def prune(self, series: str, retention_seconds: int, now: Optional[int] = None) -> int:
        """
        Removes rows older than the retention window.

        Keeps every row with ``timestamp >= now - retention_seconds``. Rows that
        cannot be parsed are dropped too. The file is only rewritten when
        something is removed.

        :param series: Dataset name
        :type series: str
        :param retention_seconds: Maximum sample age
        :type retention_seconds: int
        :param now: Reference time in epoch seconds, defaults to the current time
        :type now: Optional[int]
        :return: Number of rows removed
        :rtype: int
        :raises SeriesStoreError: If the file cannot be rewritten
        """
        now = int(time.time()) if now is None else int(now)
        cutoff = now - retention_seconds
        path = self.path_for(series)
        try:
            with self._locked(series):
                lines = self._read_text(series).splitlines(keepends=True)
                if not lines or not lines[0].endswith("\n"):
                    return 0
                header = next(csv.reader([lines[0]]))
                kept: List[List[str]] = []
                removed = 0
                for line in lines[1:]:
                    row = next(csv.reader([line]), []) if line.endswith("\n") else []
                    timestamp = parse_timestamp(row[0]) if len(row) == len(header) else None
                    if timestamp is not None and timestamp >= cutoff:
                        kept.append(row)
                    else:
                        removed += 1
                if removed:
                    self._rewrite(series, header, kept)
                    logger.info(f"Pruned {removed} rows older than {retention_seconds}s from series '{series}'")
                return removed
        except OSError as e:
            logger.error(f"Failed to prune series '{series}' at {path}: {e}")
            raise SeriesStoreError(f"Could not prune {path}: {e}") from e

    def clear(self, series: str) -> None:
        """
        Empties a series, keeping the file in place.

        :raises SeriesStoreError: If the file cannot be truncated
        """
        try:
            with self._locked(series):
                atomic_write_text(self.path_for(series), "")
            logger.info(f"Cleared series '{series}'")
        except OSError as e:
            raise SeriesStoreError(f"Could not clear {self.path_for(series)}: {e}") from e
