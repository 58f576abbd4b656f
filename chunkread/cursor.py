#!/usr/bin/env python3
"""
Row Cursor Wrapper
Executes a split query and streams its rows, feeding the progress tracker
"""

from typing import Any, Optional, Sequence

from chunkread.database_utils import DRIVER_ERRORS, session_has_been_killed
from chunkread.diagnostics import AdvanceProfiler
from chunkread.enhanced_logger import logger
from chunkread.errors import (
    ConfigurationError,
    QueryExecutionError,
    ReaderClosedError,
    RowFetchError,
)
from chunkread.metadata import ColumnDescriptor, TRACKING_COLUMN_NAME
from chunkread.progress import ProgressTracker


def resolve_tracking_index(columns: Sequence[ColumnDescriptor]) -> int:
    """Zero-based position of the tracking column in the output row"""
    for idx, column in enumerate(columns):
        if column.is_tracking:
            return idx
    raise ConfigurationError(
        f"The {TRACKING_COLUMN_NAME} column is missing from the resolved row shape."
    )


class RowCursor:
    """
    Wraps one DB-API cursor over the split query

    advance() returns whether a row was fetched; driver errors are raised.
    Closing the cursor makes every later advance() fail immediately.
    """

    def __init__(self, connection, query: str, columns: Sequence[ColumnDescriptor],
                 tracker: Optional[ProgressTracker] = None,
                 profiler: Optional[AdvanceProfiler] = None,
                 fetch_size: int = 5000):
        self.connection = connection
        self.query = query
        self.columns = list(columns)
        self.tracking_index = resolve_tracking_index(self.columns)
        self.tracker = tracker
        self.profiler = profiler or AdvanceProfiler(enabled=False)
        self.fetch_size = fetch_size

        self.current_row: Optional[Sequence[Any]] = None
        self.rows_read = 0
        self.closed = False
        self._cursor = None

    @property
    def column_names(self):
        return [column.unescaped_name for column in self.columns]

    def execute(self):
        """Run the query; called implicitly by the first advance()"""
        if self.closed:
            raise ReaderClosedError("Cannot execute the query of a closed cursor.")
        if self._cursor is not None:
            return

        cursor = self.connection.cursor()
        cursor.arraysize = self.fetch_size
        try:
            cursor.execute(self.query)
        except DRIVER_ERRORS as exc:
            self._close_driver_cursor(cursor)
            if session_has_been_killed(exc):
                logger.session_killed()
                raise
            logger.query_failed(self.query, str(exc))
            raise QueryExecutionError(self.query, str(exc)) from exc

        self._cursor = cursor

    def advance(self) -> bool:
        """
        Fetch the next row

        Returns:
            True when a row was fetched into current_row, False at the end of the result
        """
        if self.closed:
            raise ReaderClosedError("The cursor has been closed.")
        if self._cursor is None:
            self.execute()

        started_at = self.profiler.start()
        try:
            row = self._cursor.fetchone()
        except DRIVER_ERRORS as exc:
            if session_has_been_killed(exc):
                logger.session_killed()
                raise
            logger.error(f"Error fetching rows for the SQL query:\n{self.query}\n\n{exc}")
            raise RowFetchError(self.query, str(exc)) from exc
        finally:
            self.profiler.stop(started_at)

        self.current_row = row
        if row is None:
            return False

        self.rows_read += 1
        if self.tracker is not None:
            self._track(row)
        return True

    def tracking_value(self, row: Optional[Sequence[Any]] = None) -> Any:
        """Data-chunk id carried by a row (the current row by default)"""
        row = self.current_row if row is None else row
        return row[self.tracking_index]

    def _track(self, row: Sequence[Any]):
        try:
            value = self.tracking_value(row)
        except (IndexError, KeyError, TypeError) as exc:
            self.tracker.record_extraction_failure(exc, self.tracking_index)
            return
        self.tracker.observe(value)

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.current_row = None
        if self._cursor is not None:
            self._close_driver_cursor(self._cursor)
            self._cursor = None

    @staticmethod
    def _close_driver_cursor(cursor):
        try:
            cursor.close()
        except DRIVER_ERRORS as exc:
            logger.warning(f"Error closing cursor: {exc}")
