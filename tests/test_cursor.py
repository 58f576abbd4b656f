import unittest
import os
import sys
from unittest.mock import MagicMock, patch

import oracledb

# Add the project root to the path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from chunkread.cursor import RowCursor, resolve_tracking_index
from chunkread.diagnostics import AdvanceProfiler
from chunkread.errors import (
    ConfigurationError,
    QueryExecutionError,
    ReaderClosedError,
    RowFetchError,
)
from chunkread.metadata import ColumnDescriptor, tracking_column
from chunkread.progress import ProgressTracker
from chunkread.split import DataChunk, Split


QUERY = "SELECT ID,'c1' data_chunk_id FROM EMP t WHERE (1=1)"


class TestRowCursor(unittest.TestCase):
    """Test cases for the row cursor wrapper"""

    def setUp(self):
        self.split = Split.of([
            DataChunk('c1', '1=1', 3),
            DataChunk('c2', '1=1', 5),
        ])
        self.columns = [ColumnDescriptor('"ID"', 'NUMBER'), tracking_column()]
        self.connection = MagicMock()
        self.db_cursor = MagicMock()
        self.connection.cursor.return_value = self.db_cursor

    def make_cursor(self, rows, **kwargs):
        self.db_cursor.fetchone.side_effect = list(rows) + [None]
        return RowCursor(self.connection, QUERY, self.columns,
                         tracker=ProgressTracker(self.split), **kwargs)

    def test_resolve_tracking_index(self):
        """Test the tracking column position is found once"""
        self.assertEqual(resolve_tracking_index(self.columns), 1)

    def test_missing_tracking_column_is_fatal(self):
        """Test a row shape without the tracking column is rejected"""
        with self.assertRaises(ConfigurationError):
            RowCursor(self.connection, QUERY, self.columns[:1])

    def test_advance_streams_rows_and_tracks_progress(self):
        """Test rows are exposed and progress follows the tracking column"""
        cursor = self.make_cursor([(1, 'c1'), (2, 'c1'), (3, 'c2')])

        seen = []
        while cursor.advance():
            seen.append(cursor.current_row)

        self.assertEqual(seen, [(1, 'c1'), (2, 'c1'), (3, 'c2')])
        self.assertIsNone(cursor.current_row)
        self.assertEqual(cursor.rows_read, 3)
        self.assertEqual(cursor.tracker.blocks_processed, 3)
        self.db_cursor.execute.assert_called_once_with(QUERY)
        self.assertEqual(self.db_cursor.arraysize, 5000)

    def test_fetch_size_applied(self):
        """Test the configured fetch size is set on the driver cursor"""
        cursor = self.make_cursor([], fetch_size=250)
        cursor.execute()
        self.assertEqual(self.db_cursor.arraysize, 250)

    @patch('chunkread.progress.logger')
    def test_short_row_degrades_progress(self, mock_logger):
        """Test a row without the tracking value logs once and keeps reading"""
        cursor = self.make_cursor([(1,), (2,), (3, 'c1')])

        results = [cursor.advance() for _ in range(4)]

        self.assertEqual(results, [True, True, True, False])
        self.assertEqual(mock_logger.warning.call_count, 1)
        self.assertEqual(cursor.tracker.current_chunk_id, 'c1')

    def test_execution_error_carries_query(self):
        """Test a failing query is reported with its text and driver message"""
        self.db_cursor.execute.side_effect = oracledb.DatabaseError(
            "ORA-00942: table or view does not exist"
        )
        cursor = RowCursor(self.connection, QUERY, self.columns)

        with patch('chunkread.cursor.logger') as mock_logger:
            with self.assertRaises(QueryExecutionError) as ctx:
                cursor.advance()

        self.assertEqual(ctx.exception.query, QUERY)
        self.assertIn('ORA-00942', ctx.exception.driver_message)
        self.assertTrue(str(ctx.exception).startswith('Error executing the SQL query:\n'))
        self.assertIsInstance(ctx.exception.__cause__, oracledb.DatabaseError)
        mock_logger.query_failed.assert_called_once()
        self.db_cursor.close.assert_called_once()

    def test_fetch_error_is_wrapped(self):
        """Test a row fetch failure is raised as RowFetchError"""
        self.db_cursor.fetchone.side_effect = oracledb.DatabaseError(
            "ORA-01555: snapshot too old"
        )
        cursor = RowCursor(self.connection, QUERY, self.columns)

        with patch('chunkread.cursor.logger'):
            with self.assertRaises(RowFetchError) as ctx:
                cursor.advance()

        self.assertEqual(ctx.exception.query, QUERY)
        self.assertIn('ORA-01555', str(ctx.exception))
        self.assertIsInstance(ctx.exception, QueryExecutionError)
        self.assertEqual(ctx.exception.driver_message, "ORA-01555: snapshot too old")
        self.assertTrue(str(ctx.exception).startswith('Error fetching rows for the SQL query:\n'))

    def test_killed_session_is_reraised_unchanged(self):
        """Test a killed session is logged distinctly and not wrapped"""
        error = oracledb.DatabaseError("ORA-00028: your session has been killed")
        self.db_cursor.fetchone.side_effect = error
        cursor = RowCursor(self.connection, QUERY, self.columns)

        with patch('chunkread.cursor.logger') as mock_logger:
            with self.assertRaises(oracledb.DatabaseError) as ctx:
                cursor.advance()

        self.assertIs(ctx.exception, error)
        mock_logger.session_killed.assert_called_once()
        mock_logger.error.assert_not_called()

    def test_killed_session_during_execute(self):
        """Test a session killed before the first row is also re-raised unchanged"""
        error = oracledb.DatabaseError("ORA-00028: your session has been killed")
        self.db_cursor.execute.side_effect = error
        cursor = RowCursor(self.connection, QUERY, self.columns)

        with patch('chunkread.cursor.logger') as mock_logger:
            with self.assertRaises(oracledb.DatabaseError) as ctx:
                cursor.execute()

        self.assertIs(ctx.exception, error)
        mock_logger.session_killed.assert_called_once()
        mock_logger.query_failed.assert_not_called()

    def test_advance_after_close_fails_fast(self):
        """Test a closed cursor cannot be advanced"""
        cursor = self.make_cursor([(1, 'c1'), (2, 'c1')])
        self.assertTrue(cursor.advance())

        cursor.close()
        cursor.close()

        self.db_cursor.close.assert_called_once()
        with self.assertRaises(ReaderClosedError):
            cursor.advance()

    def test_profiler_accumulates_when_enabled(self):
        """Test fetch timing is collected without changing the rows"""
        profiler = AdvanceProfiler(enabled=True)
        cursor = self.make_cursor([(1, 'c1'), (2, 'c2')], profiler=profiler)

        while cursor.advance():
            pass

        self.assertEqual(profiler.advance_calls, 3)
        self.assertGreaterEqual(profiler.seconds, 0.0)
        self.assertEqual(cursor.rows_read, 2)

    def test_profiler_disabled_collects_nothing(self):
        """Test a disabled profiler leaves its counters untouched"""
        profiler = AdvanceProfiler(enabled=False)
        cursor = self.make_cursor([(1, 'c1')], profiler=profiler)

        while cursor.advance():
            pass

        self.assertEqual(profiler.summary(), {'enabled': False, 'advance_calls': 0, 'seconds': 0.0})


if __name__ == '__main__':
    unittest.main()
