import unittest
import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import oracledb
import polars as pl

# Add the project root to the path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from chunkread.errors import ConfigurationError
from chunkread.metadata import ColumnDescriptor, TableColumns
from chunkread.split import DataChunk, Split
from chunkread.tasks import export_split, read_split


class TestExportSplit(unittest.TestCase):
    """Test cases for the split export function"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.output_dir = os.path.join(self.temp_dir.name, 'out')

        self.split_data = Split.of([
            DataChunk('c1', 'rowid BETWEEN 1 AND 2', 2),
            DataChunk('c2', '1=1', 3),
        ], split_id=7).to_dict()

        self.provider = MagicMock()
        self.provider.list_columns.return_value = TableColumns([
            ColumnDescriptor('"ID"', 'NUMBER'),
            ColumnDescriptor('"NAME"', 'VARCHAR2'),
        ])

        self.connection = MagicMock()
        self.db_cursor = MagicMock()
        self.connection.cursor.return_value = self.db_cursor
        self.db_cursor.fetchone.side_effect = [
            ('ORCL1',),
            (1, 'alpha', 'c1'),
            (2, 'beta', 'c1'),
            (3, 'gamma', 'c2'),
            None,
        ]
        self.connection_config = {'username': 'scott', 'password': 'tiger',
                                  'dsn': 'db:1521/ORCL'}

    def tearDown(self):
        self.temp_dir.cleanup()

    def run_export(self, **kwargs):
        return export_split(
            self.split_data, 'SCOTT.EMP', self.connection_config, self.output_dir,
            connection_factory=lambda config: self.connection,
            column_provider=self.provider,
            **kwargs
        )

    def test_writes_parquet_parts(self):
        """Test the split is written as parquet part files"""
        callback = MagicMock()

        result = self.run_export(batch_size=2, progress_callback=callback)

        self.assertEqual(result['split_id'], 7)
        self.assertEqual(result['rows'], 3)
        self.assertEqual(len(result['files']), 2)
        self.assertAlmostEqual(result['ratio'], 0.4)
        self.assertEqual(Path(result['files'][0]).name, 'split_00007_part_0000.parquet')

        frames = [pl.read_parquet(path) for path in result['files']]
        self.assertEqual(frames[0].columns, ['ID', 'NAME'])
        self.assertEqual(sum(frame.height for frame in frames), 3)

        self.assertEqual(callback.call_count, 2)
        self.assertEqual(callback.call_args_list[0][0], (0.0, 2))
        self.assertAlmostEqual(callback.call_args_list[1][0][0], 0.4)
        self.assertEqual(callback.call_args_list[1][0][1], 3)

        self.connection.close.assert_called_once()

    def test_lob_columns_written_as_values(self):
        """Test CLOB and BLOB locators are exported as text and binary columns"""
        self.provider.list_columns.return_value = TableColumns([
            ColumnDescriptor('"ID"', 'NUMBER'),
            ColumnDescriptor('"NOTES"', 'CLOB'),
            ColumnDescriptor('"PHOTO"', 'BLOB'),
        ])
        notes = MagicMock(spec=oracledb.LOB)
        notes.read.return_value = 'long text'
        photo = MagicMock(spec=oracledb.LOB)
        photo.read.return_value = b'\x89PNG'
        self.db_cursor.fetchone.side_effect = [
            ('ORCL1',),
            (1, notes, photo, 'c1'),
            (2, None, None, 'c2'),
            None,
        ]

        result = self.run_export()

        frame = pl.read_parquet(result['files'][0])
        self.assertEqual(frame.columns, ['ID', 'NOTES', 'PHOTO'])
        self.assertEqual(frame['NOTES'].to_list(), ['long text', None])
        self.assertEqual(frame['PHOTO'].to_list(), [b'\x89PNG', None])

    def test_reader_config_is_applied(self):
        """Test reader settings reach the generated query"""
        self.run_export(reader_config={'consistent_read': True, 'consistent_read_scn': 99})

        query = self.db_cursor.execute.call_args_list[-1][0][0]
        self.assertEqual(query.count('AS OF SCN 99 '), 2)

    def test_invalid_consistent_read_fails_before_connecting(self):
        factory = MagicMock()

        with self.assertRaises(ConfigurationError):
            export_split(self.split_data, 'SCOTT.EMP', self.connection_config,
                         self.output_dir, reader_config={'consistent_read': True},
                         connection_factory=factory, column_provider=self.provider)

        factory.assert_not_called()

    def test_connection_closed_on_failure(self):
        """Test the connection is released when the read fails"""
        self.provider.list_columns.side_effect = RuntimeError('metadata unavailable')

        with self.assertRaises(RuntimeError):
            self.run_export()

        self.connection.close.assert_called_once()


class TestReadSplitTask(unittest.TestCase):
    """Test cases for the Celery task wrapper"""

    @patch('chunkread.tasks.export_split')
    def test_publishes_progress(self, mock_export):
        """Test progress callbacks become PROGRESS state updates"""
        def fake_export(*args, **kwargs):
            kwargs['progress_callback'](0.5, 10)
            return {'split_id': 2, 'rows': 10, 'files': [], 'ratio': 0.5}

        mock_export.side_effect = fake_export

        with patch.object(read_split, 'update_state') as mock_update:
            result = read_split.run({'split_id': 2, 'chunks': []}, 'SCOTT.EMP', {}, '/tmp/out')

        self.assertEqual(result['rows'], 10)
        mock_update.assert_called_once_with(
            state='PROGRESS', meta={'split_id': 2, 'ratio': 0.5, 'rows': 10}
        )

    @patch('chunkread.tasks.logger')
    @patch('chunkread.tasks.export_split')
    def test_failure_is_logged_and_raised(self, mock_export, mock_logger):
        mock_export.side_effect = ConfigurationError('The split cannot be None.')

        with self.assertRaises(ConfigurationError):
            read_split.run({'split_id': 3}, 'SCOTT.EMP', {}, '/tmp/out')

        mock_logger.split_failed.assert_called_once()


if __name__ == '__main__':
    unittest.main()
