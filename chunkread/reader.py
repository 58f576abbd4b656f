#!/usr/bin/env python3
"""
Chunked Reader
Reads one split through a pluggable query builder and progress tracker
"""

import time
from typing import Any, Iterator, List, Optional, Sequence, Union

import polars as pl

from chunkread.config import ReaderConfig
from chunkread.cursor import RowCursor
from chunkread.database_utils import DRIVER_ERRORS, OracleColumnProvider, read_lob_value
from chunkread.diagnostics import AdvanceProfiler
from chunkread.enhanced_logger import logger
from chunkread.errors import ConfigurationError, ReaderClosedError
from chunkread.metadata import LOB_TYPES, ColumnDescriptor, OracleTable, TableColumns
from chunkread.progress import ProgressTracker
from chunkread.query_builder import QueryBuilder
from chunkread.split import Split


def parse_table(table: Union[OracleTable, str]) -> OracleTable:
    """Accept an OracleTable or an OWNER.NAME string"""
    if isinstance(table, OracleTable):
        return table
    if '.' in table:
        owner, name = table.split('.', 1)
        return OracleTable(owner, name)
    return OracleTable(None, table)


class ChunkedReader:
    """
    Streams the rows of one split and reports how far through it the read is

    Usage:
        with ChunkedReader(split, conn, "SCOTT.EMP") as reader:
            for row in reader:
                ...
            reader.ratio_complete()
    """

    def __init__(self, split: Split, connection, table: Union[OracleTable, str],
                 config: Optional[ReaderConfig] = None,
                 fields: Optional[Sequence[str]] = None,
                 filter_predicate: Optional[str] = None,
                 column_provider=None,
                 query_builder: Optional[QueryBuilder] = None,
                 tracker: Optional[ProgressTracker] = None):
        if split is None:
            raise ConfigurationError("The split cannot be None.")

        self.split = split
        self.connection = connection
        self.table = parse_table(table)
        self.config = config or ReaderConfig()
        self.config.validate_consistent_read()
        self.filter_predicate = filter_predicate

        self.table_name = self.table.qualified_name(self.config.escaping_disabled)
        self.query_builder = query_builder or QueryBuilder(self.config)
        self.tracker = tracker or ProgressTracker(split)
        self.profiler = AdvanceProfiler(enabled=self.config.profiling_enabled)

        provider = column_provider or OracleColumnProvider(connection)
        table_columns = self._list_table_columns(provider)
        self.columns: List[ColumnDescriptor] = self.query_builder.resolve_output_columns(
            fields, table_columns
        )

        self._query: Optional[str] = None
        self._cursor: Optional[RowCursor] = None
        self._started_at: Optional[float] = None
        self.closed = False

    def _list_table_columns(self, provider) -> TableColumns:
        try:
            return provider.list_columns(
                self.table,
                omit_lob_columns=self.config.omit_lob_columns,
                only_supported_types=True,
                omit_pseudo_columns=True,
                escaping_disabled=self.config.escaping_disabled
            )
        except DRIVER_ERRORS as exc:
            logger.error(f"Unable to obtain the data-types of the columns in table {self.table}.\n"
                         f"Error:\n{exc}")
            raise ConfigurationError(
                f"Unable to obtain the columns of table {self.table} for split "
                f"{self.split.split_id} ({self.split.number_of_chunks} data-chunks): {exc}"
            ) from exc

    @property
    def query(self) -> str:
        """SQL text for the split, built once"""
        if self._query is None:
            self._query = self.query_builder.build(
                self.split, self.table_name, self.columns, self.filter_predicate
            )
            logger.info(f"SELECT QUERY = \n{self._query}")
        return self._query

    @property
    def cursor(self) -> RowCursor:
        if self._cursor is None:
            self._cursor = RowCursor(
                self.connection,
                self.query,
                self.columns,
                tracker=self.tracker,
                profiler=self.profiler,
                fetch_size=self.config.fetch_size
            )
        return self._cursor

    @property
    def column_names(self) -> List[str]:
        return [column.unescaped_name for column in self.columns]

    @property
    def current_row(self) -> Optional[Sequence[Any]]:
        return self._cursor.current_row if self._cursor is not None else None

    @property
    def rows_read(self) -> int:
        return self._cursor.rows_read if self._cursor is not None else 0

    def open(self):
        """Execute the split query"""
        if self._started_at is None:
            logger.split_started(self.split.split_id, str(self.table),
                                 self.split.number_of_chunks, self.split.total_blocks)
            self._started_at = time.time()
        self.cursor.execute()

    def next_row(self) -> bool:
        if self.closed:
            raise ReaderClosedError("The reader has been closed.")
        if self._started_at is None:
            self.open()
        has_row = self.cursor.advance()
        if has_row:
            logger.split_progress(self.tracker.blocks_processed, self.cursor.rows_read)
        return has_row

    def __iter__(self) -> Iterator[Sequence[Any]]:
        while self.next_row():
            yield self.current_row

    def iter_batches(self, batch_size: int = 10000,
                     include_tracking_column: bool = False) -> Iterator[pl.DataFrame]:
        """
        Stream the split as polars DataFrames

        Args:
            batch_size: Maximum rows per DataFrame
            include_tracking_column: Keep the data_chunk_id column in the output

        Yields:
            polars DataFrame per batch
        """
        names = self.column_names
        tracking_name = names[self.cursor.tracking_index]
        lob_indexes = [idx for idx, column in enumerate(self.columns)
                       if column.data_type in LOB_TYPES]
        rows = []
        for row in self:
            row = tuple(row)
            if lob_indexes:
                # parquet cannot hold LOB locators
                row = tuple(read_lob_value(value) if idx in lob_indexes else value
                            for idx, value in enumerate(row))
            rows.append(row)
            if len(rows) >= batch_size:
                yield self._to_frame(rows, names, tracking_name, include_tracking_column)
                rows = []
        if rows:
            yield self._to_frame(rows, names, tracking_name, include_tracking_column)

    @staticmethod
    def _to_frame(rows, names, tracking_name, include_tracking_column) -> pl.DataFrame:
        df = pl.DataFrame(rows, schema=names, orient="row", infer_schema_length=None)
        if not include_tracking_column:
            df = df.drop(tracking_name)
        return df

    def ratio_complete(self) -> float:
        return self.tracker.ratio_complete()

    def position(self) -> int:
        """Number of blocks credited as processed"""
        return self.tracker.blocks_processed

    def diagnostics_summary(self):
        return self.profiler.summary()

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self._cursor is not None:
            self._cursor.close()

        if self.profiler.enabled:
            logger.info(f"Time spent fetching rows = {self.profiler.seconds} seconds.")

        if self._started_at is not None:
            logger.split_completed(self.rows_read, time.time() - self._started_at)
            self._started_at = None
            logger.clear_split_context()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, tb):
        self.close()
        return False
