#!/usr/bin/env python3
"""
Split Query Builder
Renders one UNION ALL statement reading exactly the data-chunks of a split
"""

from typing import List, Optional, Sequence

from chunkread.config import DEFAULT_IMPORT_HINT, FilterScope, ReaderConfig
from chunkread.errors import ConfigurationError
from chunkread.metadata import (
    ColumnDescriptor,
    TRACKING_COLUMN_NAME,
    TableColumns,
    tracking_column,
    unescape_identifier,
)
from chunkread.split import DataChunk, Split


def render_import_hint(import_hint: Optional[str]) -> str:
    """NO_INDEX(t) -> '/*+ NO_INDEX(t) */ '"""
    if not import_hint or not import_hint.strip():
        return ""
    return f"/*+ {import_hint.strip()} */ "


def quote_literal(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def _chunk_column_list(columns: Sequence[ColumnDescriptor], chunk: DataChunk) -> str:
    expressions = []
    for column in columns:
        if column.is_tracking:
            expressions.append(f"{quote_literal(chunk.id)} {column.name}")
        else:
            expressions.append(column.select_expression())
    return ",".join(expressions)


def _outer_column_list(columns: Sequence[ColumnDescriptor]) -> str:
    return ",".join(column.name for column in columns)


def build_query(split: Split, table_name: str, columns: Sequence[ColumnDescriptor],
                filter_predicate: Optional[str] = None,
                filter_scope: FilterScope = FilterScope.SUBSPLIT,
                consistent_read: bool = False,
                consistent_read_scn: Optional[int] = None,
                import_hint: Optional[str] = DEFAULT_IMPORT_HINT) -> str:
    """
    Build the SQL statement reading every data-chunk of a split

    One SELECT block is emitted per chunk, joined with UNION ALL. The filter
    predicate is injected either into every block (SUBSPLIT) or once around
    the unioned body (SPLIT), never both.

    Args:
        split: Split whose chunks are read
        table_name: Table reference used in every FROM clause
        columns: Output columns in order, including the tracking column
        filter_predicate: Optional user predicate
        filter_scope: Where the predicate is applied
        consistent_read: Read as of a fixed SCN
        consistent_read_scn: SCN used when consistent_read is set
        import_hint: Optimizer hint placed in every chunk SELECT

    Returns:
        SQL text; identical inputs always give identical text

    Raises:
        ConfigurationError: empty split, missing SCN or missing tracking column
    """
    if consistent_read and not consistent_read_scn:
        raise ConfigurationError("Could not get SCN for consistent read.")

    if split is None or not split.chunks:
        raise ConfigurationError("The split does not contain any data-chunks.")

    if not any(column.is_tracking for column in columns):
        raise ConfigurationError(
            f"The column list for table {table_name} does not contain the "
            f"{TRACKING_COLUMN_NAME} column."
        )

    filter_scope = FilterScope(filter_scope)
    has_predicate = bool(filter_predicate and filter_predicate.strip())
    hint = render_import_hint(import_hint)

    query = []
    for idx, chunk in enumerate(split.chunks):
        if idx > 0:
            query.append("UNION ALL \n")

        query.append(f"SELECT {hint}{_chunk_column_list(columns, chunk)}\n")

        query.append(f" FROM {table_name} ")
        if consistent_read:
            query.append(f"AS OF SCN {consistent_read_scn} ")
        query.append(f"{chunk.partition_clause} t\n")

        query.append(f" WHERE ({chunk.where_clause})\n")
        if filter_scope is FilterScope.SUBSPLIT and has_predicate:
            query.append(f" AND ({filter_predicate})\n")

    if filter_scope is FilterScope.SPLIT and has_predicate:
        query.insert(0, f"SELECT {hint}{_outer_column_list(columns)} FROM (\n")
        query.append(f")\nWHERE\n{filter_predicate}\n")

    return "".join(query)


class QueryBuilder:
    """
    Query builder strategy injected into the chunked reader
    """

    def __init__(self, config: Optional[ReaderConfig] = None):
        self.config = config or ReaderConfig()

    def resolve_output_columns(self, fields: Optional[Sequence[str]],
                               table_columns: TableColumns) -> List[ColumnDescriptor]:
        """
        Work out the output row shape

        Args:
            fields: Requested column names in order; None selects every table column
            table_columns: Column metadata used to type the requested columns

        Returns:
            Typed descriptors for the requested columns followed by the tracking column
        """
        if fields is None:
            resolved = [column for column in table_columns if not column.is_tracking]
        else:
            resolved = []
            for field_name in fields:
                if unescape_identifier(field_name).lower() == TRACKING_COLUMN_NAME:
                    continue
                known = table_columns.find_column_by_name(field_name)
                data_type = known.data_type if known else ""
                resolved.append(ColumnDescriptor(field_name, data_type))

        resolved.append(tracking_column())
        return resolved

    def build(self, split: Split, table_name: str, columns: Sequence[ColumnDescriptor],
              filter_predicate: Optional[str] = None) -> str:
        return build_query(
            split,
            table_name,
            columns,
            filter_predicate=filter_predicate,
            filter_scope=self.config.filter_scope,
            consistent_read=self.config.consistent_read,
            consistent_read_scn=self.config.consistent_read_scn,
            import_hint=self.config.import_hint,
        )
