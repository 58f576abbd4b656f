#!/usr/bin/env python3
"""
Table and column metadata used when building split queries
Oracle data types, the synthetic tracking column and table naming
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional


# Name of the synthetic column carrying the originating data-chunk id
TRACKING_COLUMN_NAME = "data_chunk_id"

# Oracle data types
URITYPE = "URITYPE"

# Types the driver returns as LOB locators
LOB_TYPES = frozenset({'BLOB', 'CLOB', 'NCLOB'})

LOB_AND_LONG_TYPES = LOB_TYPES | {'BFILE', 'LONG', 'LONG RAW'}

SUPPORTED_TYPES = frozenset({
    'BINARY_DOUBLE', 'BINARY_FLOAT', 'BLOB', 'CHAR', 'CLOB', 'DATE', 'FLOAT',
    'LONG', 'NCHAR', 'NCLOB', 'NUMBER', 'NVARCHAR2', 'RAW', 'ROWID', 'UROWID',
    'VARCHAR2', 'TIMESTAMP', 'TIMESTAMP WITH TIME ZONE',
    'TIMESTAMP WITH LOCAL TIME ZONE', 'INTERVAL DAY TO SECOND',
    'INTERVAL YEAR TO MONTH', URITYPE
})

# Columns reserved by the reader itself; a table column with one of these
# names would collide with the injected tracking column
RESERVED_PSEUDO_COLUMNS = frozenset({TRACKING_COLUMN_NAME.upper()})

# Conversion wrappers applied to column references, keyed by data type
CONVERSION_FUNCTIONS = {
    URITYPE: "uritype.geturl({column})",
}


class ColumnRole(Enum):
    """Role a column plays in the split query"""
    DATA = "data"
    TRACKING = "tracking"


def unescape_identifier(name: str) -> str:
    """Strip one pair of surrounding double quotes from an identifier"""
    if len(name) >= 2 and name[0] == '"' and name[-1] == '"':
        return name[1:-1]
    return name


def escape_identifier(name: str) -> str:
    """Wrap an identifier in double quotes unless it already is"""
    if len(name) >= 2 and name[0] == '"' and name[-1] == '"':
        return name
    return f'"{name}"'


@dataclass(frozen=True)
class ColumnDescriptor:
    """Metadata for one output column"""
    name: str
    data_type: str = ""
    role: ColumnRole = ColumnRole.DATA

    @property
    def unescaped_name(self) -> str:
        return unescape_identifier(self.name)

    @property
    def is_tracking(self) -> bool:
        return self.role is ColumnRole.TRACKING

    @property
    def requires_conversion(self) -> bool:
        return self.data_type.upper() in CONVERSION_FUNCTIONS

    def select_expression(self) -> str:
        """Column reference with any conversion wrapper applied"""
        if not self.requires_conversion:
            return self.name
        wrapper = CONVERSION_FUNCTIONS[self.data_type.upper()]
        return f"{wrapper.format(column=self.name)} {self.name}"


def tracking_column() -> ColumnDescriptor:
    """Descriptor for the synthetic data-chunk id column"""
    return ColumnDescriptor(TRACKING_COLUMN_NAME, "VARCHAR2", ColumnRole.TRACKING)


class TableColumns:
    """Ordered collection of a table's columns"""

    def __init__(self, columns: Iterable[ColumnDescriptor] = ()):
        self._columns: List[ColumnDescriptor] = list(columns)

    def __iter__(self) -> Iterator[ColumnDescriptor]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def add(self, column: ColumnDescriptor):
        self._columns.append(column)

    def find_column_by_name(self, name: str) -> Optional[ColumnDescriptor]:
        """
        Find a column by its unescaped name

        Args:
            name: Column name, with or without surrounding double quotes

        Returns:
            Matching ColumnDescriptor or None
        """
        wanted = unescape_identifier(name)
        for column in self._columns:
            if column.unescaped_name == wanted:
                return column
        return None

    def names(self) -> List[str]:
        return [column.name for column in self._columns]


@dataclass(frozen=True)
class OracleTable:
    """Identity of the table being read"""
    owner: Optional[str]
    name: str

    def qualified_name(self, escaping_disabled: bool = False) -> str:
        """
        Render the table reference used in FROM clauses

        Args:
            escaping_disabled: Emit bare identifiers instead of quoted ones

        Returns:
            e.g. "SCOTT"."EMP", SCOTT.EMP or EMP
        """
        if escaping_disabled:
            parts = [self.owner, self.name] if self.owner else [self.name]
        else:
            parts = [escape_identifier(self.owner), escape_identifier(self.name)] \
                if self.owner else [escape_identifier(self.name)]
        return ".".join(parts)

    def __str__(self) -> str:
        return f"{self.owner}.{self.name}" if self.owner else self.name
