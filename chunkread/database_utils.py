"""
Database utility functions for the chunked reader.

This module contains the connection factory, the classification of driver
errors and the column metadata lookup, so the reader itself never has to
inspect driver-specific exception details.
"""

import logging
import re
from enum import Enum
from typing import Any, Dict, Optional

import oracledb

from chunkread.metadata import (
    ColumnDescriptor,
    LOB_AND_LONG_TYPES,
    OracleTable,
    RESERVED_PSEUDO_COLUMNS,
    SUPPORTED_TYPES,
    TableColumns,
    escape_identifier,
)

# Exceptions raised by the database driver
DRIVER_ERRORS = (oracledb.Error,)

SESSION_KILLED_CODES = frozenset({28, 31})          # ORA-00028, ORA-00031
CONNECTION_LOST_CODES = frozenset({3113, 3114, 3135})

_ORA_CODE_PATTERN = re.compile(r'ORA-(\d{5})')


class DriverErrorKind(Enum):
    """Classified kind of a driver error"""
    SESSION_KILLED = "session_killed"
    CONNECTION_LOST = "connection_lost"
    EXECUTION = "execution"


def create_data_source_connection(connection_config: Dict[str, Any]):
    """
    Create an Oracle connection for the data source

    Args:
        connection_config: Dictionary with 'username', 'password' and either
            'dsn' or 'host', 'port' and 'service_name'

    Returns:
        oracledb connection object
    """
    dsn = connection_config.get('dsn')
    if not dsn:
        dsn = oracledb.makedsn(
            connection_config['host'],
            connection_config.get('port', 1521),
            service_name=connection_config['service_name']
        )
    connection = oracledb.connect(
        user=connection_config['username'],
        password=connection_config['password'],
        dsn=dsn
    )
    connection.outputtypehandler = lob_output_type_handler
    return connection


def lob_output_type_handler(cursor, metadata):
    """Fetch CLOB, NCLOB and BLOB columns as str/bytes instead of LOB locators"""
    if metadata.type_code is oracledb.DB_TYPE_CLOB:
        return cursor.var(oracledb.DB_TYPE_LONG, arraysize=cursor.arraysize)
    if metadata.type_code is oracledb.DB_TYPE_NCLOB:
        return cursor.var(oracledb.DB_TYPE_LONG_NVARCHAR, arraysize=cursor.arraysize)
    if metadata.type_code is oracledb.DB_TYPE_BLOB:
        return cursor.var(oracledb.DB_TYPE_LONG_RAW, arraysize=cursor.arraysize)
    return None


def read_lob_value(value: Any) -> Any:
    """Contents of a LOB locator; any other value is returned as is"""
    if isinstance(value, oracledb.LOB):
        return value.read()
    return value


def get_oracle_error_code(exc: BaseException) -> Optional[int]:
    """Extract the ORA- error number from a driver exception, if any"""
    if exc.args:
        code = getattr(exc.args[0], 'code', None)
        if isinstance(code, int):
            return code
    match = _ORA_CODE_PATTERN.search(str(exc))
    if match:
        return int(match.group(1))
    return None


def classify_driver_error(exc: BaseException) -> DriverErrorKind:
    """
    Classify a driver error, walking its cause/context chain

    Args:
        exc: Exception raised by the driver (or wrapping one)

    Returns:
        DriverErrorKind for the first recognised error in the chain
    """
    seen = set()
    current = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        code = get_oracle_error_code(current)
        if code in SESSION_KILLED_CODES:
            return DriverErrorKind.SESSION_KILLED
        if code in CONNECTION_LOST_CODES:
            return DriverErrorKind.CONNECTION_LOST
        current = current.__cause__ or current.__context__
    return DriverErrorKind.EXECUTION


def session_has_been_killed(exc: BaseException) -> bool:
    return classify_driver_error(exc) is DriverErrorKind.SESSION_KILLED


def get_current_instance_name(db_conn) -> str:
    """Name of the database instance this connection is attached to"""
    cursor = db_conn.cursor()
    try:
        cursor.execute("SELECT sys_context('USERENV', 'INSTANCE_NAME') FROM dual")
        row = cursor.fetchone()
        return row[0] if row else ""
    finally:
        cursor.close()


def _normalize_data_type(data_type: str) -> str:
    """TIMESTAMP(6) WITH TIME ZONE -> TIMESTAMP WITH TIME ZONE"""
    return re.sub(r'\(\d+\)', '', data_type or '').strip().upper()


def list_table_columns(db_conn, table: OracleTable, omit_lob_columns: bool = False,
                       only_supported_types: bool = True, omit_pseudo_columns: bool = True,
                       escaping_disabled: bool = False) -> TableColumns:
    """
    Get the columns of a table from the data dictionary

    Args:
        db_conn: Database connection
        table: Table to describe; a missing owner means the current user
        omit_lob_columns: Leave out LOB and LONG columns
        only_supported_types: Leave out columns of types the reader cannot handle
        omit_pseudo_columns: Leave out columns reserved by the reader
        escaping_disabled: Return bare names instead of double-quoted ones

    Returns:
        TableColumns in column_id order
    """
    cursor = db_conn.cursor()

    try:
        logging.debug(f"Getting columns for {table}")
        cursor.execute("""
            SELECT column_name, data_type
            FROM all_tab_columns
            WHERE owner = NVL(:owner, USER) AND table_name = :table_name
            ORDER BY column_id
        """, owner=table.owner, table_name=table.name)

        columns = TableColumns()
        for column_name, data_type in cursor.fetchall():
            data_type = _normalize_data_type(data_type)

            if omit_lob_columns and data_type in LOB_AND_LONG_TYPES:
                continue
            if only_supported_types and data_type not in SUPPORTED_TYPES:
                logging.debug(f"Skipping column {column_name} of unsupported type {data_type}")
                continue
            if omit_pseudo_columns and column_name.upper() in RESERVED_PSEUDO_COLUMNS:
                continue

            name = column_name if escaping_disabled else escape_identifier(column_name)
            columns.add(ColumnDescriptor(name, data_type))

        logging.info(f"Retrieved {len(columns)} columns for {table}")
        logging.debug(f"Columns for {table}: {', '.join(columns.names())}")
        return columns
    finally:
        cursor.close()


class OracleColumnProvider:
    """Column metadata provider backed by ALL_TAB_COLUMNS"""

    def __init__(self, db_conn):
        self.db_conn = db_conn

    def list_columns(self, table: OracleTable, omit_lob_columns: bool = False,
                     only_supported_types: bool = True, omit_pseudo_columns: bool = True,
                     escaping_disabled: bool = False) -> TableColumns:
        return list_table_columns(
            self.db_conn, table,
            omit_lob_columns=omit_lob_columns,
            only_supported_types=only_supported_types,
            omit_pseudo_columns=omit_pseudo_columns,
            escaping_disabled=escaping_disabled
        )
