"""
Exception types raised by the chunked reader.

Configuration errors are fatal and never retried. Execution errors carry the
SQL text and the driver message so the caller can diagnose them.
"""


class ChunkReadError(Exception):
    """Base class for all chunked reader errors"""


class ConfigurationError(ChunkReadError):
    """Raised at construction or query-build time for invalid splits or settings"""


class QueryExecutionError(ChunkReadError):
    """Raised when the split query cannot be executed"""

    def __init__(self, query: str, driver_message: str, action: str = "executing"):
        self.query = query
        self.driver_message = driver_message
        super().__init__(f"Error {action} the SQL query:\n{query}\n\n{driver_message}")


class RowFetchError(QueryExecutionError):
    """Raised when fetching the next row from an executed query fails"""

    def __init__(self, query: str, driver_message: str):
        super().__init__(query, driver_message, action="fetching rows for")


class ReaderClosedError(ChunkReadError):
    """Raised when a closed cursor is advanced"""
