"""Query engine interface and the bundled SQLite implementation.

The executor only needs two operations from a query engine:
- execute(query): run resolved query text and return its rows
- materialize(table_name, rows, column_names): store rows as a relation that
  later queries can read

SQLiteQueryEngine runs queries with the standard-library sqlite3 driver and
materializes results through pandas.
"""

import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import pandas as pd

from ..errors import QueryExecutionError
from ..schemas import QueryResult

logger = logging.getLogger(__name__)


# =============================================================================
# Interface
# =============================================================================

class QueryEngine(ABC):
    """Executes resolved query text and stores result relations."""

    @abstractmethod
    def execute(self, query: str) -> QueryResult:
        """Run a query.

        Raises:
            QueryExecutionError: If the engine rejects or fails the query
        """
        pass

    @abstractmethod
    def materialize(self, table_name: str, rows: List[Dict[str, Any]], column_names: List[str]) -> None:
        """Create or replace ``table_name`` holding rows.

        Raises:
            QueryExecutionError: If the relation cannot be written
        """
        pass

    def drop_table(self, table_name: str) -> None:
        """Remove a materialized relation; engines without cleanup ignore this."""
        pass


# =============================================================================
# SQLite
# =============================================================================

class SQLiteQueryEngine(QueryEngine):
    """SQLite-backed query engine.

    Example:
        engine = SQLiteQueryEngine()
        engine.load_frame("sales", pd.DataFrame({"region": ["EU"], "amount": [10]}))

        result = engine.execute("SELECT region, SUM(amount) AS total FROM sales GROUP BY region")
        engine.materialize("chart_data_block_0", result.rows, result.column_names)
    """

    def __init__(
        self,
        database: str = ":memory:",
        timeout: float = 5.0,
        connection: Optional[sqlite3.Connection] = None,
    ):
        """Open (or adopt) a SQLite connection.

        Args:
            database: Database path, in-memory by default
            timeout: Seconds to wait on a locked database
            connection: Existing connection to use instead of opening one
        """
        self.database = database
        self.timeout = timeout
        self._connection = connection or sqlite3.connect(database, timeout=timeout)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def execute(self, query: str) -> QueryResult:
        started = time.perf_counter()
        try:
            cursor = self._connection.execute(query)
            raw_rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise QueryExecutionError(f"Query failed: {e}") from e

        column_names = [column[0] for column in cursor.description or []]
        rows = [dict(zip(column_names, row)) for row in raw_rows]
        elapsed = (time.perf_counter() - started) * 1000

        logger.debug("Query returned %d rows in %.1fms", len(rows), elapsed)

        return QueryResult(
            rows=rows,
            column_names=column_names,
            row_count=len(rows),
            elapsed_time=elapsed,
        )

    def materialize(self, table_name: str, rows: List[Dict[str, Any]], column_names: List[str]) -> None:
        if not column_names:
            raise QueryExecutionError(f"Cannot materialize {table_name}: result has no columns")
        self.load_frame(table_name, pd.DataFrame(rows, columns=column_names))

    def load_frame(self, table_name: str, frame: pd.DataFrame) -> None:
        """Create or replace a table from a DataFrame (source data or results)."""
        try:
            frame.to_sql(table_name, self._connection, if_exists="replace", index=False)
        except (sqlite3.Error, ValueError) as e:
            raise QueryExecutionError(f"Failed to load data into table {table_name}: {e}") from e
        logger.debug("Loaded %d rows into table %s", len(frame), table_name)

    def drop_table(self, table_name: str) -> None:
        try:
            self._connection.execute(f'DROP TABLE IF EXISTS "{table_name}"')
        except sqlite3.Error as e:
            raise QueryExecutionError(f"Failed to drop table {table_name}: {e}") from e

    def table_exists(self, table_name: str) -> bool:
        cursor = self._connection.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table_name,),
        )
        return cursor.fetchone() is not None

    def close(self) -> None:
        self._connection.close()
