"""Block execution for report documents.

This package runs the query blocks of a document against a query engine and
keeps the results current as parameters change.

Architecture:
    Blocks → Analysis (order) → BlockExecutor (per block) → Table mapping
    Parameter change → find_affected_blocks → ReactiveExecutor → Table mapping

Key concepts:
- Blocks run strictly one at a time, in dependency order
- A failed block never aborts the pass; blocks reading from it fail too
- Every block result is materialized as a table other blocks can query
- Collaborators (query engine, parameter store, chart builder) are passed in

Usage:
    from report_engine.execution import ReportSession, SQLiteQueryEngine

    session = ReportSession(blocks, SQLiteQueryEngine())
    result = session.execute({"region": "EU"})
    update = session.update_parameters({"region": "US"})
"""

from .engines import QueryEngine, SQLiteQueryEngine
from .stores import InMemoryParameterStore, ParameterStore
from .charts import ChartBuilder, chart_blocks, chart_data_source, find_affected_chart_blocks
from .validation import validate_query
from .executor import BlockExecutor
from .reactive import ReactiveExecutor, find_affected_blocks, get_changed_parameters
from .session import ReportSession

__all__ = [
    "QueryEngine",
    "SQLiteQueryEngine",
    "InMemoryParameterStore",
    "ParameterStore",
    "ChartBuilder",
    "chart_blocks",
    "chart_data_source",
    "find_affected_chart_blocks",
    "validate_query",
    "BlockExecutor",
    "ReactiveExecutor",
    "find_affected_blocks",
    "get_changed_parameters",
    "ReportSession",
]
