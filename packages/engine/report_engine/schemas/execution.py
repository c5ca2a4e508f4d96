"""Execution result models.

Created per execution attempt and kept only for the current document session:
- QueryResult: tabular rows returned by the query engine
- BlockExecutionResult: outcome of running one block
- DocumentExecutionResult: outcome of a full-document pass
- ParameterChanges / AffectedBlocks / ReactiveUpdateResult: reactive updates
"""

from typing import Any, Dict, List, Optional
from pydantic import Field
import pandas as pd

from .base import DomainModel
from .analysis import DependencyAnalysis


class QueryResult(DomainModel):
    """Rows returned by the query engine for one query.

    Rows are plain dicts keyed by column name so they can be stringified by the
    loop processor and compared by the condition evaluator without pandas.
    ``to_frame()`` gives the DataFrame view for downstream consumers.
    """

    rows: List[Dict[str, Any]] = Field(default_factory=list)
    column_names: List[str] = Field(default_factory=list)
    row_count: int = Field(default=0, ge=0)
    elapsed_time: float = Field(
        default=0.0,
        ge=0,
        description="Engine-side execution time in milliseconds"
    )

    def to_frame(self) -> pd.DataFrame:
        """Return the rows as a DataFrame with columns in result order."""
        return pd.DataFrame(self.rows, columns=self.column_names)

    def first_row(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


class BlockDependencies(DomainModel):
    """What a block read during execution."""

    parameters: List[str] = Field(default_factory=list)
    blocks: List[str] = Field(default_factory=list)


class BlockExecutionResult(DomainModel):
    """Outcome of one execution attempt for one block."""

    block_id: str
    success: bool

    result: Optional[QueryResult] = Field(
        default=None,
        description="Query engine result handle (None on failure)"
    )

    table_name: Optional[str] = Field(
        default=None,
        description="Relation the rows were materialized into"
    )

    query: Optional[str] = Field(
        default=None,
        description="Fully resolved query text handed to the engine"
    )

    error: Optional[str] = None

    error_kind: Optional[str] = Field(
        default=None,
        description="ReportEngineError.kind of the failure (parse, reference, query, ...)"
    )

    elapsed_time: float = Field(
        default=0.0,
        ge=0,
        description="Wall-clock time for the whole block in milliseconds"
    )

    dependencies: BlockDependencies = Field(default_factory=BlockDependencies)

    warnings: List[str] = Field(
        default_factory=list,
        description="Recoverable problems (e.g., parameters rendered as NULL)"
    )


class ExecutionIssue(DomainModel):
    """One entry of a document-level error list."""

    block_id: str
    kind: str
    message: str


class DocumentExecutionResult(DomainModel):
    """Outcome of a full-document execution pass.

    ``success`` is True only when every query block succeeded. A cycle is a
    warning (plus an issue of kind ``cycle``), not a failure.
    """

    success: bool = True
    executed_blocks: int = 0
    failed_blocks: int = 0
    total_time: float = 0.0

    errors: List[ExecutionIssue] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    results: Dict[str, BlockExecutionResult] = Field(
        default_factory=dict,
        description="Block ID -> result of its execution attempt"
    )

    table_mapping: Dict[str, str] = Field(default_factory=dict)

    analysis: Optional[DependencyAnalysis] = None

    charts: Dict[str, Any] = Field(
        default_factory=dict,
        description="Chart block ID -> chart descriptor from the chart builder"
    )


class ParameterChanges(DomainModel):
    """Difference between two parameter snapshots."""

    changed: List[str] = Field(default_factory=list)
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)

    @property
    def all(self) -> List[str]:
        return [*self.changed, *self.added, *self.removed]

    @property
    def has_changes(self) -> bool:
        return bool(self.changed or self.added or self.removed)


class AffectedBlocks(DomainModel):
    """Blocks that must re-run after a parameter change."""

    block_ids: List[str] = Field(
        default_factory=list,
        description="Affected block IDs in original declaration order"
    )

    affected_by: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Block ID -> changed parameters it reads directly"
    )

    block_dependencies: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Block ID -> parameter dependencies used for the decision"
    )

    downstream: List[str] = Field(
        default_factory=list,
        description="Block IDs pulled in only because they read an affected block"
    )


class ReactiveUpdateResult(DomainModel):
    """Outcome of a reactive re-execution."""

    changes: ParameterChanges = Field(default_factory=ParameterChanges)
    affected_block_ids: List[str] = Field(default_factory=list)
    results: Dict[str, BlockExecutionResult] = Field(default_factory=dict)
    errors: List[ExecutionIssue] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    charts: Dict[str, Any] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results.values())
