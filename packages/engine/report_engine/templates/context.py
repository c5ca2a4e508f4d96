"""Render context shared by the conditional and loop processors."""

from typing import Any, Dict, List, Mapping, Optional, Sequence
from pydantic import Field

from ..schemas import Block, BlockExecutionResult, DomainModel, QueryResult


class RenderContext(DomainModel):
    """Values visible to ``{#if}`` conditions and ``{#each}`` loops.

    ``queries`` holds each executed query block's result under its name and
    under its id, so templates can use either.
    """

    queries: Dict[str, QueryResult] = Field(
        default_factory=dict,
        description="Block name or ID -> query result"
    )

    parameters: Dict[str, Any] = Field(default_factory=dict)

    metadata: Dict[str, Any] = Field(default_factory=dict)

    def rows(self, source: str) -> Optional[List[Dict[str, Any]]]:
        """Rows of a named result, or None when no such result exists."""
        result = self.queries.get(source)
        if result is None:
            return None
        return result.rows


def build_render_context(
    blocks: Sequence[Block],
    results: Mapping[str, BlockExecutionResult],
    parameters: Optional[Mapping[str, Any]] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> RenderContext:
    """Collect the successful query results of a document.

    Args:
        blocks: Document blocks, in declaration order
        results: Block ID -> execution result
        parameters: Current parameter values
        metadata: Document metadata

    Returns:
        RenderContext with every successful result registered by name and ID
    """
    queries: Dict[str, QueryResult] = {}

    for block in blocks:
        execution = results.get(block.id)
        if execution is None or not execution.success or execution.result is None:
            continue
        if block.name:
            queries.setdefault(block.name, execution.result)
        queries[block.id] = execution.result

    return RenderContext(
        queries=queries,
        parameters=dict(parameters or {}),
        metadata=dict(metadata or {}),
    )
